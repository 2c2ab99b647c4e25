# asset_agent/main.py
from contextlib import asynccontextmanager
import asyncio
import importlib
import json
from time import perf_counter

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from sqlalchemy import text

from asset_agent.core.config import load_environment, get_env_load_state, settings
from asset_agent.core.middleware import LoggingMiddleware


class PrettyJSONResponse(JSONResponse):
    """Custom JSONResponse that pretty-prints JSON with indentation."""
    def render(self, content) -> bytes:
        return json.dumps(
            content,
            ensure_ascii=False,
            allow_nan=False,
            indent=2,
            separators=(",", ": "),
        ).encode("utf-8")

load_environment()  # load .env.dev or .env.prod based on APP_ENV

ROUTER_MODULES = (
    "asset_agent.api.routers.asset_router",
    "asset_agent.api.routers.import_router",
)


def _import_router(module_path: str):
    """Import a router module and return its `router` attribute."""
    module = importlib.import_module(module_path)
    router = getattr(module, "router", None)
    if router is None:
        raise AttributeError(f"Module {module_path} does not expose a FastAPI router named 'router'")
    return router


async def _ping_database() -> None:
    from asset_agent.db.session import get_engine

    engine = get_engine()

    def _ping():
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    await asyncio.to_thread(_ping)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Starts the actors (asset agent, auto-update, inventory) on the API event
    loop so the HTTP routes can queue work on the asset agent task.
    """
    from asset_agent.actors.runtime import AssetAgentRuntime, set_runtime
    from asset_agent.core.logger import app_logger

    env_state = get_env_load_state()
    if env_state["warning"]:
        app_logger.warning(
            "Environment file missing",
            extra={"warning": env_state["warning"]},
        )

    startup_start = perf_counter()
    runtime = None
    if settings.RUN_ACTORS_IN_API:
        factory = getattr(app.state, "runtime_factory", None) or AssetAgentRuntime
        runtime = factory()
        await runtime.start()
        set_runtime(runtime)

    app_logger.info(
        "Asset agent API started",
        extra={
            "version": "1.0.0",
            "startup_ms": round((perf_counter() - startup_start) * 1000, 2),
            "actors_running": runtime is not None,
            "environment": settings.ENVIRONMENT,
            "log_level": settings.LOG_LEVEL,
            "log_format": settings.LOG_FORMAT,
        },
    )

    try:
        yield  # App is running
    finally:
        if runtime is not None:
            await runtime.stop()
            set_runtime(None)
        app_logger.info("Asset agent API shutting down")


app = FastAPI(
    title="Asset Agent API",
    description="Asset registry: JSON create, CSV import, detail and delete of assets",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    default_response_class=PrettyJSONResponse,
)
app.state.runtime_factory = None

for _module_path in ROUTER_MODULES:
    app.include_router(_import_router(_module_path))

app.add_middleware(LoggingMiddleware)


@app.get("/")
def read_root():
    return {
        "message": "Asset agent API is running",
        "docs": "/docs",
        "redoc": "/redoc",
        "openapi": "/openapi.json",
    }


@app.get("/health")
async def health_check():
    """
    Health check: quick DB ping plus the state of the actors.
    """
    from asset_agent.actors.runtime import get_runtime

    try:
        await _ping_database()
        db_status = "up"
    except Exception as exc:
        db_status = f"down ({type(exc).__name__})"

    runtime = get_runtime()
    actors_status = "running" if runtime is not None and runtime.running else "stopped"

    return {
        "status": "ok" if db_status == "up" else "degraded",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT,
        "database": db_status,
        "actors": actors_status,
    }
