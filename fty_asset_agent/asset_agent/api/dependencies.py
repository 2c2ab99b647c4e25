# asset_agent/api/dependencies.py
"""
FastAPI dependencies shared by the routers.
"""
from fastapi import HTTPException, status

from asset_agent.actors.asset_server import AssetServer
from asset_agent.actors.runtime import get_runtime
from asset_agent.core.errors import (
    ActivationError,
    AssetError,
    BadParams,
    BadRequestDocument,
    ElementNotFound,
    LicensingError,
    ParamRequired,
)

_CLIENT_ERRORS = (BadParams, ParamRequired, BadRequestDocument, LicensingError, ActivationError)


def get_asset_server() -> AssetServer:
    """The running asset agent; writes are queued on its task."""
    runtime = get_runtime()
    if runtime is None or not runtime.running:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Asset agent is not running",
        )
    return runtime.asset_server


def to_http_exception(error: AssetError) -> HTTPException:
    if isinstance(error, ElementNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error.message)
    if isinstance(error, _CLIENT_ERRORS):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=error.message)
