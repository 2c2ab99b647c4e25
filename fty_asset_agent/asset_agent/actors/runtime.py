# asset_agent/actors/runtime.py
"""
Runs the three actors of the service and their timers on one event loop.

    REPEAT_ALL  -> asset agent, at start then every BIOS_ASSETS_REPEAT s
    WAKEUP      -> auto-update, at start then every AUTOUPDATE_INTERVAL_SECONDS
"""
import asyncio
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from asset_agent.actors.actor_base import TERM, Actor
from asset_agent.actors.asset_server import REPEAT_ALL, AssetServer
from asset_agent.actors.autoupdate_server import WAKEUP, AutoUpdateServer
from asset_agent.actors.inventory_server import InventoryServer
from asset_agent.bus.broker import Broker, get_broker
from asset_agent.core.config import settings
from asset_agent.core.logger import app_logger


class AssetAgentRuntime:
    def __init__(
        self,
        broker: Optional[Broker] = None,
        session_factory: Optional[Callable[[], Session]] = None,
        repeat_interval: Optional[float] = None,
        wakeup_interval: Optional[float] = None,
    ) -> None:
        self.broker = broker or get_broker(settings.MLM_ENDPOINT)
        self.asset_server = AssetServer(self.broker, session_factory=session_factory)
        self.autoupdate_server = AutoUpdateServer(self.broker, asset_agent_name=self.asset_server.name)
        self.inventory_server = InventoryServer(self.broker, session_factory=session_factory)
        self.repeat_interval = repeat_interval or settings.BIOS_ASSETS_REPEAT
        self.wakeup_interval = wakeup_interval or settings.AUTOUPDATE_INTERVAL_SECONDS
        self._actor_tasks: List[asyncio.Task] = []
        self._timer_tasks: List[asyncio.Task] = []

    @property
    def actors(self) -> List[Actor]:
        return [self.asset_server, self.autoupdate_server, self.inventory_server]

    @property
    def running(self) -> bool:
        return bool(self._actor_tasks)

    async def start(self) -> None:
        """
        Connects every actor, then starts their tasks and the timers.
        Raises when an actor cannot connect; nothing is left running then.
        """
        started: List[Actor] = []
        try:
            for actor in self.actors:
                actor.start()
                started.append(actor)
        except Exception:
            for actor in started:
                actor.stop()
            raise

        self._actor_tasks = [asyncio.create_task(actor.run(), name=actor.name) for actor in self.actors]
        self._timer_tasks = [
            asyncio.create_task(self._timer(self.asset_server, REPEAT_ALL, self.repeat_interval)),
            asyncio.create_task(self._timer(self.autoupdate_server, WAKEUP, self.wakeup_interval)),
        ]
        app_logger.info(
            "Asset agent runtime started",
            extra={"repeat_interval": self.repeat_interval, "wakeup_interval": self.wakeup_interval},
        )

    async def _timer(self, actor: Actor, command: str, interval: float) -> None:
        while True:
            actor.send(command)
            await asyncio.sleep(interval)

    async def stop(self) -> None:
        for task in self._timer_tasks:
            task.cancel()
        await asyncio.gather(*self._timer_tasks, return_exceptions=True)
        self._timer_tasks = []

        for actor in self.actors:
            actor.send(TERM)
        results = await asyncio.gather(*self._actor_tasks, return_exceptions=True)
        self._actor_tasks = []
        for actor, result in zip(self.actors, results):
            if isinstance(result, Exception):
                app_logger.error("Actor ended with an error", extra={"actor": actor.name, "error": str(result)})
        app_logger.info("Asset agent runtime stopped")

    async def wait(self) -> None:
        """Blocks until one of the actors ends."""
        if not self._actor_tasks:
            return
        await asyncio.wait(self._actor_tasks, return_when=asyncio.FIRST_COMPLETED)

    async def __aenter__(self) -> "AssetAgentRuntime":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()


_runtime: Optional[AssetAgentRuntime] = None


def get_runtime() -> Optional[AssetAgentRuntime]:
    return _runtime


def set_runtime(runtime: Optional[AssetAgentRuntime]) -> None:
    global _runtime
    _runtime = runtime
