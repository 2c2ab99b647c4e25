# asset_agent/actors/inventory_server.py
"""
Inventory actor: persists the ext-attributes of ``inventory`` asset events
and forgets cached values of deleted assets.
"""
from typing import Callable, Optional

from sqlalchemy.orm import Session

from asset_agent.actors.actor_base import Actor
from asset_agent.bus.broker import Broker, BusMessage
from asset_agent.bus.proto import ASSET, try_decode
from asset_agent.core.config import settings
from asset_agent.core.errors import AssetError, ElementNotFound
from asset_agent.core.logger import app_logger
from asset_agent.db.session import session_scope
from asset_agent.helpers.asset_types import AssetOperation
from asset_agent.helpers.inventory_cache import InventoryCache, process_insert_inventory


class InventoryServer(Actor):
    def __init__(
        self,
        broker: Broker,
        name: Optional[str] = None,
        session_factory: Optional[Callable[[], Session]] = None,
        cache: Optional[InventoryCache] = None,
    ) -> None:
        super().__init__(broker, name or settings.INVENTORY_AGENT_NAME)
        self._session_factory = session_factory
        self.cache = cache if cache is not None else InventoryCache()

    def setup(self) -> None:
        stream = self.connect_client("stream", self.name)
        stream.set_consumer("ASSETS", ".*")

    async def handle_message(self, source: str, message: BusMessage) -> None:
        proto = try_decode(message.frames[0]) if message.frames else None
        if proto is None or proto.id != ASSET:
            return

        if proto.operation == AssetOperation.INVENTORY.value:
            self.store_inventory(proto.name, proto.ext)
        elif proto.operation == AssetOperation.DELETE.value:
            evicted = self.cache.vacuum_asset(proto.name)
            app_logger.debug("Inventory cache vacuumed", extra={"iname": proto.name, "evicted": evicted})

    def store_inventory(self, iname: str, ext) -> int:
        if not ext:
            return 0
        try:
            with session_scope(self._session_factory) as db:
                return process_insert_inventory(db, iname, ext, read_only=True, cache=self.cache)
        except ElementNotFound:
            app_logger.warning("Inventory for unknown asset skipped", extra={"iname": iname})
        except AssetError as e:
            app_logger.error("Inventory not stored", extra={"iname": iname, "error": str(e)})
        return 0
