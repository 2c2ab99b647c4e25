# asset_agent/actors/asset_server.py
"""
AssetAgent actor.

Clients (all on one task, handled one message at a time):
    <name>          mailbox: TOPOLOGY, ASSET_MANIPULATION, ASSETS, ...
    <name>-stream   producer and consumer of ASSETS, consumer of
                    LICENSING-ANNOUNCEMENTS
    <name>-ng       JSON queue FTY.Q.ASSET.QUERY and notification topics

Pipe commands: REPEAT_ALL, IMPORT, CREATE_JSON, DELETE, GET_DTO, $TERM.
"""
import asyncio
import json
from typing import Any, Callable, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from asset_agent.actors.actor_base import Actor
from asset_agent.actors.mailbox_handlers import MAILBOX_HANDLERS, Reply
from asset_agent.bus.broker import Broker, BusMessage, MlmClient
from asset_agent.bus.message_bus import (
    ASSET_QUERY_QUEUE,
    SUBJECT_GET,
    Message,
    MessageBus,
    MessageStatus,
    decode_bus_message,
)
from asset_agent.bus.proto import ASSET, METRIC, try_decode
from asset_agent.core.config import settings
from asset_agent.core.errors import AssetError, BusError, LicensingError
from asset_agent.core.logger import app_logger
from asset_agent.db.session import session_scope
from asset_agent.helpers.activation import ActivationClient
from asset_agent.helpers.asset_db import top_location_id
from asset_agent.helpers.asset_event import asset_subject, build_asset_event
from asset_agent.helpers.asset_impl import AssetImpl
from asset_agent.helpers.asset_manager import AssetManager, ImportList
from asset_agent.helpers.asset_select import select_assets_by_container
from asset_agent.helpers.asset_types import SUBTYPE_UPS, TYPE_DATACENTER, TYPE_DEVICE, AssetOperation, subtype_id, type_id
from asset_agent.helpers.db_utils import all_asset_names
from asset_agent.helpers.licensing import LicensingState, query_limitations
from asset_agent.helpers.notifications import notify_created, notify_deleted, notify_updated
from asset_agent.models.asset_models import AssetElement

ASSETS_STREAM = "ASSETS"
LICENSING_STREAM = "LICENSING-ANNOUNCEMENTS"

SOURCE_MAILBOX = "mailbox"
SOURCE_STREAM = "stream"
SOURCE_NG = "ng"

# Pipe commands
REPEAT_ALL = "REPEAT_ALL"
IMPORT = "IMPORT"
CREATE_JSON = "CREATE_JSON"
DELETE = "DELETE"
GET_DTO = "GET_DTO"


class AssetServer(Actor):
    def __init__(
        self,
        broker: Broker,
        name: Optional[str] = None,
        session_factory: Optional[Callable[[], Session]] = None,
        activation_enabled: Optional[bool] = None,
        query_licensing: Optional[bool] = None,
    ) -> None:
        super().__init__(broker, name or settings.ASSET_AGENT_NAME)
        self._session_factory = session_factory
        self.licensing = LicensingState()
        if activation_enabled is None:
            activation_enabled = settings.ACTIVATION_ENABLED
        activation = None
        if activation_enabled:
            activation = ActivationClient(
                broker,
                self.name,
                settings.ACTIVATION_AGENT_NAME,
                settings.MAILBOX_TIMEOUT_SECONDS,
            )
        self.manager = AssetManager(self.licensing, activation=activation, session_factory=session_factory)
        self._query_licensing = settings.LICENSING_QUERY_ON_START if query_licensing is None else query_licensing
        self._licensing_task: Optional[asyncio.Task] = None

        self.mailbox: Optional[MlmClient] = None
        self.stream: Optional[MlmClient] = None
        self.ng_bus: Optional[MessageBus] = None

    # -------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------
    def setup(self) -> None:
        self.mailbox = self.connect_client(SOURCE_MAILBOX, self.name)

        self.stream = self.connect_client(SOURCE_STREAM, f"{self.name}-stream")
        self.stream.set_producer(ASSETS_STREAM)
        self.stream.set_consumer(ASSETS_STREAM, ".*")
        self.stream.set_consumer(LICENSING_STREAM, ".*")

        self.ng_bus = MessageBus(self.broker, f"{self.name}-ng")
        self.ng_bus.connect()
        self.register_client(SOURCE_NG, self.ng_bus.client)

    async def on_run(self) -> None:
        if self._query_licensing:
            self._licensing_task = asyncio.create_task(self._load_licensing())

    def stop(self) -> None:
        if self._licensing_task is not None and not self._licensing_task.done():
            self._licensing_task.cancel()
        self._licensing_task = None
        super().stop()

    async def _load_licensing(self) -> None:
        try:
            limitations = await query_limitations(
                self.broker,
                settings.LICENSING_AGENT_NAME,
                settings.LICENSING_QUERY_TIMEOUT_SECONDS,
                client_prefix=self.name,
            )
        except (BusError, LicensingError) as e:
            app_logger.warning("Licensing limitations not received, keeping defaults", extra={"error": str(e)})
            return
        self.licensing.apply_limitations(limitations)
        app_logger.info(
            "Licensing limitations loaded",
            extra={
                "max_active_power_devices": limitations.max_active_power_devices,
                "global_configurability": limitations.global_configurability,
            },
        )

    def session(self):
        return session_scope(self._session_factory)

    # -------------------------------------------------------
    # Publishing
    # -------------------------------------------------------
    def publish_asset(self, iname: str, operation: str) -> bool:
        """Publishes the canonical event of one asset on the ASSETS stream."""
        try:
            with self.session() as db:
                event = build_asset_event(db, iname, operation)
        except AssetError as e:
            app_logger.warning("Cannot build asset event", extra={"iname": iname, "error": str(e)})
            return False
        try:
            self.stream.send(event.subject, [event.encode()])
        except BusError as e:
            app_logger.error("Failed to publish asset event", extra={"iname": iname, "error": str(e)})
            return False
        app_logger.debug("Asset event published", extra={"subject": event.subject, "operation": operation})
        return True

    def publish_assets(self, inames: Iterable[str], operation: str) -> int:
        return sum(1 for iname in inames if self.publish_asset(iname, operation))

    def publish_deleted(self, before: AssetImpl) -> None:
        message = before.to_fty_proto(AssetOperation.DELETE.value)
        subject = asset_subject(before.asset_type, before.asset_subtype, before.internal_name)
        try:
            self.stream.send(subject, [message.encode()])
        except BusError as e:
            app_logger.error("Failed to publish asset event", extra={"iname": before.internal_name, "error": str(e)})

    def _inform_datacenter(self, asset: AssetImpl) -> None:
        """A UPS changed: its datacenter event (ups list) has to be announced again."""
        if type_id(asset.asset_type) != TYPE_DEVICE or subtype_id(asset.asset_subtype) != SUBTYPE_UPS:
            return
        with self.session() as db:
            dc_id = top_location_id(db, asset.id) if asset.id else None
            dc = db.get(AssetElement, dc_id) if dc_id else None
            dc_name = dc.name if dc is not None and dc.id_type == TYPE_DATACENTER else None
        if dc_name:
            self.publish_asset(dc_name, AssetOperation.UPDATE.value)

    def asset_created(self, after: AssetImpl) -> None:
        self.publish_asset(after.internal_name, AssetOperation.CREATE.value)
        notify_created(self.ng_bus, after)
        self._inform_datacenter(after)

    def asset_updated(self, before: AssetImpl, after: AssetImpl) -> None:
        self.publish_asset(after.internal_name, AssetOperation.UPDATE.value)
        notify_updated(self.ng_bus, before, after)
        self._inform_datacenter(after)
        self._republish_contents(after.internal_name)

    def asset_deleted(self, before: AssetImpl) -> None:
        self.publish_deleted(before)
        notify_deleted(self.ng_bus, before)

    def _asset_changed(self, operation: str, before: Optional[AssetImpl], after: AssetImpl) -> None:
        if operation == AssetOperation.CREATE.value:
            self.asset_created(after)
        else:
            self.asset_updated(before, after)

    # -------------------------------------------------------
    # Messages
    # -------------------------------------------------------
    async def handle_message(self, source: str, message: BusMessage) -> None:
        if source == SOURCE_MAILBOX:
            await self._handle_mailbox(message)
        elif source == SOURCE_STREAM:
            self._handle_stream(message)
        elif source == SOURCE_NG:
            self._handle_ng(message)

    async def _handle_mailbox(self, message: BusMessage) -> None:
        handler = MAILBOX_HANDLERS.get(message.subject)
        if handler is None:
            app_logger.warning("Unknown mailbox subject", extra={"subject": message.subject})
            return
        reply: Optional[Reply] = await handler(self, message)
        if reply is None:
            return
        self.mailbox.sendto(message.sender, reply.subject or message.subject, reply.frames, tracker=message.tracker)

    def _handle_stream(self, message: BusMessage) -> None:
        # own events: contents were already republished by asset_updated()
        if message.sender == self.stream.name:
            return
        if not message.frames:
            return
        proto = try_decode(message.frames[0])
        if proto is None:
            app_logger.debug("Ignoring non fty-proto stream message")
            return

        if message.stream == LICENSING_STREAM:
            if proto.id == METRIC:
                self.licensing.apply_metric(proto)
            return

        if proto.id == ASSET and proto.operation == AssetOperation.UPDATE.value:
            self._republish_contents(proto.name)

    def _republish_contents(self, iname: str) -> None:
        """Re-announces everything located in an updated container."""
        try:
            with self.session() as db:
                contained = select_assets_by_container(db, iname, [])
        except AssetError as e:
            app_logger.debug("Container update ignored", extra={"iname": iname, "error": str(e)})
            return
        if contained:
            app_logger.info("Republishing assets of updated container", extra={"iname": iname, "count": len(contained)})
            self.publish_assets(contained, AssetOperation.UPDATE.value)

    def _handle_ng(self, message: BusMessage) -> None:
        try:
            request = decode_bus_message(message)
        except BusError as e:
            app_logger.warning("Malformed JSON bus message", extra={"error": str(e)})
            return
        if request.meta.subject != SUBJECT_GET:
            app_logger.warning("Unsupported JSON bus request", extra={"subject": request.meta.subject})
            return

        answer = Message()
        try:
            if not request.user_data:
                raise AssetError("Missing asset name")
            answer.set_data(self._dto_json(request.user_data[0]))
        except AssetError as e:
            answer.meta.status = MessageStatus.ERROR
            answer.set_data(e.message)
        try:
            self.ng_bus.reply(ASSET_QUERY_QUEUE, request, answer)
        except BusError as e:
            app_logger.error("Failed to reply on JSON bus", extra={"error": str(e)})

    def _dto_json(self, iname: str) -> str:
        return json.dumps(self.manager.get_dto(iname), ensure_ascii=False)

    # -------------------------------------------------------
    # Pipe commands
    # -------------------------------------------------------
    async def handle_command(self, command: str, *args: Any) -> Any:
        if command == REPEAT_ALL:
            with self.session() as db:
                names = all_asset_names(db)
            count = self.publish_assets(names, AssetOperation.UPDATE.value)
            app_logger.info("All assets republished", extra={"count": count})
            return count

        if command == IMPORT:
            data, user = args
            return await self.manager.import_csv(data, user, listener=self._asset_changed)

        if command == CREATE_JSON:
            document, user = args
            created = await self.manager.create_from_json(document, user)
            self.asset_created(created)
            return created

        if command == DELETE:
            (iname,) = args
            before = await self.manager.delete(iname)
            self.asset_deleted(before)
            return before

        if command == GET_DTO:
            (iname,) = args
            return self.manager.get_dto(iname)

        return await super().handle_command(command, *args)

    # -------------------------------------------------------
    # Helpers for callers living outside the actor task
    # -------------------------------------------------------
    async def import_csv(self, data, user: str = "") -> ImportList:
        return await self.execute(IMPORT, data, user)

    async def create_from_json(self, document, user: str = "") -> AssetImpl:
        return await self.execute(CREATE_JSON, document, user)

    async def delete(self, iname: str) -> AssetImpl:
        return await self.execute(DELETE, iname)

    async def get_dto(self, iname: str):
        return await self.execute(GET_DTO, iname)


def split_import_results(results: ImportList) -> Tuple[List[Tuple[int, int]], List[Tuple[int, str]]]:
    """(row, id) pairs of written rows and (row, error message) pairs of rejected ones."""
    written = [(row, value) for row, value in sorted(results.items()) if not isinstance(value, AssetError)]
    rejected = [(row, value.message) for row, value in sorted(results.items()) if isinstance(value, AssetError)]
    return written, rejected
