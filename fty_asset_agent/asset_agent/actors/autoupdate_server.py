# asset_agent/actors/autoupdate_server.py
"""
AutoUpdate actor.

On WAKEUP it asks the asset agent for the rack controllers, keeps the
active ones and publishes an ``inventory`` event for each of them with the
addresses and names it could resolve:

    ip.N, mac.N        local interfaces (local controller only)
    hostname.1, fqdn.1 reverse DNS of the first resolvable address
"""
import re
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from asset_agent.actors.actor_base import Actor
from asset_agent.bus.broker import Broker, sync_request
from asset_agent.bus.proto import ASSET, FtyProto, encode_asset, try_decode
from asset_agent.core.config import settings
from asset_agent.core.errors import BusError
from asset_agent.core.logger import app_logger
from asset_agent.helpers.asset_types import AssetOperation, AssetStatus
from asset_agent.helpers.dns_helper import (
    InterfaceInfo,
    local_addresses,
    local_interfaces_async,
    resolve_hostname_async,
)

WAKEUP = "WAKEUP"
LOCAL_CONTROLLER = "rackcontroller-0"
RACKCONTROLLER_FILTER = "rackcontroller"

_IP_KEY_RE = re.compile(r"^ip\.(\d+)$")

Resolver = Callable[[str], Awaitable[Tuple[str, str]]]
InterfacesProvider = Callable[[], Awaitable[List[InterfaceInfo]]]


def asset_ips(message: FtyProto) -> List[str]:
    """Values of the ``ip.N`` ext-attributes ordered by N."""
    indexed = []
    for key, value in message.ext.items():
        match = _IP_KEY_RE.match(key)
        if match and value:
            indexed.append((int(match.group(1)), value))
    return [value for _, value in sorted(indexed)]


class AutoUpdateServer(Actor):
    def __init__(
        self,
        broker: Broker,
        name: Optional[str] = None,
        asset_agent_name: Optional[str] = None,
        resolver: Optional[Resolver] = None,
        interfaces_provider: Optional[InterfacesProvider] = None,
    ) -> None:
        super().__init__(broker, name or settings.AUTOUPDATE_AGENT_NAME)
        self.asset_agent_name = asset_agent_name or settings.ASSET_AGENT_NAME
        self._resolver = resolver or resolve_hostname_async
        self._interfaces_provider = interfaces_provider or local_interfaces_async
        self.stream = None

    def setup(self) -> None:
        self.stream = self.connect_client("stream", f"{self.name}-stream")
        self.stream.set_producer("ASSETS")

    async def handle_command(self, command: str, *args: Any) -> Any:
        if command == WAKEUP:
            return await self.wakeup()
        return await super().handle_command(command, *args)

    # -------------------------------------------------------
    # Requests to the asset agent
    # -------------------------------------------------------
    async def _request(self, subject: str, frames: List[str]) -> List[bytes]:
        reply = await sync_request(
            self.broker,
            self.asset_agent_name,
            subject,
            frames,
            settings.MAILBOX_TIMEOUT_SECONDS,
            client_prefix=self.name,
        )
        return reply.frames

    async def rack_controllers(self) -> List[str]:
        request_uuid = uuid.uuid4().hex
        frames = [frame.decode("utf-8", errors="replace") for frame in
                  await self._request("ASSETS", ["GET", request_uuid, RACKCONTROLLER_FILTER])]
        if len(frames) < 2 or frames[0] != request_uuid or frames[1] != "OK":
            raise BusError(f"unexpected ASSETS reply: {frames[:3]}")
        return frames[2:]

    async def asset_detail(self, iname: str) -> Optional[FtyProto]:
        request_uuid = uuid.uuid4().hex
        frames = await self._request("ASSET_DETAIL", ["GET", request_uuid, iname])
        if len(frames) < 2:
            return None
        message = try_decode(frames[1])
        if message is None or message.id != ASSET:
            app_logger.warning("No detail for asset", extra={"iname": iname})
            return None
        return message

    # -------------------------------------------------------
    # Inventory
    # -------------------------------------------------------
    async def inventory_ext(
        self,
        message: FtyProto,
        interfaces: List[InterfaceInfo],
        local: Set[str],
    ) -> Dict[str, str]:
        ips = asset_ips(message)
        ext: Dict[str, str] = {}

        if message.name == LOCAL_CONTROLLER or any(ip in local for ip in ips):
            for index, info in enumerate(interfaces, start=1):
                if info.ipv4:
                    ext[f"ip.{index}"] = info.ipv4
                if info.mac:
                    ext[f"mac.{index}"] = info.mac
            ips = [info.ipv4 for info in interfaces if info.ipv4] or ips

        for ip in ips:
            hostname, fqdn = await self._resolver(ip)
            if hostname:
                ext["hostname.1"] = hostname
                ext["fqdn.1"] = fqdn
                break
        return ext

    async def wakeup(self) -> int:
        """Returns the number of inventory events published."""
        try:
            names = await self.rack_controllers()
        except BusError as e:
            app_logger.warning("Cannot list rack controllers", extra={"error": str(e)})
            return 0

        try:
            interfaces = await self._interfaces_provider()
        except OSError as e:
            app_logger.warning("Cannot enumerate local interfaces", extra={"error": str(e)})
            interfaces = []
        local = local_addresses(interfaces)

        published = 0
        for iname in names:
            try:
                message = await self.asset_detail(iname)
            except BusError as e:
                app_logger.warning("Cannot read rack controller", extra={"iname": iname, "error": str(e)})
                continue
            if message is None or message.aux_string("status") != AssetStatus.ACTIVE.value:
                continue

            ext = await self.inventory_ext(message, interfaces, local)
            if not ext:
                continue
            self.stream.send(
                f"inventory@{iname}",
                [encode_asset(iname, AssetOperation.INVENTORY.value, ext=ext)],
            )
            published += 1
        app_logger.debug("Auto-update done", extra={"controllers": len(names), "published": published})
        return published
