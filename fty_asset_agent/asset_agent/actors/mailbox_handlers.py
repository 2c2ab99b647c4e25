# asset_agent/actors/mailbox_handlers.py
"""
Mailbox request handlers of the asset agent, one per subject.

A handler receives the agent and the request and returns the reply to send
(or None when the request must stay unanswered). Errors are converted into
a single reply here; nothing escapes to the agent loop.
"""
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, List, Optional

from asset_agent.bus.broker import BusMessage, Frame
from asset_agent.bus.proto import ASSET, try_decode
from asset_agent.core.errors import (
    ASSET_NOT_FOUND,
    BAD_COMMAND,
    INTERNAL_ERROR,
    MISSING_COMMAND,
    MISSING_INAME,
    OPERATION_NOT_IMPLEMENTED,
    REQUEST_MSGTYPE_EXPECTED,
    UNEXPECTED_COMMAND,
    AssetError,
    ElementNotFound,
)
from asset_agent.core.logger import app_logger
from asset_agent.helpers import topology
from asset_agent.helpers.asset_db import name_to_ext_name
from asset_agent.helpers.asset_event import build_asset_event
from asset_agent.helpers.asset_impl import AssetImpl
from asset_agent.helpers.asset_select import select_assets_by_container, select_assets_by_filter
from asset_agent.helpers.asset_types import AssetOperation
from asset_agent.helpers.db_utils import all_asset_names

if TYPE_CHECKING:
    from asset_agent.actors.asset_server import AssetServer

READONLY = "READONLY"
READWRITE = "READWRITE"
ALL_ASSETS = "$all"


@dataclass
class Reply:
    frames: List[Frame]
    subject: Optional[str] = None


Handler = Callable[["AssetServer", BusMessage], Awaitable[Optional[Reply]]]


# =====================================================================
# TOPOLOGY
# =====================================================================
def _arg(args: List[str], index: int) -> str:
    return args[index] if len(args) > index else ""


def _topology_power(db, asset: str, args: List[str]) -> List[str]:
    return topology.power_sources(db, asset)


def _topology_power_to(db, asset: str, args: List[str]) -> List[str]:
    return [topology.to_json(topology.power_to(db, asset))]


def _topology_powerchains(db, asset: str, args: List[str]) -> List[str]:
    return [topology.to_json(topology.powerchains(db, _arg(args, 0), asset))]


def _topology_location(db, asset: str, args: List[str]) -> List[str]:
    return [topology.to_json(topology.location(db, _arg(args, 0), asset, _arg(args, 2)))]


def _topology_input_powerchain(db, asset: str, args: List[str]) -> List[str]:
    return [topology.to_json(topology.input_powerchain(db, asset))]


# command -> (position of the asset argument, implementation)
TOPOLOGY_COMMANDS = {
    "POWER": (0, _topology_power),
    "POWER_TO": (0, _topology_power_to),
    "POWERCHAINS": (1, _topology_powerchains),
    "LOCATION": (1, _topology_location),
    "INPUT_POWERCHAIN": (0, _topology_input_powerchain),
}


async def handle_topology(agent: "AssetServer", message: BusMessage) -> Optional[Reply]:
    """
    Request: REQUEST, uuid, command, args...
    Reply:   uuid, REPLY, command, asset, OK|ERROR, payload...
    """
    frames = message.strings()
    if len(frames) < 3 or not all(frames[:3]):
        app_logger.warning("Malformed TOPOLOGY request dropped", extra={"frames": len(frames)})
        return None

    message_type, request_uuid, command = frames[:3]
    args = frames[3:]
    prefix = [request_uuid, "REPLY", command]

    if message_type != "REQUEST":
        return Reply(prefix + ["ERROR", f"{REQUEST_MSGTYPE_EXPECTED} (msg type: {message_type})"])

    entry = TOPOLOGY_COMMANDS.get(command)
    if entry is None:
        return Reply(prefix + ["ERROR", f"{UNEXPECTED_COMMAND} (command: {command})"])

    asset_index, implementation = entry
    asset = _arg(args, asset_index)
    try:
        with agent.session() as db:
            payload = implementation(db, asset, args)
    except topology.TopologyError as e:
        return Reply(prefix + [asset, "ERROR", e.message])
    except ElementNotFound:
        return Reply(prefix + [asset, "ERROR", "Asset not found"])
    except Exception:
        app_logger.exception("TOPOLOGY request failed", extra={"command": command, "asset": asset})
        return Reply(prefix + [asset, "ERROR", "Internal error"])
    return Reply(prefix + [asset, "OK"] + payload)


# =====================================================================
# ASSET_MANIPULATION
# =====================================================================
async def handle_asset_manipulation(agent: "AssetServer", message: BusMessage) -> Optional[Reply]:
    """
    Request: READONLY|READWRITE, fty-proto asset
    Reply:   OK, iname  |  ERROR, reason
    """
    if not message.frames or message.strings()[0] not in (READONLY, READWRITE):
        return Reply(["ERROR", BAD_COMMAND])
    read_only = message.strings()[0] == READONLY

    proto = try_decode(message.frames[1]) if len(message.frames) > 1 else None
    if proto is None or proto.id != ASSET:
        app_logger.warning("ASSET_MANIPULATION payload is not an fty-proto asset, request dropped")
        return None

    operation = proto.operation
    try:
        agent.manager.check_configurability()
        asset = AssetImpl.from_fty_proto(proto, read_only)

        if operation in (AssetOperation.CREATE.value, AssetOperation.CREATE_FORCE.value):
            created = await agent.manager.create(asset, force=operation == AssetOperation.CREATE_FORCE.value)
            agent.asset_created(created)
            return Reply(["OK", created.internal_name])

        if operation == AssetOperation.UPDATE.value:
            before, after = await agent.manager.update(asset)
            agent.asset_updated(before, after)
            return Reply(["OK", after.internal_name])

        if operation in (AssetOperation.DELETE.value, AssetOperation.RETIRE.value):
            before = await agent.manager.delete(proto.name)
            agent.asset_deleted(before)
            return Reply(["OK", before.internal_name])

    except AssetError as e:
        app_logger.warning(
            "Asset manipulation failed",
            extra={"operation": operation, "iname": proto.name, "error": str(e)},
        )
        return Reply(["ERROR", e.message])
    except Exception as e:
        app_logger.exception("Asset manipulation failed", extra={"operation": operation, "iname": proto.name})
        return Reply(["ERROR", str(e) or INTERNAL_ERROR])

    app_logger.warning("Operation not implemented", extra={"operation": operation})
    return Reply(["ERROR", OPERATION_NOT_IMPLEMENTED])


# =====================================================================
# ASSETS_IN_CONTAINER / ASSETS
# =====================================================================
async def handle_assets_in_container(agent: "AssetServer", message: BusMessage) -> Optional[Reply]:
    """
    Request: GET, container, filters...  (empty container = every asset)
    Reply:   OK, iname...  |  ERROR, reason
    """
    frames = message.strings()
    if len(frames) < 2:
        app_logger.warning("ASSETS_IN_CONTAINER request without container dropped")
        return None
    if frames[0] != "GET":
        return Reply(["ERROR", BAD_COMMAND])

    container, filters = frames[1], frames[2:]
    try:
        with agent.session() as db:
            names = select_assets_by_container(db, container, filters)
    except ElementNotFound:
        return Reply(["ERROR", ASSET_NOT_FOUND])
    except Exception:
        app_logger.exception("ASSETS_IN_CONTAINER request failed", extra={"container": container})
        return Reply(["ERROR", INTERNAL_ERROR])
    return Reply(["OK"] + names)


async def handle_assets(agent: "AssetServer", message: BusMessage) -> Optional[Reply]:
    """
    Request: GET, uuid, filters...
    Reply:   uuid, OK, iname...  |  uuid, ERROR, reason
    """
    frames = message.strings()
    if not frames:
        return Reply(["0", "ERROR", MISSING_COMMAND])

    command = frames[0]
    request_uuid = frames[1] if len(frames) > 1 else ""
    prefix = [request_uuid] if request_uuid else []
    if command != "GET":
        return Reply(prefix + ["ERROR", BAD_COMMAND])

    try:
        with agent.session() as db:
            names = select_assets_by_filter(db, frames[2:])
    except Exception:
        app_logger.exception("ASSETS request failed")
        return Reply(prefix + ["ERROR", INTERNAL_ERROR])
    return Reply([request_uuid, "OK"] + names)


# =====================================================================
# ENAME_FROM_INAME
# =====================================================================
async def handle_ename_from_iname(agent: "AssetServer", message: BusMessage) -> Optional[Reply]:
    frames = message.strings()
    if not frames or not frames[0]:
        return Reply(["ERROR", MISSING_INAME])

    try:
        with agent.session() as db:
            ename = name_to_ext_name(db, frames[0])
    except AssetError:
        return Reply(["ERROR", ASSET_NOT_FOUND])
    if not ename:
        return Reply(["ERROR", ASSET_NOT_FOUND])
    return Reply(["OK", ename])


# =====================================================================
# REPUBLISH
# =====================================================================
async def handle_republish(agent: "AssetServer", message: BusMessage) -> Optional[Reply]:
    """Re-announces the listed assets (``$all`` or nothing = every asset). No reply."""
    frames = message.strings()
    if not frames or ALL_ASSETS in frames:
        with agent.session() as db:
            names = all_asset_names(db)
    else:
        names = frames
    agent.publish_assets(names, AssetOperation.UPDATE.value)
    return None


# =====================================================================
# ASSET_DETAIL
# =====================================================================
async def handle_asset_detail(agent: "AssetServer", message: BusMessage) -> Optional[Reply]:
    """
    Request: GET, uuid, iname
    Reply:   uuid, fty-proto (subject type.subtype@iname)  |  uuid, ERROR, reason
    """
    frames = message.strings()
    command = frames[0] if frames else ""
    request_uuid = frames[1] if len(frames) > 1 else ""
    prefix = [request_uuid] if request_uuid else []
    if command != "GET":
        return Reply(prefix + ["ERROR", BAD_COMMAND])

    iname = frames[2] if len(frames) > 2 else ""
    try:
        with agent.session() as db:
            event = build_asset_event(db, iname, AssetOperation.UPDATE.value)
    except ElementNotFound:
        return Reply(prefix + ["ERROR", ASSET_NOT_FOUND])
    except Exception:
        app_logger.exception("ASSET_DETAIL request failed", extra={"iname": iname})
        return Reply(prefix + ["ERROR", INTERNAL_ERROR])
    return Reply([request_uuid, event.encode()], subject=event.subject)


MAILBOX_HANDLERS: Dict[str, Handler] = {
    "TOPOLOGY": handle_topology,
    "ASSET_MANIPULATION": handle_asset_manipulation,
    "ASSETS_IN_CONTAINER": handle_assets_in_container,
    "ASSETS": handle_assets,
    "ENAME_FROM_INAME": handle_ename_from_iname,
    "REPUBLISH": handle_republish,
    "ASSET_DETAIL": handle_asset_detail,
}