# asset_agent/helpers/asset_types.py
"""
Persistent type/subtype/link-type ids. The numbers are stored in the
database and travel on the bus, so they never change.
"""
import re
from enum import Enum
from typing import Dict, Optional


class AssetStatus(str, Enum):
    ACTIVE = "active"
    NONACTIVE = "nonactive"


class AssetOperation(str, Enum):
    CREATE = "create"
    CREATE_FORCE = "create-force"
    UPDATE = "update"
    DELETE = "delete"
    RETIRE = "retire"
    INVENTORY = "inventory"


# -------------------------------------------------------
# Types
# -------------------------------------------------------
TYPE_UNKNOWN = 0
TYPE_GROUP = 1
TYPE_DATACENTER = 2
TYPE_ROOM = 3
TYPE_ROW = 4
TYPE_RACK = 5
TYPE_DEVICE = 6

TYPE_IDS: Dict[str, int] = {
    "unknown": TYPE_UNKNOWN,
    "group": TYPE_GROUP,
    "datacenter": TYPE_DATACENTER,
    "room": TYPE_ROOM,
    "row": TYPE_ROW,
    "rack": TYPE_RACK,
    "device": TYPE_DEVICE,
    "infra-service": 7,
    "cluster": 8,
    "hypervisor": 9,
    "virtual-machine": 10,
    "storage-service": 11,
    "vapp": 12,
    "connector": 13,
    "server": 15,
    "planner": 16,
    "plan": 17,
    "cops": 18,
    "operating-system": 19,
    "host-group": 20,
}

TYPE_NAMES: Dict[int, str] = {type_id: name for name, type_id in TYPE_IDS.items()}

# -------------------------------------------------------
# Subtypes
# -------------------------------------------------------
SUBTYPE_UNKNOWN = 0
SUBTYPE_UPS = 1
SUBTYPE_GENSET = 2
SUBTYPE_EPDU = 3
SUBTYPE_PDU = 4
SUBTYPE_SERVER = 5
SUBTYPE_FEED = 6
SUBTYPE_STS = 7
SUBTYPE_N_A = 11
SUBTYPE_RACKCONTROLLER = 13

SUBTYPE_IDS: Dict[str, int] = {
    "unknown": SUBTYPE_UNKNOWN,
    "ups": SUBTYPE_UPS,
    "genset": SUBTYPE_GENSET,
    "epdu": SUBTYPE_EPDU,
    "pdu": SUBTYPE_PDU,
    "server": SUBTYPE_SERVER,
    "feed": SUBTYPE_FEED,
    "sts": SUBTYPE_STS,
    "switch": 8,
    "storage": 9,
    "virtual": 10,
    "N_A": SUBTYPE_N_A,
    "router": 12,
    "rackcontroller": SUBTYPE_RACKCONTROLLER,
    "sensor": 14,
    "appliance": 15,
    "chassis": 16,
    "patchpanel": 17,
    "other": 18,
    "sensorgpio": 19,
    "gpo": 20,
}

SUBTYPE_NAMES: Dict[int, str] = {subtype_id: name for name, subtype_id in SUBTYPE_IDS.items()}

# -------------------------------------------------------
# Link types
# -------------------------------------------------------
LINK_TYPE_POWER_CHAIN = 1

LINK_TYPE_NAMES: Dict[int, str] = {
    LINK_TYPE_POWER_CHAIN: "power chain",
}

# Containers ordered by nesting rank: a container can only sit in a
# container with a lower rank.
CONTAINER_RANKS: Dict[int, int] = {
    TYPE_DATACENTER: 1,
    TYPE_ROOM: 2,
    TYPE_ROW: 3,
    TYPE_RACK: 4,
}

POWER_DEVICE_SUBTYPES = frozenset(
    {SUBTYPE_UPS, SUBTYPE_EPDU, SUBTYPE_PDU, SUBTYPE_STS, SUBTYPE_GENSET}
)

MAX_TOPOLOGY_DEPTH = 10

_OK_NAME_RE = re.compile(r"^[^\x00-\x1f]+$")


def type_id(name: Optional[str]) -> Optional[int]:
    if not name:
        return None
    return TYPE_IDS.get(name.strip().lower())


def subtype_id(name: Optional[str]) -> Optional[int]:
    if not name:
        return None
    name = name.strip()
    if name.upper() in ("N_A", "N/A"):
        return SUBTYPE_N_A
    return SUBTYPE_IDS.get(name.lower())


def type_name(type_id_value: Optional[int]) -> str:
    return TYPE_NAMES.get(type_id_value, "unknown") if type_id_value is not None else "unknown"


def subtype_name(subtype_id_value: Optional[int]) -> str:
    if subtype_id_value is None:
        return "unknown"
    return SUBTYPE_NAMES.get(subtype_id_value, "unknown")


def is_container(type_id_value: Optional[int]) -> bool:
    return type_id_value in CONTAINER_RANKS


def is_ok_name(name: Optional[str]) -> bool:
    """Names stored in the DB are non-empty, printable and at most 50 chars."""
    if not name or len(name) > 50:
        return False
    return bool(_OK_NAME_RE.match(name))


def parse_priority(value) -> int:
    """Accepts 1..5 as int or string, optionally prefixed with 'P'."""
    text = str(value).strip()
    if text[:1] in ("P", "p"):
        text = text[1:]
    priority = int(text)
    if priority < 1 or priority > 5:
        raise ValueError(f"priority {priority} is out of range 1..5")
    return priority
