# asset_agent/helpers/topology.py
"""
Fixed topology queries answered on the TOPOLOGY mailbox subject.

Power commands work on links of type power chain; location commands on the
parent chain. Every JSON payload is built from plain dicts/lists and
serialized by the caller.
"""
import json
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from asset_agent.core.errors import AssetError
from asset_agent.helpers.asset_db import (
    ancestor_ids,
    container_member_ids,
    downstream_ids,
    upstream_ids,
)
from asset_agent.helpers.asset_types import (
    LINK_TYPE_POWER_CHAIN,
    POWER_DEVICE_SUBTYPES,
    TYPE_DATACENTER,
    TYPE_DEVICE,
    TYPE_GROUP,
    is_container,
    subtype_name,
    type_name,
)
from asset_agent.models.asset_models import AssetElement, AssetGroupRelation, AssetLink, ExtAttribute

POWERCHAINS_COMMANDS = ("to", "from", "filter_dc", "filter_group")
LOCATION_COMMANDS = ("to", "from")
ALL_ASSETS = "$all"


class TopologyError(AssetError):
    """Failure with the human readable reason sent in the reply."""

    code = "TopologyError"


# -------------------------------------------------------
# Helpers
# -------------------------------------------------------
def _get_asset(db: Session, iname: Optional[str]) -> AssetElement:
    if not iname:
        raise TopologyError("Missing argument")
    element = db.query(AssetElement).filter(AssetElement.name == iname).first()
    if element is None:
        raise TopologyError("Asset not found")
    return element


def _ext_names(db: Session, ids: Iterable[int]) -> Dict[int, str]:
    wanted = list(set(ids))
    if not wanted:
        return {}
    rows = (
        db.query(ExtAttribute.id_asset_element, ExtAttribute.value)
        .filter(ExtAttribute.keytag == "name", ExtAttribute.id_asset_element.in_(wanted))
        .all()
    )
    return {row.id_asset_element: row.value for row in rows}


def _describe(elements: List[AssetElement], ext_names: Dict[int, str]) -> List[Dict[str, Any]]:
    return [
        {
            "name": ext_names.get(element.id, element.name),
            "id": element.name,
            "type": type_name(element.id_type),
            "sub_type": subtype_name(element.id_subtype),
        }
        for element in elements
    ]


def _elements(db: Session, ids: Iterable[int]) -> List[AssetElement]:
    wanted = list(dict.fromkeys(ids))
    if not wanted:
        return []
    by_id = {element.id: element for element in db.query(AssetElement).filter(AssetElement.id.in_(wanted)).all()}
    return [by_id[asset_id] for asset_id in wanted if asset_id in by_id]


def _power_links(db: Session) -> List[AssetLink]:
    return (
        db.query(AssetLink)
        .filter(AssetLink.id_asset_link_type == LINK_TYPE_POWER_CHAIN)
        .order_by(AssetLink.id)
        .all()
    )


def _powerchain_payload(db: Session, device_ids: List[int], links: List[AssetLink]) -> Dict[str, Any]:
    ids = list(device_ids)
    for link in links:
        for asset_id in (link.id_asset_device_src, link.id_asset_device_dest):
            if asset_id not in ids:
                ids.append(asset_id)
    elements = _elements(db, ids)
    names = {element.id: element.name for element in elements}

    chains = []
    for link in links:
        chain = {"src-id": names.get(link.id_asset_device_src, ""), "dst-id": names.get(link.id_asset_device_dest, "")}
        if link.src_out:
            chain["src-socket"] = link.src_out
        if link.dest_in:
            chain["dst-socket"] = link.dest_in
        chains.append(chain)
    return {"devices": _describe(elements, _ext_names(db, ids)), "powerchains": chains}


# -------------------------------------------------------
# POWER
# -------------------------------------------------------
def power_sources(db: Session, iname: str) -> List[str]:
    """
    Internal names of the power devices feeding the asset, transitively.
    For a container the sources of every device inside it are returned.
    """
    element = _get_asset(db, iname)
    if is_container(element.id_type):
        start = container_member_ids(db, element.id)
    else:
        start = [element.id]
    upstream = [asset_id for asset_id in upstream_ids(db, start) if asset_id not in start]
    return [
        item.name
        for item in _elements(db, upstream)
        if item.id_type == TYPE_DEVICE and item.id_subtype in POWER_DEVICE_SUBTYPES
    ]


# -------------------------------------------------------
# POWER_TO
# -------------------------------------------------------
def power_to(db: Session, iname: str) -> Dict[str, Any]:
    """One-hop downstream power chain of the asset."""
    element = _get_asset(db, iname)
    links = [link for link in _power_links(db) if link.id_asset_device_src == element.id]
    return _powerchain_payload(db, [element.id], links)


# -------------------------------------------------------
# POWERCHAINS
# -------------------------------------------------------
def powerchains(db: Session, select_cmd: Optional[str], iname: Optional[str]) -> Dict[str, Any]:
    if not select_cmd or select_cmd not in POWERCHAINS_COMMANDS:
        raise TopologyError(f"Invalid command '{select_cmd or ''}'")
    element = _get_asset(db, iname)
    links = _power_links(db)

    if select_cmd == "to":
        members = [element.id] + upstream_ids(db, [element.id])
    elif select_cmd == "from":
        members = [element.id] + downstream_ids(db, [element.id])
    elif select_cmd == "filter_dc":
        if element.id_type != TYPE_DATACENTER:
            raise TopologyError(f"Asset '{iname}' is not a datacenter")
        members = container_member_ids(db, element.id)
    else:
        if element.id_type != TYPE_GROUP:
            raise TopologyError(f"Asset '{iname}' is not a group")
        members = [
            row.id_asset_element
            for row in db.query(AssetGroupRelation.id_asset_element)
            .filter(AssetGroupRelation.id_asset_group == element.id)
            .order_by(AssetGroupRelation.id_asset_element)
            .all()
        ]

    member_set: Set[int] = set(members)
    selected = [
        link for link in links
        if link.id_asset_device_src in member_set and link.id_asset_device_dest in member_set
    ]
    device_ids = [asset_id for asset_id in members if asset_id != element.id or select_cmd in ("to", "from")]
    return _powerchain_payload(db, device_ids, selected)


# -------------------------------------------------------
# INPUT_POWERCHAIN
# -------------------------------------------------------
def input_powerchain(db: Session, iname: Optional[str]) -> Dict[str, Any]:
    """Power links entering the datacenter from a source located outside of it."""
    element = _get_asset(db, iname)
    if element.id_type != TYPE_DATACENTER:
        raise TopologyError(f"Asset '{iname}' is not a datacenter")
    members = set(container_member_ids(db, element.id))
    selected = [
        link for link in _power_links(db)
        if link.id_asset_device_dest in members and link.id_asset_device_src not in members
    ]
    return _powerchain_payload(db, [], selected)


# -------------------------------------------------------
# LOCATION
# -------------------------------------------------------
def parse_location_options(options: Optional[str]) -> Dict[str, Any]:
    """Options JSON: recursive (bool), depth (int, 0 = unlimited), containers_only (bool)."""
    parsed = {"recursive": False, "depth": 0, "containers_only": False}
    if not options:
        return parsed
    try:
        values = json.loads(options)
    except ValueError:
        raise TopologyError(f"Invalid options '{options}'")
    if not isinstance(values, dict):
        raise TopologyError(f"Invalid options '{options}'")
    for key, value in values.items():
        if key not in parsed:
            raise TopologyError(f"Unknown option '{key}'")
        if key == "depth":
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise TopologyError(f"Invalid value for option '{key}'")
        elif not isinstance(value, bool):
            raise TopologyError(f"Invalid value for option '{key}'")
        parsed[key] = value
    return parsed


def _location_tree(
    element: AssetElement,
    children: Dict[Optional[int], List[AssetElement]],
    ext_names: Dict[int, str],
    options: Dict[str, Any],
    level: int,
) -> Dict[str, Any]:
    node = _describe([element], ext_names)[0]
    node["contains"] = []
    if level > 0 and not options["recursive"]:
        return node
    if options["depth"] and level >= options["depth"]:
        return node
    for child in children.get(element.id, []):
        if options["containers_only"] and not is_container(child.id_type):
            continue
        node["contains"].append(_location_tree(child, children, ext_names, options, level + 1))
    return node


def location(db: Session, select_cmd: Optional[str], iname: Optional[str], options: Optional[str] = None) -> Dict[str, Any]:
    if not select_cmd or select_cmd not in LOCATION_COMMANDS:
        raise TopologyError(f"Invalid command '{select_cmd or ''}'")
    parsed = parse_location_options(options)

    if select_cmd == "to":
        element = _get_asset(db, iname)
        chain = _elements(db, [element.id] + ancestor_ids(db, element.id))
        return {"to": _describe(chain, _ext_names(db, [item.id for item in chain]))}

    if not iname:
        raise TopologyError("Missing argument")
    elements = db.query(AssetElement).filter(AssetElement.id_type != TYPE_GROUP).order_by(AssetElement.id).all()
    children: Dict[Optional[int], List[AssetElement]] = {}
    for item in elements:
        children.setdefault(item.id_parent, []).append(item)
    ext_names = _ext_names(db, [item.id for item in elements])

    if iname == ALL_ASSETS:
        roots = children.get(None, [])
        forest_options = dict(parsed, recursive=True) if parsed["recursive"] else parsed
        return {
            "from": [
                _location_tree(root, children, ext_names, forest_options, 0)
                for root in roots
                if not parsed["containers_only"] or is_container(root.id_type)
            ]
        }

    element = _get_asset(db, iname)
    return {"from": [_location_tree(element, children, ext_names, parsed, 0)]}


def to_json(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False)
