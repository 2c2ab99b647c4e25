# asset_agent/helpers/asset_db.py
"""
Low level queries on the asset tables: name/id conversions, ext-attributes,
power links and the 10-deep super-parent chain.
"""
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session, aliased

from asset_agent.core.errors import BadParams, ElementNotFound
from asset_agent.helpers.asset_types import (
    LINK_TYPE_POWER_CHAIN,
    MAX_TOPOLOGY_DEPTH,
    SUBTYPE_UPS,
    TYPE_DATACENTER,
    TYPE_DEVICE,
    is_ok_name,
)
from asset_agent.models.asset_models import (
    AssetElement,
    AssetGroupRelation,
    AssetLink,
    ExtAttribute,
)


@dataclass
class ExtAttrValue:
    value: str
    read_only: bool = False


@dataclass
class SuperParent:
    """Ancestors of one asset, nearest first. Missing levels are None."""

    asset_id: int
    ids: List[Optional[int]] = field(default_factory=list)
    names: List[Optional[str]] = field(default_factory=list)
    type_ids: List[Optional[int]] = field(default_factory=list)

    def chain(self) -> List[int]:
        return [parent_id for parent_id in self.ids if parent_id is not None]


# =========================================================================================================
# Name / id conversions
# =========================================================================================================
def name_to_asset_id(db: Session, name: str) -> int:
    if not is_ok_name(name):
        raise BadParams("name", name, f"'{name}' name is not valid")
    row = db.query(AssetElement.id).filter(AssetElement.name == name).first()
    if row is None:
        raise ElementNotFound(name)
    return row.id


def id_to_name_ext_name(db: Session, asset_id: int) -> Tuple[str, str]:
    """Returns (internal name, external name) of an asset which has an ext name."""
    row = (
        db.query(AssetElement.name, ExtAttribute.value)
        .join(
            ExtAttribute,
            and_(
                ExtAttribute.id_asset_element == AssetElement.id,
                ExtAttribute.keytag == "name",
            ),
        )
        .filter(AssetElement.id == asset_id)
        .first()
    )
    if row is None:
        raise ElementNotFound(str(asset_id))
    return row.name, row.value


def ext_name_to_asset_name(db: Session, ext_name: str) -> str:
    row = (
        db.query(AssetElement.name)
        .join(ExtAttribute, ExtAttribute.id_asset_element == AssetElement.id)
        .filter(ExtAttribute.keytag == "name", ExtAttribute.value == ext_name)
        .first()
    )
    if row is None:
        raise ElementNotFound(ext_name)
    return row.name


def ext_name_to_asset_id(db: Session, ext_name: str) -> int:
    row = (
        db.query(ExtAttribute.id_asset_element)
        .filter(ExtAttribute.keytag == "name", ExtAttribute.value == ext_name)
        .first()
    )
    if row is None:
        raise ElementNotFound(ext_name)
    return row.id_asset_element


def name_to_ext_name(db: Session, name: str) -> str:
    if not is_ok_name(name):
        raise BadParams("name", name, f"'{name}' name is not valid")
    row = (
        db.query(ExtAttribute.value)
        .join(AssetElement, AssetElement.id == ExtAttribute.id_asset_element)
        .filter(ExtAttribute.keytag == "name", AssetElement.name == name)
        .first()
    )
    if row is None:
        raise ElementNotFound(name)
    return row.value


def resolve_asset_name(db: Session, name_or_ext_name: str) -> AssetElement:
    """Look an asset up by internal name first, then by external name (case-insensitive)."""
    asset = db.query(AssetElement).filter(AssetElement.name == name_or_ext_name).first()
    if asset is not None:
        return asset
    row = (
        db.query(ExtAttribute.id_asset_element)
        .filter(ExtAttribute.keytag == "name", func.lower(ExtAttribute.value) == name_or_ext_name.lower())
        .first()
    )
    if row is None:
        raise ElementNotFound(name_or_ext_name)
    return db.get(AssetElement, row.id_asset_element)


# =========================================================================================================
# Statistics
# =========================================================================================================
def max_number_of_power_links(db: Session) -> int:
    """Maximum number of power sources feeding one device."""
    per_dest = (
        db.query(func.count(AssetLink.id).label("power_src_count"))
        .filter(AssetLink.id_asset_link_type == LINK_TYPE_POWER_CHAIN)
        .group_by(AssetLink.id_asset_device_dest)
        .subquery()
    )
    return db.query(func.max(per_dest.c.power_src_count)).scalar() or 0


def max_number_of_asset_groups(db: Session) -> int:
    """Maximum number of groups one asset belongs to."""
    per_element = (
        db.query(func.count(AssetGroupRelation.id).label("grp_count"))
        .group_by(AssetGroupRelation.id_asset_element)
        .subquery()
    )
    return db.query(func.max(per_element.c.grp_count)).scalar() or 0


def count_keytag(db: Session, keytag: str, value: str, element_id: int = 0) -> int:
    """
    How many times the keytag/value couple is stored. With ``element_id`` the
    count is restricted to that element, and an unknown element yields 0.
    """
    query = db.query(func.count(ExtAttribute.id)).filter(
        ExtAttribute.keytag == keytag,
        ExtAttribute.value == value,
    )
    if element_id:
        query = query.filter(ExtAttribute.id_asset_element == element_id)
    return query.scalar() or 0


# =========================================================================================================
# Ext attributes
# =========================================================================================================
def select_ext_attributes(db: Session, asset_id: int) -> Dict[str, ExtAttrValue]:
    rows = (
        db.query(ExtAttribute.keytag, ExtAttribute.value, ExtAttribute.read_only)
        .filter(ExtAttribute.id_asset_element == asset_id)
        .order_by(ExtAttribute.keytag)
        .all()
    )
    return {row.keytag: ExtAttrValue(row.value, bool(row.read_only)) for row in rows}


def upsert_ext_attribute(
    db: Session,
    asset_id: int,
    keytag: str,
    value: str,
    read_only: bool,
) -> ExtAttribute:
    attribute = (
        db.query(ExtAttribute)
        .filter(ExtAttribute.id_asset_element == asset_id, ExtAttribute.keytag == keytag)
        .first()
    )
    if attribute is None:
        attribute = ExtAttribute(
            id_asset_element=asset_id,
            keytag=keytag,
            value=value,
            read_only=read_only,
        )
        db.add(attribute)
    else:
        attribute.value = value
        attribute.read_only = read_only
    return attribute


# =========================================================================================================
# Super parent
# =========================================================================================================
def _super_parent_levels():
    return [aliased(AssetElement, name=f"p{level}") for level in range(1, MAX_TOPOLOGY_DEPTH + 1)]


def super_parent_query(db: Session):
    """
    Query equivalent to v_bios_asset_element_super_parent: one row per asset
    with id_parentN/name_parentN/id_type_parentN for N in 1..10.
    Returns the query and the aliased parent levels.
    """
    levels = _super_parent_levels()
    columns = [AssetElement.id.label("id_asset_element")]
    for index, level in enumerate(levels, start=1):
        columns.append(level.id.label(f"id_parent{index}"))
        columns.append(level.name.label(f"name_parent{index}"))
        columns.append(level.id_type.label(f"id_type_parent{index}"))

    query = db.query(*columns).select_from(AssetElement)
    previous = AssetElement
    for level in levels:
        query = query.outerjoin(level, level.id == previous.id_parent)
        previous = level
    return query, levels


def select_super_parent(db: Session, asset_id: int) -> SuperParent:
    query, _ = super_parent_query(db)
    row = query.filter(AssetElement.id == asset_id).first()
    if row is None:
        raise ElementNotFound(str(asset_id))

    result = SuperParent(asset_id=asset_id)
    mapping = row._mapping
    for index in range(1, MAX_TOPOLOGY_DEPTH + 1):
        result.ids.append(mapping[f"id_parent{index}"])
        result.names.append(mapping[f"name_parent{index}"])
        result.type_ids.append(mapping[f"id_type_parent{index}"])
    return result


def ancestor_ids(db: Session, asset_id: int) -> List[int]:
    """Walks the parent chain without the 10-level cap; stops on a cycle."""
    result: List[int] = []
    seen: Set[int] = {asset_id}
    current = db.get(AssetElement, asset_id)
    while current is not None and current.id_parent is not None:
        if current.id_parent in seen:
            break
        result.append(current.id_parent)
        seen.add(current.id_parent)
        current = db.get(AssetElement, current.id_parent)
    return result


def top_location_id(db: Session, asset_id: int) -> Optional[int]:
    """Top-level container of an asset (a data center is its own top)."""
    chain = select_super_parent(db, asset_id).chain()
    if chain:
        return chain[-1]
    asset = db.get(AssetElement, asset_id)
    if asset is not None and asset.id_type == TYPE_DATACENTER:
        return asset.id
    return None


def container_member_ids(db: Session, container_id: int) -> List[int]:
    """Ids of every asset located (directly or not) inside the container."""
    query, levels = super_parent_query(db)
    rows = (
        query.filter(or_(*[level.id == container_id for level in levels]))
        .order_by(AssetElement.id)
        .all()
    )
    return [row.id_asset_element for row in rows]


def select_dc_upses(db: Session, dc_id: int) -> List[str]:
    """Names of active UPS devices located in the data center, ordered by name."""
    member_ids = container_member_ids(db, dc_id)
    if not member_ids:
        return []
    rows = (
        db.query(AssetElement.name)
        .filter(
            AssetElement.id.in_(member_ids),
            AssetElement.id_type == TYPE_DEVICE,
            AssetElement.id_subtype == SUBTYPE_UPS,
            AssetElement.status == "active",
        )
        .order_by(AssetElement.name)
        .all()
    )
    return [row.name for row in rows]


# =========================================================================================================
# Links
# =========================================================================================================
def _adjacency(db: Session, link_type: int, upstream: bool) -> Dict[int, List[int]]:
    graph: Dict[int, List[int]] = {}
    rows = (
        db.query(AssetLink.id_asset_device_src, AssetLink.id_asset_device_dest)
        .filter(AssetLink.id_asset_link_type == link_type)
        .order_by(AssetLink.id)
        .all()
    )
    for src, dest in rows:
        if upstream:
            graph.setdefault(dest, []).append(src)
        else:
            graph.setdefault(src, []).append(dest)
    return graph


def _closure(graph: Dict[int, List[int]], start_ids: List[int]) -> List[int]:
    """Breadth-first closure from start_ids, start ids excluded, discovery order."""
    seen: Set[int] = set(start_ids)
    order: List[int] = []
    queue = deque(start_ids)
    while queue:
        node = queue.popleft()
        for neighbour in graph.get(node, []):
            if neighbour in seen:
                continue
            seen.add(neighbour)
            order.append(neighbour)
            queue.append(neighbour)
    return order


def upstream_ids(db: Session, asset_ids: List[int], link_type: int = LINK_TYPE_POWER_CHAIN) -> List[int]:
    return _closure(_adjacency(db, link_type, upstream=True), asset_ids)


def downstream_ids(db: Session, asset_ids: List[int], link_type: int = LINK_TYPE_POWER_CHAIN) -> List[int]:
    return _closure(_adjacency(db, link_type, upstream=False), asset_ids)


def insert_link(
    db: Session,
    src_id: int,
    dest_id: int,
    src_out: Optional[str] = None,
    dest_in: Optional[str] = None,
    link_type: int = LINK_TYPE_POWER_CHAIN,
) -> AssetLink:
    """Adds a link after checking it would not close a loop in its link type."""
    if src_id == dest_id or dest_id in upstream_ids(db, [src_id], link_type):
        raise BadParams("link", f"{src_id}->{dest_id}", "connection loop was detected")

    link = AssetLink(
        id_asset_device_src=src_id,
        id_asset_device_dest=dest_id,
        src_out=src_out or None,
        dest_in=dest_in or None,
        id_asset_link_type=link_type,
    )
    db.add(link)
    db.flush()
    return link


def delete_links_to(db: Session, dest_id: int, link_type: Optional[int] = None) -> int:
    query = db.query(AssetLink).filter(AssetLink.id_asset_device_dest == dest_id)
    if link_type is not None:
        query = query.filter(AssetLink.id_asset_link_type == link_type)
    return query.delete(synchronize_session=False)
