# asset_agent/helpers/asset_select.py
"""
Read side selects over assets: single items, filtered/ordered listings,
container membership and power links.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from sqlalchemy import and_, exists, func
from sqlalchemy.orm import Session, aliased

from asset_agent.core.errors import BadParams, ElementNotFound
from asset_agent.helpers.asset_db import (
    ExtAttrValue,
    container_member_ids,
    select_ext_attributes,
)
from asset_agent.helpers.asset_types import (
    LINK_TYPE_POWER_CHAIN,
    SUBTYPE_IDS,
    TYPE_IDS,
    subtype_name,
    type_name,
)
from asset_agent.models.asset_models import AssetElement, AssetLink, ExtAttribute


POSSIBLE_ORDERS = (
    "asset_order",
    "create_ts",
    "firmware",
    "max_power",
    "model",
    "name",
    "serial_no",
    "update_ts",
)


class OrderDir(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass
class Filter:
    types: List[int] = field(default_factory=list)
    subtypes: List[int] = field(default_factory=list)
    status: str = ""
    without: str = ""

    def __bool__(self) -> bool:
        return bool(self.types or self.subtypes or self.status or self.without)


@dataclass
class Order:
    field: str = ""
    dir: OrderDir = OrderDir.ASC

    def __bool__(self) -> bool:
        return bool(self.field)

    def is_valid(self) -> bool:
        return self.field in POSSIBLE_ORDERS


@dataclass
class AssetItem:
    id: int = 0
    name: str = ""
    status: str = ""
    parent_id: int = 0
    priority: int = 0
    type_id: int = 0
    subtype_id: int = 0
    asset_tag: str = ""


@dataclass
class AssetItemExt(AssetItem):
    ext_name: str = ""
    type_name: str = ""
    subtype_name: str = ""
    parent_type_id: int = 0
    parent_name: str = ""


@dataclass
class AssetLinkItem:
    src_id: int
    dest_id: int
    src_name: str
    src_socket: str = ""
    dest_socket: str = ""


def filter_from_names(names: List[str]) -> Filter:
    """Builds a filter from type/subtype short names; unknown names are ignored."""
    result = Filter()
    for name in names:
        if name in TYPE_IDS:
            result.types.append(TYPE_IDS[name])
        elif name in SUBTYPE_IDS:
            result.subtypes.append(SUBTYPE_IDS[name])
    return result


def _item_from_element(element: AssetElement) -> AssetItem:
    return AssetItem(
        id=element.id,
        name=element.name,
        status=element.status,
        parent_id=element.id_parent or 0,
        priority=element.priority,
        type_id=element.id_type,
        subtype_id=element.id_subtype,
        asset_tag=element.asset_tag or "",
    )


def item(db: Session, name: str, ext_name_only: bool = False) -> AssetItem:
    """Asset by internal name, falling back to the external name."""
    element = None
    if not ext_name_only:
        element = db.query(AssetElement).filter(AssetElement.name == name).first()
    if element is None:
        element = (
            db.query(AssetElement)
            .join(ExtAttribute, ExtAttribute.id_asset_element == AssetElement.id)
            .filter(ExtAttribute.keytag == "name", ExtAttribute.value == name)
            .first()
        )
    if element is None:
        raise ElementNotFound(name, f"name '{name}' is not valid")
    return _item_from_element(element)


# =========================================================================================================
# Extended listings
# =========================================================================================================
def _ext_query(db: Session, flt: Optional[Filter], order: Optional[Order]):
    if order and not order.is_valid():
        raise BadParams(
            "order",
            order.field,
            "order field is invalid, possible orders are '{}'".format("/".join(POSSIBLE_ORDERS)),
        )

    parent = aliased(AssetElement, name="parent")
    ext_name = aliased(ExtAttribute, name="ext_name")
    query = (
        db.query(
            AssetElement,
            ext_name.value.label("ext_name"),
            parent.name.label("parent_name"),
            parent.id_type.label("parent_type_id"),
        )
        .outerjoin(parent, parent.id == AssetElement.id_parent)
        .outerjoin(
            ext_name,
            and_(ext_name.id_asset_element == AssetElement.id, ext_name.keytag == "name"),
        )
    )

    if flt:
        if flt.subtypes:
            query = query.filter(AssetElement.id_subtype.in_(flt.subtypes))
        if flt.types:
            query = query.filter(AssetElement.id_type.in_(flt.types))
        if flt.status:
            query = query.filter(AssetElement.status == flt.status)
        if flt.without == "location":
            query = query.filter(AssetElement.id_parent.is_(None))
        elif flt.without == "powerchain":
            query = query.filter(
                ~exists().where(
                    and_(
                        AssetLink.id_asset_device_dest == AssetElement.id,
                        AssetLink.id_asset_link_type == LINK_TYPE_POWER_CHAIN,
                    )
                )
            )
        elif flt.without:
            query = query.filter(
                ~exists().where(
                    and_(
                        ExtAttribute.id_asset_element == AssetElement.id,
                        ExtAttribute.keytag == flt.without,
                    )
                )
            )

    if order:
        order_attr = aliased(ExtAttribute, name="order_attr")
        query = query.outerjoin(
            order_attr,
            and_(order_attr.id_asset_element == AssetElement.id, order_attr.keytag == order.field),
        )
        if order.dir == OrderDir.ASC:
            # nulls last
            query = query.order_by(
                func.coalesce(order_attr.value, "ZZZZZZ999999").asc(), AssetElement.id.asc()
            )
        else:
            query = query.order_by(order_attr.value.desc(), AssetElement.id.desc())
    else:
        query = query.order_by(AssetElement.id)
    return query


def _ext_from_row(row) -> AssetItemExt:
    element = row[0]
    base = _item_from_element(element)
    return AssetItemExt(
        **base.__dict__,
        ext_name=row.ext_name or "",
        type_name=type_name(element.id_type),
        subtype_name=subtype_name(element.id_subtype),
        parent_type_id=row.parent_type_id or 0,
        parent_name=row.parent_name or "",
    )


def items(db: Session, flt: Optional[Filter] = None, order: Optional[Order] = None) -> List[AssetItemExt]:
    return [_ext_from_row(row) for row in _ext_query(db, flt, order).all()]


def item_ext(db: Session, id_or_name) -> AssetItemExt:
    query = _ext_query(db, None, None)
    if isinstance(id_or_name, int):
        row = query.filter(AssetElement.id == id_or_name).first()
    else:
        row = query.filter(AssetElement.name == id_or_name).first()
    if row is None:
        raise ElementNotFound(str(id_or_name))
    return _ext_from_row(row)


def items_by_container(
    db: Session,
    container_id: int,
    flt: Optional[Filter] = None,
    order: Optional[Order] = None,
) -> List[AssetItemExt]:
    member_ids = container_member_ids(db, container_id)
    if not member_ids:
        return []
    query = _ext_query(db, flt, order).filter(AssetElement.id.in_(member_ids))
    return [_ext_from_row(row) for row in query.all()]


def items_without_container(
    db: Session,
    flt: Optional[Filter] = None,
    order: Optional[Order] = None,
) -> List[AssetItemExt]:
    query = _ext_query(db, flt, order).filter(AssetElement.id_parent.is_(None))
    return [_ext_from_row(row) for row in query.all()]


def ext_attributes(db: Session, asset_id: int) -> Dict[str, ExtAttrValue]:
    return select_ext_attributes(db, asset_id)


def device_links_to(db: Session, asset_id: int, link_type: int = LINK_TYPE_POWER_CHAIN) -> List[AssetLinkItem]:
    """Links whose destination is the asset, with the source names."""
    source = aliased(AssetElement, name="source")
    rows = (
        db.query(AssetLink, source.name.label("src_name"))
        .join(source, source.id == AssetLink.id_asset_device_src)
        .filter(
            AssetLink.id_asset_device_dest == asset_id,
            AssetLink.id_asset_link_type == link_type,
        )
        .order_by(AssetLink.id)
        .all()
    )
    return [
        AssetLinkItem(
            src_id=link.id_asset_device_src,
            dest_id=link.id_asset_device_dest,
            src_name=src_name,
            src_socket=link.src_out or "",
            dest_socket=link.dest_in or "",
        )
        for link, src_name in rows
    ]


# =========================================================================================================
# Name based selections used by the mailbox handlers
# =========================================================================================================
def _matches(element: AssetElement, filters: List[str]) -> bool:
    if not filters:
        return True
    return type_name(element.id_type) in filters or subtype_name(element.id_subtype) in filters


def select_assets_by_container(db: Session, container: str, filters: List[str]) -> List[str]:
    """
    Internal names of assets located in the container (any depth), keeping
    those whose type or subtype short name is in ``filters``. An empty
    container name selects among all assets.
    """
    query = db.query(AssetElement).order_by(AssetElement.id)
    if container:
        container_element = db.query(AssetElement).filter(AssetElement.name == container).first()
        if container_element is None:
            raise ElementNotFound(container)
        member_ids = container_member_ids(db, container_element.id)
        if not member_ids:
            return []
        query = query.filter(AssetElement.id.in_(member_ids))
    return [element.name for element in query.all() if _matches(element, filters)]


def select_assets_by_filter(db: Session, filters: List[str]) -> List[str]:
    return select_assets_by_container(db, "", filters)


def select_names_by_type(db: Session, types: List[int], subtypes: Optional[List[int]] = None, status: str = "") -> List[str]:
    query = db.query(AssetElement.name).filter(AssetElement.id_type.in_(types))
    if subtypes:
        query = query.filter(AssetElement.id_subtype.in_(subtypes))
    if status:
        query = query.filter(AssetElement.status == status)
    return [row.name for row in query.order_by(AssetElement.id).all()]
