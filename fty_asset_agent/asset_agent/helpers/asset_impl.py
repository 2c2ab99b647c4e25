# asset_agent/helpers/asset_impl.py
"""
In-memory asset used by the write path, with conversions from/to fty-proto,
the database and the JSON Dto.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from asset_agent.bus.proto import ASSET, FtyProto
from asset_agent.core.errors import BadParams
from asset_agent.helpers.asset_db import ExtAttrValue, select_ext_attributes
from asset_agent.helpers.asset_select import device_links_to
from asset_agent.helpers.asset_types import (
    LINK_TYPE_POWER_CHAIN,
    AssetStatus,
    parse_priority,
    subtype_name,
    type_name,
)
from asset_agent.helpers.db_utils import get_asset_by_name
from asset_agent.models.asset_models import AssetElement, AssetGroupRelation

DTO_STATUS = {
    AssetStatus.ACTIVE.value: 1,
    AssetStatus.NONACTIVE.value: 2,
}

# fty-proto ext encoding of links and groups:
#   power_link.<source iname> = "<src_out>/<dest_in>", group = "g1/.../gN"
POWER_LINK_PREFIX = "power_link."
GROUP_KEY = "group"


@dataclass
class LinkSpec:
    source: str
    src_out: str = ""
    dest_in: str = ""
    link_type: int = LINK_TYPE_POWER_CHAIN

    def key(self):
        return (self.source, self.src_out or "", self.dest_in or "", self.link_type)


def parse_power_link(source: str, value: str) -> LinkSpec:
    """`"1/2"` is outlet 1 of ``source`` feeding input 2; either side may be empty."""
    src_out, _, dest_in = (value or "").partition("/")
    return LinkSpec(source=source, src_out=src_out.strip(), dest_in=dest_in.strip())


@dataclass
class AssetImpl:
    internal_name: str = ""
    asset_type: str = ""
    asset_subtype: str = ""
    status: str = AssetStatus.ACTIVE.value
    priority: int = 5
    parent_iname: str = ""
    parent_id: int = 0
    asset_tag: str = ""
    ext: Dict[str, ExtAttrValue] = field(default_factory=dict)
    links: List[LinkSpec] = field(default_factory=list)
    groups: List[str] = field(default_factory=list)
    # False when the payload says nothing about groups (memberships are kept on update)
    carries_groups: bool = True
    id: int = 0
    operation: str = ""

    # ---------------------------------------------------------------------
    # ext helpers
    # ---------------------------------------------------------------------
    def ext_value(self, key: str, default: str = "") -> str:
        attr = self.ext.get(key)
        return attr.value if attr is not None else default

    def set_ext(self, key: str, value: str, read_only: bool = False) -> None:
        self.ext[key] = ExtAttrValue(value, read_only)

    @property
    def ext_name(self) -> str:
        return self.ext_value("name")

    @property
    def has_parent(self) -> bool:
        return bool(self.parent_iname or self.parent_id)

    def merge_links(self, other: List[LinkSpec]) -> None:
        """Adds the links of ``other`` that this asset does not carry yet."""
        known = {link.key() for link in self.links}
        for link in other:
            if link.key() not in known:
                self.links.append(link)
                known.add(link.key())

    # ---------------------------------------------------------------------
    # fty-proto
    # ---------------------------------------------------------------------
    @classmethod
    def from_fty_proto(cls, message: FtyProto, read_only: bool = False) -> "AssetImpl":
        aux = message.aux
        asset = cls(
            internal_name=message.name,
            asset_type=aux.get("type", ""),
            asset_subtype=aux.get("subtype", ""),
            status=aux.get("status", AssetStatus.ACTIVE.value),
            operation=message.operation,
        )
        if aux.get("priority"):
            try:
                asset.priority = parse_priority(aux["priority"])
            except ValueError:
                raise BadParams("priority", aux["priority"], f"Priority '{aux['priority']}' is not valid, expected P1..P5")

        parent = aux.get("parent", "")
        if parent.isdigit():
            asset.parent_id = int(parent)
        elif parent:
            asset.parent_iname = parent

        asset.carries_groups = GROUP_KEY in message.ext
        for key, value in message.ext.items():
            if key.startswith(POWER_LINK_PREFIX):
                asset.links.append(parse_power_link(key[len(POWER_LINK_PREFIX):], value))
            elif key == GROUP_KEY:
                asset.groups = [name for name in value.split("/") if name]
            else:
                asset.ext[key] = ExtAttrValue(value, read_only)
        return asset

    def to_fty_proto(self, operation: Optional[str] = None) -> FtyProto:
        aux = {
            "type": self.asset_type,
            "subtype": self.asset_subtype,
            "status": self.status,
            "priority": str(self.priority),
            "parent": str(self.parent_id or 0) if not self.parent_iname or self.parent_id else self.parent_iname,
        }
        return FtyProto(
            id=ASSET,
            name=self.internal_name,
            operation=operation if operation is not None else self.operation,
            aux=aux,
            ext={key: attr.value for key, attr in self.ext.items()},
        )

    # ---------------------------------------------------------------------
    # Dto
    # ---------------------------------------------------------------------
    def to_dto(self) -> Dict[str, Any]:
        return {
            "status": DTO_STATUS.get(self.status, 0),
            "type": self.asset_type,
            "sub_type": self.asset_subtype,
            "name": self.internal_name,
            "priority": self.priority,
            "parent": self.parent_iname,
            "linked": [
                {"source": link.source, "link_type": link.link_type, "src_out": link.src_out}
                for link in self.links
            ],
            "ext": {
                key: {"value": attr.value, "readOnly": attr.read_only, "update": False}
                for key, attr in self.ext.items()
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dto(), ensure_ascii=False)


def load_asset(db: Session, iname: str) -> AssetImpl:
    """Reads the full asset (ext-attributes, power links, groups) from the DB."""
    element = get_asset_by_name(db, iname)
    return asset_from_element(db, element)


def asset_from_element(db: Session, element: AssetElement) -> AssetImpl:
    parent_name = ""
    if element.id_parent is not None:
        parent = db.get(AssetElement, element.id_parent)
        parent_name = parent.name if parent is not None else ""

    asset = AssetImpl(
        id=element.id,
        internal_name=element.name,
        asset_type=type_name(element.id_type),
        asset_subtype=subtype_name(element.id_subtype),
        status=element.status,
        priority=element.priority,
        parent_id=element.id_parent or 0,
        parent_iname=parent_name,
        asset_tag=element.asset_tag or "",
        ext=select_ext_attributes(db, element.id),
    )
    asset.links = [
        LinkSpec(
            source=link.src_name,
            src_out=link.src_socket,
            dest_in=link.dest_socket,
            link_type=LINK_TYPE_POWER_CHAIN,
        )
        for link in device_links_to(db, element.id, LINK_TYPE_POWER_CHAIN)
    ]
    group_rows = (
        db.query(AssetElement.name)
        .join(AssetGroupRelation, AssetGroupRelation.id_asset_group == AssetElement.id)
        .filter(AssetGroupRelation.id_asset_element == element.id)
        .order_by(AssetElement.name)
        .all()
    )
    asset.groups = [row.name for row in group_rows]
    return asset
