# asset_agent/helpers/asset_event.py
"""
Canonical asset event: the fty-proto snapshot of one asset published on the
ASSETS stream under the subject ``type.subtype@iname``.
"""
from dataclasses import dataclass
from typing import Dict, Optional

from sqlalchemy.orm import Session

from asset_agent.bus.proto import ASSET, FtyProto
from asset_agent.helpers.asset_db import select_dc_upses, select_ext_attributes, select_super_parent, upsert_ext_attribute
from asset_agent.helpers.asset_helpers import asset_uuid, create_timestamp
from asset_agent.helpers.asset_types import TYPE_DATACENTER, subtype_name, type_name
from asset_agent.helpers.db_utils import get_asset_by_name
from asset_agent.models.asset_models import AssetElement


@dataclass
class AssetEvent:
    subject: str
    message: FtyProto

    @property
    def iname(self) -> str:
        return self.message.name

    def encode(self) -> bytes:
        return self.message.encode()


def asset_subject(asset_type: Optional[str], asset_subtype: Optional[str], iname: str) -> str:
    return f"{asset_type or 'unknown'}.{asset_subtype or 'unknown'}@{iname}"


def _ensure_identity(db: Session, element: AssetElement, ext: Dict) -> bool:
    """Derives and stores the read-only uuid/create_ts attributes when missing."""
    changed = False
    if not ext.get("uuid") or not ext["uuid"].value:
        value = asset_uuid(
            ext["manufacturer"].value if "manufacturer" in ext else None,
            ext["model"].value if "model" in ext else None,
            ext["serial_no"].value if "serial_no" in ext else None,
        )
        upsert_ext_attribute(db, element.id, "uuid", value, True)
        changed = True
    if not ext.get("create_ts") or not ext["create_ts"].value:
        upsert_ext_attribute(db, element.id, "create_ts", create_timestamp(), True)
        changed = True
    return changed


def build_asset_event(db: Session, iname: str, operation: str) -> AssetEvent:
    """
    Reads the asset and builds its canonical event.

    Raises:
        ElementNotFound: when the asset does not exist
    """
    element = get_asset_by_name(db, iname)
    if _ensure_identity(db, element, select_ext_attributes(db, element.id)):
        db.commit()

    aux = {
        "priority": str(element.priority),
        "type": type_name(element.id_type),
        "subtype": subtype_name(element.id_subtype),
        "parent": str(element.id_parent or 0),
        "status": element.status,
    }
    super_parent = select_super_parent(db, element.id)
    for level, parent_name in enumerate(super_parent.names, start=1):
        if parent_name:
            aux[f"parent_name.{level}"] = parent_name

    if element.id_type == TYPE_DATACENTER:
        for index, ups in enumerate(select_dc_upses(db, element.id)):
            aux[f"ups{index}"] = ups

    ext = {key: attr.value for key, attr in select_ext_attributes(db, element.id).items()}
    message = FtyProto(id=ASSET, name=element.name, operation=operation, aux=aux, ext=ext)
    return AssetEvent(asset_subject(aux["type"], aux["subtype"], element.name), message)
