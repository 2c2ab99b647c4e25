# asset_agent/helpers/asset_manager.py
"""
Write path of the asset agent.

Every write goes through the same sequence: configurability gate,
validation (type, topology, placement, name normalization, duplicates,
links, groups), activation gate, then a single transaction. DB sessions are
closed before the activation oracle is awaited.
"""
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple, Union

from sqlalchemy import and_
from sqlalchemy.orm import Session, aliased

from asset_agent.core.config import settings
from asset_agent.core.errors import (
    LICENSING_MAX_ACTIVE,
    LICENSING_PROHIBITED,
    ActivationError,
    AssetError,
    BadParams,
    ElementNotFound,
    LicensingError,
    ParamRequired,
)
from asset_agent.core.logger import app_logger
from asset_agent.db.session import session_scope
from asset_agent.helpers.activation import ActivationClient
from asset_agent.helpers.asset_db import (
    ancestor_ids,
    resolve_asset_name,
    select_ext_attributes,
    top_location_id,
    upsert_ext_attribute,
    delete_links_to,
    insert_link,
    upstream_ids,
)
from asset_agent.helpers.asset_helpers import (
    asset_uuid,
    create_timestamp,
    norm_name,
    to_int,
    try_to_place_asset,
)
from asset_agent.helpers.asset_impl import AssetImpl, LinkSpec, asset_from_element, load_asset
from asset_agent.helpers.asset_types import (
    CONTAINER_RANKS,
    LINK_TYPE_POWER_CHAIN,
    MAX_TOPOLOGY_DEPTH,
    POWER_DEVICE_SUBTYPES,
    SUBTYPE_N_A,
    SUBTYPE_UNKNOWN,
    TYPE_DATACENTER,
    TYPE_DEVICE,
    TYPE_GROUP,
    AssetOperation,
    AssetStatus,
    is_container,
    is_ok_name,
    subtype_id,
    subtype_name,
    type_id,
    type_name,
)
from asset_agent.helpers.csv_import import CREATE_MODE_JSON, json_to_row, parse_csv, row_to_asset
from asset_agent.helpers.db_utils import db_operation, get_asset_by_name
from asset_agent.models.asset_models import AssetElement, AssetGroupRelation, ExtAttribute

ImportList = Dict[int, Union[int, AssetError]]
ChangeListener = Callable[[str, Optional[AssetImpl], AssetImpl], None]

DUPLICATE_KEYS = ("manufacturer", "model", "serial_no")


@dataclass
class WritePlan:
    """Everything the validation resolved, ready to be written."""

    type_id: int
    subtype_id: int
    parent_id: Optional[int] = None
    link_sources: List[Tuple[int, LinkSpec]] = field(default_factory=list)
    group_ids: List[int] = field(default_factory=list)


def generated_iname(type_id_value: int, subtype_id_value: int, asset_id: int) -> str:
    if subtype_id_value in (SUBTYPE_N_A, SUBTYPE_UNKNOWN):
        return f"{type_name(type_id_value)}-{asset_id}"
    return f"{subtype_name(subtype_id_value)}-{asset_id}"


def count_active_power_devices(db: Session, exclude_id: int = 0) -> int:
    return (
        db.query(AssetElement.id)
        .filter(
            AssetElement.id_type == TYPE_DEVICE,
            AssetElement.id_subtype.in_(POWER_DEVICE_SUBTYPES),
            AssetElement.status == AssetStatus.ACTIVE.value,
            AssetElement.id != exclude_id,
        )
        .count()
    )


class AssetManager:
    def __init__(
        self,
        licensing,
        activation: Optional[ActivationClient] = None,
        session_factory: Optional[Callable[[], Session]] = None,
        name_max_length: Optional[int] = None,
        max_power_sources: Optional[int] = None,
    ) -> None:
        self.licensing = licensing
        self._activation = activation
        self._session_factory = session_factory
        self._name_max_length = name_max_length or settings.ASSET_NAME_MAX_LENGTH
        self._max_power_sources = (
            max_power_sources if max_power_sources is not None else settings.MAX_POWER_SOURCES
        )

    def _session(self):
        return session_scope(self._session_factory)

    # =====================================================================
    # Gates
    # =====================================================================
    def check_configurability(self) -> None:
        if not self.licensing.configurable:
            raise LicensingError(LICENSING_PROHIBITED)

    def _local_activation_check(self, db: Session, plan: WritePlan, own_id: int) -> bool:
        """Max-active limit for power devices, checked before asking the oracle."""
        if plan.type_id != TYPE_DEVICE or plan.subtype_id not in POWER_DEVICE_SUBTYPES:
            return True
        return self.licensing.allows_another_active(count_active_power_devices(db, own_id))

    async def _is_activable(self, asset: AssetImpl, force: bool) -> bool:
        if self._activation is None:
            return True
        try:
            return await self._activation.is_activable(asset.to_json())
        except ActivationError as e:
            if not force:
                raise
            app_logger.warning("Activation oracle failed", extra={"iname": asset.internal_name, "error": str(e)})
            return False

    # =====================================================================
    # Validation
    # =====================================================================
    def _resolve_parent(self, db: Session, asset: AssetImpl) -> Optional[AssetElement]:
        if asset.parent_id:
            parent = db.get(AssetElement, asset.parent_id)
            if parent is None:
                raise ElementNotFound(str(asset.parent_id))
            return parent
        if asset.parent_iname:
            return resolve_asset_name(db, asset.parent_iname)
        return None

    def _check_parent(self, db: Session, asset_type: int, parent: AssetElement, own_id: int) -> None:
        if not is_container(parent.id_type):
            raise BadParams("location", parent.name, f"Parent '{parent.name}' is not a container")

        if is_container(asset_type) and CONTAINER_RANKS[asset_type] <= CONTAINER_RANKS[parent.id_type]:
            raise BadParams(
                "location",
                parent.name,
                f"Asset of type '{type_name(asset_type)}' cannot be placed in '{type_name(parent.id_type)}'",
            )

        ancestors = ancestor_ids(db, parent.id)
        if own_id and (parent.id == own_id or own_id in ancestors):
            raise BadParams("location", parent.name, "Topology cycle detected")
        if len(ancestors) + 1 > MAX_TOPOLOGY_DEPTH:
            raise BadParams("location", parent.name, f"Topology is deeper than {MAX_TOPOLOGY_DEPTH} levels")

    def _check_placement(self, db: Session, asset: AssetImpl, parent: AssetElement, own_id: int) -> None:
        parent_attrs = select_ext_attributes(db, parent.id)
        if "u_size" not in parent_attrs:
            return
        if "u_size" not in asset.ext or "location_u_pos" not in asset.ext:
            return
        try_to_place_asset(
            db,
            own_id,
            parent.id,
            to_int(asset.ext_value("u_size"), "u_size"),
            to_int(asset.ext_value("location_u_pos"), "location_u_pos"),
        )

    def _normalize_name(self, db: Session, asset: AssetImpl, own_id: int) -> None:
        ext_name = asset.ext_name
        if not ext_name:
            return
        normalized = norm_name(db, ext_name, self._name_max_length, own_id)
        taken = (
            db.query(ExtAttribute.id)
            .filter(
                ExtAttribute.keytag == "name",
                ExtAttribute.value == normalized,
                ExtAttribute.id_asset_element != own_id,
            )
            .first()
        )
        if taken is not None:
            raise BadParams("name", normalized, f"Name '{normalized}' already exists")
        if normalized != ext_name:
            app_logger.debug("External name normalized", extra={"requested": ext_name, "normalized": normalized})
        asset.set_ext("name", normalized, asset.ext["name"].read_only)

    def _find_duplicate(self, db: Session, asset: AssetImpl) -> Optional[str]:
        """Internal name of an asset with the same manufacturer/model/serial (and ip.1)."""
        wanted = {key: asset.ext_value(key) for key in DUPLICATE_KEYS}
        if not all(wanted.values()):
            return None
        if asset.ext_value("ip.1"):
            wanted["ip.1"] = asset.ext_value("ip.1")

        query = db.query(AssetElement.name)
        for key, value in wanted.items():
            attr = aliased(ExtAttribute)
            query = query.join(
                attr,
                and_(attr.id_asset_element == AssetElement.id, attr.keytag == key, attr.value == value),
            )
        row = query.first()
        return row.name if row is not None else None

    def _planned_top(self, db: Session, asset_type: int, parent: Optional[AssetElement], own_id: int) -> Optional[int]:
        if parent is not None:
            return top_location_id(db, parent.id)
        if asset_type == TYPE_DATACENTER and own_id:
            return own_id
        return None

    def _resolve_links(
        self,
        db: Session,
        asset: AssetImpl,
        asset_type: int,
        parent: Optional[AssetElement],
        own_id: int,
    ) -> List[Tuple[int, LinkSpec]]:
        power_links = [link for link in asset.links if link.link_type == LINK_TYPE_POWER_CHAIN]
        if self._max_power_sources > 0 and len(power_links) > self._max_power_sources:
            raise BadParams(
                "power_source",
                str(len(power_links)),
                f"Too many power sources ({len(power_links)}), maximum is {self._max_power_sources}",
            )

        dest_top = self._planned_top(db, asset_type, parent, own_id)
        resolved: List[Tuple[int, LinkSpec]] = []
        for link in asset.links:
            source = resolve_asset_name(db, link.source)
            if own_id and (source.id == own_id or own_id in upstream_ids(db, [source.id], link.link_type)):
                raise BadParams("link", f"{source.name}->{asset.internal_name}", "connection loop was detected")
            src_top = top_location_id(db, source.id)
            if dest_top is not None and src_top is not None and dest_top != src_top:
                raise BadParams("power_source", link.source, "Power source is not in same DC")
            link.source = source.name
            resolved.append((source.id, link))
        return resolved

    def _resolve_groups(self, db: Session, asset: AssetImpl) -> List[int]:
        group_ids = []
        for group_name in asset.groups:
            group = resolve_asset_name(db, group_name)
            if group.id_type != TYPE_GROUP:
                raise BadParams("group", group_name, f"'{group_name}' is not a group")
            if group.id not in group_ids:
                group_ids.append(group.id)
        return group_ids

    def plan(self, db: Session, asset: AssetImpl, current: Optional[AssetElement] = None) -> WritePlan:
        """
        Validates the asset against the store and resolves every reference.
        ``current`` is the stored asset for an update, None for a create.
        The asset is normalized in place (subtype, parent, ext name, link sources).

        Raises:
            AssetError: on the first failed check
        """
        own_id = current.id if current is not None else 0

        if not asset.asset_type:
            raise ParamRequired("type")
        asset_type = type_id(asset.asset_type)
        if asset_type is None:
            raise BadParams("type", asset.asset_type, f"Type '{asset.asset_type}' is not known")
        asset.asset_type = type_name(asset_type)

        if not asset.asset_subtype:
            asset.asset_subtype = subtype_name(SUBTYPE_N_A)
        asset_subtype = subtype_id(asset.asset_subtype)
        if asset_subtype is None:
            raise BadParams("subtype", asset.asset_subtype, f"Subtype '{asset.asset_subtype}' is not known")
        asset.asset_subtype = subtype_name(asset_subtype)

        if asset.status not in (AssetStatus.ACTIVE.value, AssetStatus.NONACTIVE.value):
            raise BadParams("status", asset.status, f"Status '{asset.status}' is not valid")
        if not 1 <= int(asset.priority) <= 5:
            raise BadParams("priority", str(asset.priority), f"Priority '{asset.priority}' is not valid")

        if current is None and asset.internal_name:
            if not is_ok_name(asset.internal_name):
                raise BadParams("id", asset.internal_name, f"'{asset.internal_name}' name is not valid")
            if db.query(AssetElement.id).filter(AssetElement.name == asset.internal_name).first() is not None:
                raise BadParams("id", asset.internal_name, f"Internal name '{asset.internal_name}' is already used")

        parent = self._resolve_parent(db, asset)
        if parent is not None:
            self._check_parent(db, asset_type, parent, own_id)
            self._check_placement(db, asset, parent, own_id)
            asset.parent_id, asset.parent_iname = parent.id, parent.name
        else:
            asset.parent_id, asset.parent_iname = 0, ""

        self._normalize_name(db, asset, own_id)

        if current is None:
            duplicate = self._find_duplicate(db, asset)
            if duplicate:
                raise BadParams(
                    "serial_no",
                    asset.ext_value("serial_no"),
                    f"Asset with the same manufacturer, model and serial number already exists ({duplicate})",
                )

        return WritePlan(
            type_id=asset_type,
            subtype_id=asset_subtype,
            parent_id=parent.id if parent is not None else None,
            link_sources=self._resolve_links(db, asset, asset_type, parent, own_id),
            group_ids=self._resolve_groups(db, asset),
        )

    # =====================================================================
    # Writes
    # =====================================================================
    def _insert(self, db: Session, asset: AssetImpl, plan: WritePlan) -> AssetElement:
        asset_tag = asset.asset_tag
        if "asset_tag" in asset.ext:
            asset_tag = asset_tag or asset.ext.pop("asset_tag").value

        element = AssetElement(
            name=asset.internal_name or f"tmp-{uuid.uuid4().hex[:16]}",
            id_type=plan.type_id,
            id_subtype=plan.subtype_id,
            id_parent=plan.parent_id,
            status=asset.status,
            priority=asset.priority,
            asset_tag=asset_tag or None,
        )
        db.add(element)
        db.flush()

        if not asset.internal_name:
            element.name = generated_iname(plan.type_id, plan.subtype_id, element.id)
            asset.internal_name = element.name
        asset.id = element.id

        if not asset.ext_name:
            asset.set_ext("name", element.name)
        if not asset.ext_value("uuid"):
            asset.set_ext(
                "uuid",
                asset_uuid(asset.ext_value("manufacturer"), asset.ext_value("model"), asset.ext_value("serial_no")),
                True,
            )
        if not asset.ext_value("create_ts"):
            asset.set_ext("create_ts", create_timestamp(), True)

        for key, attr in asset.ext.items():
            if attr.value == "":
                continue
            db.add(
                ExtAttribute(
                    id_asset_element=element.id,
                    keytag=key,
                    value=attr.value,
                    read_only=attr.read_only,
                )
            )
        db.flush()

        for source_id, link in plan.link_sources:
            insert_link(db, source_id, element.id, link.src_out, link.dest_in, link.link_type)
        for group_id in plan.group_ids:
            db.add(AssetGroupRelation(id_asset_group=group_id, id_asset_element=element.id))
        db.flush()
        return element

    def _apply_update(self, db: Session, element: AssetElement, asset: AssetImpl, plan: WritePlan) -> None:
        element.id_type = plan.type_id
        element.id_subtype = plan.subtype_id
        element.id_parent = plan.parent_id
        element.status = asset.status
        element.priority = asset.priority
        if "asset_tag" in asset.ext:
            element.asset_tag = asset.ext.pop("asset_tag").value or None
        elif asset.asset_tag:
            element.asset_tag = asset.asset_tag

        # ext-attributes missing from the payload are dropped, unless read-only
        for attribute in list(element.ext_attributes):
            if attribute.keytag not in asset.ext and not attribute.read_only and attribute.keytag != "name":
                db.delete(attribute)
        db.flush()
        for key, attr in asset.ext.items():
            if attr.value == "":
                continue
            upsert_ext_attribute(db, element.id, key, attr.value, attr.read_only)

        delete_links_to(db, element.id, LINK_TYPE_POWER_CHAIN)
        db.flush()
        for source_id, link in plan.link_sources:
            insert_link(db, source_id, element.id, link.src_out, link.dest_in, link.link_type)

        db.query(AssetGroupRelation).filter(AssetGroupRelation.id_asset_element == element.id).delete(
            synchronize_session=False
        )
        for group_id in plan.group_ids:
            db.add(AssetGroupRelation(id_asset_group=group_id, id_asset_element=element.id))
        db.flush()

    def _remove(self, asset_id: int, operation: str) -> None:
        with self._session() as db:
            with db_operation(db, operation):
                element = db.get(AssetElement, asset_id)
                if element is not None:
                    db.delete(element)
                    db.commit()

    # =====================================================================
    # Operations
    # =====================================================================
    async def create(self, asset: AssetImpl, force: bool = False) -> AssetImpl:
        """
        Creates the asset. With ``force`` an asset the oracle refuses to
        activate is stored as nonactive instead of failing.
        """
        self.check_configurability()
        element_label = asset.internal_name or asset.ext_name

        with self._session() as db:
            with db_operation(db, "validate asset", element=element_label):
                plan = self.plan(db, asset)
                locally_activable = self._local_activation_check(db, plan, 0)

        request_activation = asset.status == AssetStatus.ACTIVE.value and plan.type_id == TYPE_DEVICE
        if request_activation:
            activable = locally_activable and await self._is_activable(asset, force)
            if not activable:
                if not force:
                    raise LicensingError(LICENSING_MAX_ACTIVE)
                app_logger.info("Asset is not activable, it is created as nonactive", extra={"element": element_label})
                asset.status = AssetStatus.NONACTIVE.value
                request_activation = False

        with self._session() as db:
            with db_operation(db, "create asset", element=element_label):
                element = self._insert(db, asset, plan)
                db.commit()
                asset_id, iname = element.id, element.name

        if request_activation and self._activation is not None:
            try:
                await self._activation.activate(asset.to_json())
            except ActivationError:
                app_logger.error("Activation failed, removing the created asset", extra={"iname": iname})
                self._remove(asset_id, "remove not activated asset")
                raise

        app_logger.info("Asset created", extra={"iname": iname, "asset_id": asset_id})
        with self._session() as db:
            return load_asset(db, iname)

    async def update(self, asset: AssetImpl) -> Tuple[AssetImpl, AssetImpl]:
        """Updates the asset, returns its (before, after) state."""
        self.check_configurability()
        iname = asset.internal_name
        if not iname:
            raise ParamRequired("name")

        with self._session() as db:
            with db_operation(db, "validate asset", element=iname):
                element = get_asset_by_name(db, iname)
                before = asset_from_element(db, element)
                asset.id = element.id
                if not asset.asset_type:
                    asset.asset_type = before.asset_type
                if not asset.asset_subtype:
                    asset.asset_subtype = before.asset_subtype
                if not asset.ext_name and before.ext_name:
                    asset.set_ext("name", before.ext_name, before.ext["name"].read_only)
                asset.merge_links(before.links)
                if not asset.carries_groups:
                    asset.groups = list(before.groups)
                plan = self.plan(db, asset, current=element)
                locally_activable = self._local_activation_check(db, plan, element.id)

        was_active = before.status == AssetStatus.ACTIVE.value
        is_active = asset.status == AssetStatus.ACTIVE.value
        request_activation = not was_active and is_active and plan.type_id == TYPE_DEVICE
        request_deactivation = was_active and not is_active and plan.type_id == TYPE_DEVICE

        if request_activation:
            if not (locally_activable and await self._is_activable(asset, force=False)):
                raise LicensingError(LICENSING_MAX_ACTIVE)

        with self._session() as db:
            with db_operation(db, "update asset", element=iname):
                element = get_asset_by_name(db, iname)
                self._apply_update(db, element, asset, plan)
                db.commit()

        if request_activation and self._activation is not None:
            try:
                await self._activation.activate(asset.to_json())
            except ActivationError:
                app_logger.error("Activation failed, asset set to nonactive", extra={"iname": iname})
                with self._session() as db:
                    with db_operation(db, "revert activation", element=iname):
                        get_asset_by_name(db, iname).status = AssetStatus.NONACTIVE.value
                        db.commit()
                raise

        if request_deactivation and self._activation is not None:
            try:
                await self._activation.deactivate(asset.to_json())
            except ActivationError as e:
                app_logger.warning("Deactivation failed", extra={"iname": iname, "error": str(e)})

        app_logger.info("Asset updated", extra={"iname": iname})
        with self._session() as db:
            after = load_asset(db, iname)
        return before, after

    async def delete(self, iname: str) -> AssetImpl:
        """Deletes the asset and returns its last state."""
        self.check_configurability()

        with self._session() as db:
            with db_operation(db, "validate delete", element=iname):
                element = get_asset_by_name(db, iname)
                if is_container(element.id_type) and element.children:
                    raise BadParams("name", iname, f"Can't delete asset '{iname}' because it has at least one child")
                if element.id_type == TYPE_GROUP:
                    members = (
                        db.query(AssetGroupRelation.id)
                        .filter(AssetGroupRelation.id_asset_group == element.id)
                        .first()
                    )
                    if members is not None:
                        raise BadParams("name", iname, f"Can't delete group '{iname}' because it is not empty")
                before = asset_from_element(db, element)

        if (
            self._activation is not None
            and before.asset_type == type_name(TYPE_DEVICE)
            and before.status == AssetStatus.ACTIVE.value
        ):
            try:
                await self._activation.deactivate(before.to_json())
            except ActivationError as e:
                app_logger.warning("Deactivation before delete failed", extra={"iname": iname, "error": str(e)})

        self._remove(before.id, "delete asset")
        app_logger.info("Asset deleted", extra={"iname": iname})
        return before

    # =====================================================================
    # Import
    # =====================================================================
    def _asset_exists(self, iname: str) -> bool:
        if not iname:
            return False
        with self._session() as db:
            return db.query(AssetElement.id).filter(AssetElement.name == iname).first() is not None

    async def _write_row(self, asset: AssetImpl, listener: Optional[ChangeListener] = None) -> int:
        if self._asset_exists(asset.internal_name):
            asset.ext.pop("create_mode", None)
            asset.ext.pop("create_user", None)
            before, after = await self.update(asset)
            if listener is not None:
                listener(AssetOperation.UPDATE.value, before, after)
            return after.id
        created = await self.create(asset)
        if listener is not None:
            listener(AssetOperation.CREATE.value, None, created)
        return created.id

    async def import_csv(
        self,
        data: Union[bytes, str],
        user: str = "",
        listener: Optional[ChangeListener] = None,
    ) -> ImportList:
        """
        Imports every row of the CSV document. The document is rejected as a
        whole when it cannot be parsed; afterwards each row succeeds or fails
        on its own. ``listener`` is called for every written row with
        (operation, before, after).
        """
        self.check_configurability()
        rows = parse_csv(data)
        app_logger.info("Importing assets from CSV", extra={"rows": len(rows), "user": user})

        results: ImportList = {}
        for number, row in rows.items():
            try:
                results[number] = await self._write_row(row_to_asset(row, user), listener)
            except AssetError as e:
                app_logger.warning("CSV row rejected", extra={"row": number, "error": str(e)})
                results[number] = e
        return results

    async def create_from_json(self, document, user: str = "") -> AssetImpl:
        """Creates one asset from the JSON create document."""
        self.check_configurability()
        row, read_only = json_to_row(document)
        label = row.get("name") or row.get("id", "")
        try:
            asset = row_to_asset(row, user, create_mode=CREATE_MODE_JSON, read_only=read_only)
            return await self.create(asset)
        except AssetError as e:
            e.message = f"Request CREATE asset {label} FAILED: {e.message}"
            raise

    def get_dto(self, iname: str) -> Dict:
        with self._session() as db:
            return load_asset(db, iname).to_dto()
