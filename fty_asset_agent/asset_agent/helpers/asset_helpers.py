# asset_agent/helpers/asset_helpers.py
"""
Validation and normalization helpers used by the write path:
identifier checks, value sanitizers, rack placement and external name
normalization.
"""
import re
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from asset_agent.core.errors import AssetError, BadParams, ParamRequired
from asset_agent.helpers.asset_db import name_to_asset_id, select_ext_attributes
from asset_agent.models.asset_models import AssetElement, ExtAttribute


PROHIBITED_IDENTIFIER_CHARS = '_@%;"'

DATE_FORMATS = ("%d-%m-%Y", "%Y-%m-%d", "%d-%b-%y", "%d.%m.%Y", "%d %m %Y", "%m/%d/%Y")

# Namespace of the version 5 asset UUIDs (manufacturer + model + serial number).
ASSET_UUID_NAMESPACE = uuid.UUID("933d6c80-dea9-8c6b-d111-8b3b46a181f1")

CREATE_TS_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

_NAME_SUFFIX_RE = re.compile(r"^.*~(\d+)$")


class PlacementError(AssetError):
    code = "BadParams"


def check_element_identifier(db: Session, param_name: str, param_value: str) -> int:
    """Validates an asset identifier given by a client and returns its id."""
    if not param_value:
        raise ParamRequired(param_name)

    for char in PROHIBITED_IDENTIFIER_CHARS:
        if char in param_value:
            raise BadParams(
                param_name,
                param_value,
                f"value '{param_value}' contains prohibited characters ({PROHIBITED_IDENTIFIER_CHARS})",
            )

    try:
        return name_to_asset_id(db, param_value)
    except AssetError as e:
        raise BadParams(
            param_name,
            param_value,
            f"value '{param_value}' is not valid identifier. Error: {e}",
        )


def sanitize_date(value: str) -> str:
    """Returns the date re-rendered in the first format it parses with."""
    for fmt in DATE_FORMATS:
        try:
            parsed = datetime.strptime(value, fmt)
        except ValueError:
            continue
        return parsed.strftime(fmt)
    raise BadParams("date", value, "Not is ISO date")


def sanitize_value_double(key: str, value: str) -> float:
    try:
        # trailing garbage, blanks included, is rejected
        if value.rstrip() != value:
            raise ValueError(value)
        return float(value)
    except ValueError:
        raise BadParams(key, value, "value should be a number")


def asset_uuid(manufacturer: Optional[str], model: Optional[str], serial_no: Optional[str]) -> str:
    """
    Version 5 UUID when manufacturer, model and serial number are all known,
    a random version 4 UUID otherwise.
    """
    if manufacturer and model and serial_no:
        return str(uuid.uuid5(ASSET_UUID_NAMESPACE, f"{manufacturer}{model}{serial_no}"))
    return str(uuid.uuid4())


def create_timestamp() -> str:
    return datetime.now().astimezone().strftime(CREATE_TS_FORMAT)


# -------------------------------------------------------
# Placement in a rack
# -------------------------------------------------------
def to_int(value: str, field: str) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise BadParams(field, str(value), "value should be a number")


def try_to_place_asset(db: Session, asset_id: int, parent_id: int, size: int, loc: int) -> None:
    """
    Checks that an asset of ``size`` units fits at position ``loc`` (1-based)
    of its parent without overlapping any sibling. The asset itself is
    excluded, so the check works for updates too.

    Raises:
        PlacementError: when the asset does not fit
    """
    if db.get(AssetElement, parent_id) is None:
        return

    if loc <= 0:
        raise PlacementError("Position is wrong, should be greater than 0")
    if size <= 0:
        raise PlacementError("Size is wrong, should be greater than 0")

    parent_attrs = select_ext_attributes(db, parent_id)
    if "u_size" not in parent_attrs:
        raise PlacementError("Size is not set")

    place: List[bool] = [False] * to_int(parent_attrs["u_size"].value, "u_size")

    siblings = (
        db.query(AssetElement.id)
        .filter(AssetElement.id_parent == parent_id)
        .order_by(AssetElement.id)
        .all()
    )
    for sibling in siblings:
        if sibling.id == asset_id:
            continue
        sibling_attrs = select_ext_attributes(db, sibling.id)
        if "u_size" not in sibling_attrs or "location_u_pos" not in sibling_attrs:
            continue
        sibling_size = to_int(sibling_attrs["u_size"].value, "u_size")
        sibling_loc = to_int(sibling_attrs["location_u_pos"].value, "location_u_pos") - 1
        for index in range(sibling_loc, sibling_loc + sibling_size):
            if 0 <= index < len(place):
                place[index] = True

    for index in range(loc - 1, loc + size - 1):
        if index < 0 or index >= len(place):
            raise PlacementError("Asset is out bounds")
        if place[index]:
            raise PlacementError("Asset place is occupied")


# -------------------------------------------------------
# External name normalization
# -------------------------------------------------------
def norm_name(db: Session, orig_name: str, max_len: int = 50, asset_id: int = 0) -> str:
    """
    Shortens a too long external name to ``max_len`` characters. When the
    truncated name is already used by another asset, the name is cut further
    and suffixed with ``~N``, N being one more than the highest suffix in use.
    """
    if len(orig_name) < max_len:
        return orig_name

    name = orig_name[:max_len]
    rows = (
        db.query(ExtAttribute.value)
        .filter(
            ExtAttribute.keytag == "name",
            (ExtAttribute.value == name)
            | ExtAttribute.value.like(name[: max_len - 2] + "~%")
            | ExtAttribute.value.like(name[: max_len - 3] + "~%"),
            ExtAttribute.id_asset_element != asset_id,
        )
        .all()
    )

    num = -1
    for row in rows:
        match = _NAME_SUFFIX_RE.search(row.value)
        if match:
            num = max(num, int(match.group(1)))
        elif num == -1:
            num = 0

    if num != -1:
        suffix = str(num + 1)
        name = f"{orig_name[: max_len - 1 - len(suffix)]}~{suffix}"
    return name
