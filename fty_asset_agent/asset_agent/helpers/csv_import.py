# asset_agent/helpers/csv_import.py
"""
Parsing side of the asset import: CSV text (and the JSON create document)
to ordered rows, and rows to AssetImpl objects handed to the write path.
"""
import io
import json
import re
from typing import Dict, List, Optional, Tuple, Union

import pandas as pd

from asset_agent.core.errors import BadParams, BadRequestDocument
from asset_agent.helpers.asset_db import ExtAttrValue
from asset_agent.helpers.asset_impl import AssetImpl, LinkSpec
from asset_agent.helpers.asset_types import AssetStatus, parse_priority

CREATE_MODE_CSV = 2
CREATE_MODE_JSON = 1

# Columns with a meaning of their own; every other column is an ext-attribute.
ASSET_COLUMNS = ("id", "name", "type", "sub_type", "subtype", "location", "status", "priority", "asset_tag")

_POWER_COLUMN_RE = re.compile(r"^(power_source|power_plug_src|power_input)\.(\d+)$")
_GROUP_COLUMN_RE = re.compile(r"^group\.(\d+)$")

CsvRows = Dict[int, Dict[str, str]]


# -------------------------------------------------------
# Decoding and sanitization
# -------------------------------------------------------
def decode_csv(data: Union[bytes, str]) -> str:
    """UTF-8 first, ISO-8859-1 when the payload is not valid UTF-8."""
    if isinstance(data, str):
        return data
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def sanitize_col(col: str) -> str:
    """Escapes quotes of an unquoted cell; a cell wrapped in quotes is kept."""
    if not col:
        return col
    if col[0] == col[-1] and col[0] in ("'", '"'):
        return col
    return re.sub(r"['\"]", lambda match: "\\" + match.group(0), col)


def sanitize(csv_text: str) -> str:
    """
    Quote aware pass over the raw CSV: cells outside of quotes get their
    quotes escaped, rows separated by CRLF are re-joined with LF. The last
    cell of a row is passed through untouched.
    """
    out: List[str] = []
    for row in csv_text.split("\r\n"):
        in_quote = ""
        col = ""
        out_row: List[str] = []
        for index, char in enumerate(row):
            if char in ("'", '"') and (index == 0 or row[index - 1] != "\\"):
                if not in_quote:
                    in_quote = char
                elif in_quote == char:
                    in_quote = ""
            if char == "," and not in_quote:
                out_row.append(sanitize_col(col))
                col = ""
                continue
            col += char
        out_row.append(col)
        out.append(",".join(out_row))
    return "\n".join(out)


def parse_csv(data: Union[bytes, str]) -> CsvRows:
    """
    Returns ``row_number -> {column -> value}``, rows numbered from 1 for the
    first data row. Column names are lower-cased and stripped.

    Raises:
        BadRequestDocument: when the document cannot be parsed
    """
    try:
        text = sanitize(decode_csv(data))
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            escapechar="\\",
            skip_blank_lines=True,
        )
    except (ValueError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise BadRequestDocument("csv", str(e))

    df.columns = [str(column).strip().lower() for column in df.columns]
    if "name" not in df.columns and "id" not in df.columns:
        raise BadRequestDocument("csv", "column 'name' is missing")

    rows: CsvRows = {}
    for number, record in enumerate(df.to_dict(orient="records"), start=1):
        rows[number] = {key: (value or "").strip() for key, value in record.items()}
    return rows


# -------------------------------------------------------
# JSON create document
# -------------------------------------------------------
def json_to_row(document: Union[str, bytes, dict]) -> Tuple[Dict[str, str], Dict[str, bool]]:
    """
    Converts the JSON create document into an import row and the read-only
    flags of its ext-attributes::

        {"name": "dev1", "type": "device", "sub_type": "ups", "location": "Rack 1",
         "status": "active", "priority": "P2",
         "powers": [{"src_id": "epdu-12", "src_socket": "3"}],
         "ext": [{"serial_no": "ABC", "read_only": false}]}
    """
    if isinstance(document, dict):
        payload = document
    else:
        try:
            payload = json.loads(document)
        except ValueError as e:
            raise BadRequestDocument("json", str(e))
    if not isinstance(payload, dict):
        raise BadRequestDocument("json", "object expected")

    row: Dict[str, str] = {}
    for key in ("name", "type", "sub_type", "location", "status", "priority", "asset_tag", "id"):
        value = payload.get(key)
        if value is not None and value != "":
            row[key] = str(value)

    for index, power in enumerate(payload.get("powers") or [], start=1):
        source = power.get("src_id") or power.get("src_name") or ""
        if not source:
            raise BadParams("powers", json.dumps(power), "power source is missing 'src_id' or 'src_name'")
        row[f"power_source.{index}"] = source
        if power.get("src_socket"):
            row[f"power_plug_src.{index}"] = str(power["src_socket"])

    for index, group in enumerate(payload.get("groups") or [], start=1):
        row[f"group.{index}"] = group if isinstance(group, str) else str(group.get("name", ""))

    read_only: Dict[str, bool] = {}
    for entry in payload.get("ext") or []:
        entry_read_only = bool(entry.get("read_only", False))
        for key, value in entry.items():
            if key == "read_only" or value is None or value == "":
                continue
            row[key] = str(value)
            read_only[key] = entry_read_only
    return row, read_only


# -------------------------------------------------------
# Row -> AssetImpl
# -------------------------------------------------------
def row_to_asset(
    row: Dict[str, str],
    user: str = "",
    create_mode: Optional[int] = CREATE_MODE_CSV,
    read_only: Optional[Dict[str, bool]] = None,
) -> AssetImpl:
    """Builds the asset described by one import row."""
    read_only = read_only or {}

    asset = AssetImpl(
        internal_name=row.get("id", ""),
        asset_type=row.get("type", ""),
        asset_subtype=row.get("sub_type") or row.get("subtype", ""),
        status=row.get("status") or AssetStatus.ACTIVE.value,
        parent_iname=row.get("location", ""),
        asset_tag=row.get("asset_tag", ""),
    )
    if row.get("priority"):
        try:
            asset.priority = parse_priority(row["priority"])
        except ValueError:
            raise BadParams("priority", row["priority"], f"Priority '{row['priority']}' is not valid, expected P1..P5")
    if row.get("name"):
        asset.set_ext("name", row["name"], read_only.get("name", False))

    links: Dict[int, LinkSpec] = {}
    for key, value in row.items():
        if key in ASSET_COLUMNS or not value:
            continue
        power = _POWER_COLUMN_RE.match(key)
        if power:
            link = links.setdefault(int(power.group(2)), LinkSpec(source=""))
            if power.group(1) == "power_source":
                link.source = value
            elif power.group(1) == "power_plug_src":
                link.src_out = value
            else:
                link.dest_in = value
            continue
        if _GROUP_COLUMN_RE.match(key):
            asset.groups.append(value)
            continue
        asset.ext[key] = ExtAttrValue(value, read_only.get(key, False))

    for index in sorted(links):
        link = links[index]
        if not link.source:
            if link.src_out or link.dest_in:
                raise BadParams(f"power_source.{index}", "", "power outlet is set without a power source")
            continue
        asset.links.append(link)

    if create_mode is not None:
        asset.set_ext("create_mode", str(create_mode))
    if user:
        asset.set_ext("create_user", user)
        asset.set_ext("update_user", user)
    return asset
