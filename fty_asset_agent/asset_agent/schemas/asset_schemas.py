# asset_agent/schemas/asset_schemas.py
"""
Pydantic schemas of the HTTP surface: JSON create document, Dto and import
report.
"""
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Create
# =============================================================================

class PowerSource(BaseModel):
    src_id: Optional[str] = Field(None, description="Internal name of the power source")
    src_name: Optional[str] = Field(None, description="External name of the power source")
    src_socket: Optional[str] = Field(None, description="Outlet of the power source")


class AssetCreate(BaseModel):
    """JSON create document; ``name`` is the external name, ``location`` the parent."""
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1, description="External name")
    type: str = Field(..., min_length=1)
    sub_type: Optional[str] = None
    location: Optional[str] = Field(None, description="Parent external name or internal name")
    status: Optional[str] = Field(None, pattern="^(active|nonactive)$")
    priority: Optional[Union[str, int]] = None
    asset_tag: Optional[str] = None
    powers: List[PowerSource] = Field(default_factory=list)
    groups: List[str] = Field(default_factory=list)
    ext: List[Dict[str, Any]] = Field(default_factory=list)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


# =============================================================================
# Dto
# =============================================================================

class LinkedOut(BaseModel):
    source: str
    link_type: int
    src_out: Optional[str] = ""


class ExtValueOut(BaseModel):
    value: str
    readOnly: bool = False
    update: bool = False


class AssetDtoOut(BaseModel):
    status: int
    type: str
    sub_type: str
    name: str
    priority: int
    parent: str = ""
    linked: List[LinkedOut] = Field(default_factory=list)
    ext: Dict[str, ExtValueOut] = Field(default_factory=dict)


class AssetCreatedOut(BaseModel):
    id: int
    name: str
    ext_name: str = ""


class AssetDeletedOut(BaseModel):
    name: str
    deleted: bool = True


# =============================================================================
# Import
# =============================================================================

class ImportRowOut(BaseModel):
    row: int
    id: Optional[int] = None
    error: Optional[str] = None


class ImportReportOut(BaseModel):
    total: int
    written: int
    rejected: int
    rows: List[ImportRowOut]
