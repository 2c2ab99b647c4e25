# asset_agent/api/routers/asset_router.py
"""
Asset Router - JSON create, detail (Dto) and delete of single assets.
All operations run on the asset agent task.
"""
from fastapi import APIRouter, Depends, Query, status

from asset_agent.actors.asset_server import AssetServer
from asset_agent.api.dependencies import get_asset_server, to_http_exception
from asset_agent.core.errors import AssetError
from asset_agent.core.logger import app_logger
from asset_agent.schemas.asset_schemas import AssetCreate, AssetCreatedOut, AssetDeletedOut, AssetDtoOut

router = APIRouter(prefix="/api/assets", tags=["Assets"])


@router.post("", response_model=AssetCreatedOut, status_code=status.HTTP_201_CREATED)
async def create_asset(
    payload: AssetCreate,
    user: str = Query("", description="User credited with the creation"),
    agent: AssetServer = Depends(get_asset_server),
):
    try:
        created = await agent.create_from_json(payload.to_document(), user)
    except AssetError as e:
        app_logger.warning("Asset create rejected", extra={"ext_name": payload.name, "error": e.message})
        raise to_http_exception(e)
    return AssetCreatedOut(id=created.id, name=created.internal_name, ext_name=created.ext_name)


@router.get("/{iname}", response_model=AssetDtoOut)
async def get_asset(iname: str, agent: AssetServer = Depends(get_asset_server)):
    try:
        return await agent.get_dto(iname)
    except AssetError as e:
        raise to_http_exception(e)


@router.delete("/{iname}", response_model=AssetDeletedOut)
async def delete_asset(iname: str, agent: AssetServer = Depends(get_asset_server)):
    try:
        before = await agent.delete(iname)
    except AssetError as e:
        app_logger.warning("Asset delete rejected", extra={"iname": iname, "error": e.message})
        raise to_http_exception(e)
    return AssetDeletedOut(name=before.internal_name)
