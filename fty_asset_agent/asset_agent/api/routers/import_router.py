# asset_agent/api/routers/import_router.py
"""
Import Router - CSV upload of assets with a row-by-row report.

Row numbers start at 1 for the first data row. A document that cannot be
parsed is rejected as a whole (400); otherwise every row succeeds or fails
on its own.
"""
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status

from asset_agent.actors.asset_server import AssetServer, split_import_results
from asset_agent.api.dependencies import get_asset_server, to_http_exception
from asset_agent.core.errors import AssetError
from asset_agent.core.logger import app_logger
from asset_agent.schemas.asset_schemas import ImportReportOut, ImportRowOut

router = APIRouter(prefix="/api/assets", tags=["Assets Import"])

MAX_CSV_BYTES = 10 * 1024 * 1024


@router.post("/import", response_model=ImportReportOut)
async def import_assets(
    file: UploadFile = File(..., description="CSV file"),
    user: str = Query("", description="User credited with the import"),
    agent: AssetServer = Depends(get_asset_server),
):
    data = await file.read()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file is empty")
    if len(data) > MAX_CSV_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File too large ({len(data)} bytes)",
        )

    try:
        results = await agent.import_csv(data, user)
    except AssetError as e:
        app_logger.warning("CSV import rejected", extra={"upload_name": file.filename, "error": e.message})
        raise to_http_exception(e)

    written, rejected = split_import_results(results)
    rows = [ImportRowOut(row=row, id=asset_id) for row, asset_id in written]
    rows += [ImportRowOut(row=row, error=message) for row, message in rejected]
    rows.sort(key=lambda item: item.row)

    app_logger.info(
        "CSV import finished",
        extra={"upload_name": file.filename, "written": len(written), "rejected": len(rejected)},
    )
    return ImportReportOut(total=len(results), written=len(written), rejected=len(rejected), rows=rows)
