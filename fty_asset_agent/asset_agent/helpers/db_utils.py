# asset_agent/helpers/db_utils.py
"""
Database utility functions shared by the read and write paths.
"""
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional

from sqlalchemy import exc
from sqlalchemy.orm import Session

from asset_agent.core.errors import AssetError, ElementNotFound, ExceptionForElement, InternalError
from asset_agent.models.asset_models import AssetElement


def get_asset_by_name(
    db: Session,
    name: str,
    error_message: Optional[str] = None,
) -> AssetElement:
    """
    Get asset by internal name.

    Raises:
        ElementNotFound: If the asset does not exist
        InternalError: On database failure
    """
    try:
        asset = db.query(AssetElement).filter(AssetElement.name == name).first()
    except exc.SQLAlchemyError as e:
        raise InternalError(f"Database error while fetching asset '{name}': {e}")
    if asset is None:
        raise ElementNotFound(name, error_message)
    return asset


def get_asset_by_id(db: Session, asset_id: int) -> AssetElement:
    try:
        asset = db.get(AssetElement, asset_id)
    except exc.SQLAlchemyError as e:
        raise InternalError(f"Database error while fetching asset {asset_id}: {e}")
    if asset is None:
        raise ElementNotFound(str(asset_id))
    return asset


def batch_get_assets_by_name(db: Session, names: Iterable[str]) -> Dict[str, AssetElement]:
    """Fetch many assets with a single IN query; missing names are simply absent."""
    wanted = sorted({name for name in names if name})
    if not wanted:
        return {}
    assets = db.query(AssetElement).filter(AssetElement.name.in_(wanted)).all()
    return {asset.name: asset for asset in assets}


def all_asset_names(db: Session) -> List[str]:
    return [row.name for row in db.query(AssetElement.name).order_by(AssetElement.id).all()]


@contextmanager
def db_operation(db: Session, operation_name: str = "database operation", element: Optional[str] = None):
    """
    Context manager for database operations with proper exception handling.

    Usage:
        with db_operation(db, "create asset", element=iname):
            # database operations
            db.commit()
    """
    try:
        yield
    except AssetError:
        db.rollback()
        raise
    except exc.SQLAlchemyError as e:
        db.rollback()
        if element:
            raise ExceptionForElement(element, f"Database error during {operation_name}: {e}")
        raise InternalError(f"Database error during {operation_name}: {e}")
    except Exception as e:
        db.rollback()
        raise InternalError(f"Unexpected error during {operation_name}: {e}")
