from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from jfcase.config import settings
from jfcase.database import get_db
from jfcase.dependencies import get_storage_registry, require_admin_token
from jfcase.errors import AppError, ErrorCode
from jfcase.services import maintenance_service
from jfcase.services.object_storage import NAMESPACES, StorageRegistry

router = APIRouter(prefix="/maintenance", tags=["maintenance"], dependencies=[Depends(require_admin_token)])


@router.post("/purge-temp")
def purge_temp(max_age_seconds: int | None = None, registry: StorageRegistry = Depends(get_storage_registry)):
    """Delete temporary uploads older than ``max_age_seconds`` in every namespace."""
    max_age = settings.temp_file_max_age_seconds if max_age_seconds is None else max_age_seconds
    deleted = {ns: maintenance_service.purge_temp(registry.get(ns), max_age) for ns in NAMESPACES}
    return {"max_age_seconds": max_age, "deleted": {ns: keys for ns, keys in deleted.items() if keys}}


@router.post("/sweep-orphans/{case_type}")
def sweep_orphans(
    case_type: str,
    dry_run: bool = True,
    db: Session = Depends(get_db),
    registry: StorageRegistry = Depends(get_storage_registry),
):
    if case_type not in maintenance_service.TRACKED_SUBDIRS:
        raise AppError(ErrorCode.ENTRY_NOT_FOUND, f"unknown case type {case_type!r}")
    orphans = maintenance_service.sweep_orphans(db, registry.get(case_type), case_type, dry_run=dry_run)
    return {"case_type": case_type, "dry_run": dry_run, "orphans": orphans}
