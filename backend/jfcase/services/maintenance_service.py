"""
Housekeeping for the gap between relational rows and stored objects.

Rows are the source of truth. A submit that promoted objects but failed to
commit leaves permanent objects nobody references; clients that request an
upload URL and never submit leave temporary objects behind.
"""
import logging
import posixpath
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from jfcase.models import CaseDocument
from jfcase.services import (
    activity_service,
    assessment_team_service,
    dismissal_service,
    promotion_cpns_service,
    promotion_service,
    requirement_service,
    workflow,
)
from jfcase.services.object_storage import ObjectNotFoundError, ObjectStorage

logger = logging.getLogger("jfcase.maintenance")

# Permanent subdirectories whose every object has a case_documents row.
TRACKED_SUBDIRS: dict[str, tuple[str, ...]] = {
    workflow.CASE_ACTIVITY: (
        activity_service.SUPPORT_SUBDIR,
        activity_service.RECOMMENDATION_LETTER_SUBDIR,
    ),
    workflow.CASE_REQUIREMENT: (
        requirement_service.COVER_LETTER_SUBDIR,
        requirement_service.ESTIMATION_SUBDIR,
        requirement_service.RECOMMENDATION_LETTER_SUBDIR,
    ),
    workflow.CASE_DISMISSAL: (
        dismissal_service.SUPPORT_SUBDIR,
        dismissal_service.DENY_SUPPORT_SUBDIR,
        dismissal_service.ACCEPTANCE_LETTER_SUBDIR,
    ),
    workflow.CASE_PROMOTION: (
        promotion_service.PAK_LETTER_SUBDIR,
        promotion_service.RECOMMENDATION_LETTER_SUBDIR,
        promotion_service.TEST_CERTIFICATE_SUBDIR,
    ),
    workflow.CASE_PROMOTION_CPNS: (
        promotion_cpns_service.PAK_LETTER_SUBDIR,
        promotion_cpns_service.PROMOTION_LETTER_SUBDIR,
    ),
    workflow.CASE_ASSESSMENT_TEAM: (
        assessment_team_service.SUPPORT_SUBDIR,
        assessment_team_service.RECOMMENDATION_SUBDIR,
    ),
}


def _age_seconds(last_modified: str, now: datetime) -> float:
    modified = datetime.strptime(last_modified, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)
    return (now - modified).total_seconds()


def purge_temp(storage: ObjectStorage, max_age_seconds: int, now: datetime | None = None) -> list[str]:
    """Delete temporary objects older than ``max_age_seconds``; returns the deleted keys."""
    now = now or datetime.now(timezone.utc)
    expired = [m.filename for m in storage.list_temp() if _age_seconds(m.last_modified, now) > max_age_seconds]
    deleted = []
    for key in expired:
        try:
            storage.delete_temp_one(key)
        except ObjectNotFoundError:
            continue
        deleted.append(key)
    if deleted:
        logger.info("Purged %d expired temporary object(s) from %s", len(deleted), storage.namespace)
    return deleted


def sweep_orphans(db: Session, storage: ObjectStorage, case_type: str, dry_run: bool = True) -> list[str]:
    """Permanent objects in tracked subdirectories that no case_documents row refers to.

    They are deleted unless ``dry_run``.
    """
    subdirs = TRACKED_SUBDIRS.get(case_type, ())
    known = {
        row[0] for row in db.query(CaseDocument.filename).filter(CaseDocument.case_type == case_type)
    }

    orphans = []
    for subdir in subdirs:
        for meta in storage.list_permanent(f"{subdir}/"):
            if posixpath.basename(meta.filename) not in known:
                orphans.append(meta.filename)

    if not dry_run:
        for key in orphans:
            try:
                storage.delete(key)
            except ObjectNotFoundError:
                continue
        logger.info("Deleted %d orphaned object(s) from %s", len(orphans), storage.namespace)
    return orphans
