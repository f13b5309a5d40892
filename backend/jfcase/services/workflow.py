"""
Helpers shared by the case workflows: row locking, status transitions with
history, document promotion and listing.

Apart from :func:`commit` nothing here commits. Callers commit once every row
write and every object promotion of the request has succeeded; an
``AppError`` anywhere before that leaves the session to be rolled back when it
closes.
"""
import logging
import posixpath
import uuid
from datetime import date, datetime, timezone
from enum import IntEnum
from typing import Iterable

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from jfcase.errors import AppError, ErrorCode
from jfcase.models import CaseDocument, Employee, StatusHistory
from jfcase.models.employee import ROLE_SUPERVISOR, ROLE_VERIFIER
from jfcase.services.object_storage import (
    ObjectNotFoundError,
    ObjectStorage,
    SaveResult,
    StorageError,
    TempFileNotFoundError,
    UnsupportedFileTypeError,
)
from jfcase.utils.deadline import Deadline

logger = logging.getLogger("jfcase.workflow")

CASE_ACTIVITY = "activity"
CASE_REQUIREMENT = "requirement"
CASE_DISMISSAL = "dismissal"
CASE_PROMOTION = "promotion"
CASE_PROMOTION_CPNS = "promotion-cpns"
CASE_ASSESSMENT_TEAM = "assessment-team"

MAX_PER_PAGE = 100


def now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def new_id() -> str:
    return str(uuid.uuid4())


def parse_date(value: str | None, code: ErrorCode) -> str | None:
    """Validate an optional YYYY-MM-DD string, raising ``code`` when malformed."""
    if value is None or value == "":
        return None
    try:
        return date.fromisoformat(value).isoformat()
    except (TypeError, ValueError) as exc:
        raise AppError(code, f"invalid date {value!r}") from exc


def check_enum(value: int | None, enum_cls: type[IntEnum], code: ErrorCode) -> int | None:
    if value is None or value == 0:
        return None
    if value not in {int(m) for m in enum_cls}:
        raise AppError(code, f"{value} is not a valid {enum_cls.__name__}")
    return int(value)


def lock_case(db: Session, model, case_id: str, agency_id: str | None = None):
    """Load a case row for update. Raises ENTRY_NOT_FOUND when it does not exist (for the agency)."""
    query = db.query(model).filter(model.id == case_id)
    if agency_id is not None:
        query = query.filter(model.agency_id == agency_id)
    row = query.with_for_update().first()
    if row is None:
        raise AppError(ErrorCode.ENTRY_NOT_FOUND, f"{model.__tablename__} {case_id} not found")
    return row


def get_case(db: Session, model, case_id: str, agency_id: str | None = None):
    query = db.query(model).filter(model.id == case_id)
    if agency_id is not None:
        query = query.filter(model.agency_id == agency_id)
    row = query.first()
    if row is None:
        raise AppError(ErrorCode.ENTRY_NOT_FOUND, f"{model.__tablename__} {case_id} not found")
    return row


def set_status(db: Session, case_type: str, case, status: int, changed_by: str | None,
               note: str | None = None) -> str:
    ts = now()
    previous = case.status
    case.status = int(status)
    case.status_ts = ts
    case.status_by = changed_by
    db.add(StatusHistory(
        id=new_id(),
        case_type=case_type,
        case_id=case.id,
        status=int(status),
        changed_by=changed_by,
        changed_at=ts,
        note=note,
    ))
    logger.info("%s %s: status %s -> %s by %s", case_type, case.id, previous, int(status), changed_by)
    return ts


def commit(db: Session, deadline: Deadline | None = None):
    """Commit the request's transaction, rolling back instead once its deadline has passed.

    Without an explicit ``deadline`` the one :func:`jfcase.database.get_db`
    attached to the session is used.
    """
    if deadline is None:
        deadline = db.info.get("deadline")
    if deadline is not None and deadline.expired:
        db.rollback()
        logger.warning("Rolled back a transaction that outlived its %ss deadline", deadline.seconds)
        raise AppError(ErrorCode.REQUEST_TIMEOUT, "transaction rolled back")
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise AppError(ErrorCode.TX_COMMIT, str(exc)) from exc


def _translate_storage_error(exc: Exception) -> AppError:
    if isinstance(exc, TempFileNotFoundError):
        return AppError(ErrorCode.STORAGE_FILE_NOT_FOUND, str(exc), data={"missing_files": exc.keys})
    if isinstance(exc, ValueError):
        return AppError(ErrorCode.STORAGE_FILE_NOT_FOUND, str(exc))
    return AppError(ErrorCode.STORAGE_COPY_FAIL, str(exc))


def record_document(db: Session, case_type: str, case_id: str, kind: str, filename: str,
                    document_name: str | None = None, document_number: str | None = None,
                    document_date: str | None = None, note: str | None = None,
                    signer_id: str | None = None, subject_id: str | None = None) -> CaseDocument:
    doc = CaseDocument(
        id=new_id(),
        case_type=case_type,
        case_id=case_id,
        kind=kind,
        filename=filename,
        document_name=document_name,
        document_number=document_number,
        document_date=document_date,
        note=note,
        signer_id=signer_id,
        subject_id=subject_id,
        is_signed=0,
        created_at=now(),
    )
    db.add(doc)
    return doc


def document_keys(subdir: str, documents: Iterable) -> list[str]:
    return [posixpath.join(subdir, d.filename) for d in documents]


def promote_documents(db: Session, storage: ObjectStorage, case_type: str, case_id: str, kind: str,
                      subdir: str, documents: Iterable, deadline: Deadline | None = None,
                      delete_original: bool = False) -> list[CaseDocument]:
    """Promote uploaded ``documents`` from ``<subdir>/<filename>`` in the temp area and record them.

    The temp copies stay until the caller deletes them after commit.
    """
    documents = list(documents)
    keys = document_keys(subdir, documents)
    try:
        results: list[SaveResult] = storage.save_files(keys, delete_original=delete_original, deadline=deadline)
    except (StorageError, OSError, ValueError) as exc:
        raise _translate_storage_error(exc) from exc

    by_name = {d.filename: d for d in documents}
    rows = []
    for result in results:
        basename = posixpath.basename(result.filename)
        doc = by_name[basename]
        rows.append(record_document(
            db, case_type, case_id, kind, basename,
            document_name=getattr(doc, "document_name", None),
            document_number=getattr(doc, "document_number", None),
            document_date=getattr(doc, "document_date", None),
            note=getattr(doc, "note", None),
        ))
    return rows


def promote_file(storage: ObjectStorage, temp_key: str, permanent_key: str,
                 delete_original: bool = False) -> SaveResult:
    """Promote one object under a new key. Callers delete the temp copy after they commit."""
    try:
        return storage.save_file(temp_key, permanent_key, delete_original=delete_original)
    except (StorageError, OSError, ValueError) as exc:
        raise _translate_storage_error(exc) from exc


def documents_of(db: Session, case_type: str, case_id: str, kind: str | None = None) -> list[CaseDocument]:
    query = db.query(CaseDocument).filter(CaseDocument.case_type == case_type, CaseDocument.case_id == case_id)
    if kind is not None:
        query = query.filter(CaseDocument.kind == kind)
    return query.order_by(CaseDocument.created_at).all()


def agency_scope(user: Employee) -> str | None:
    """Agency admins only reach their own agency's cases; verifiers and supervisors reach all."""
    if user.has_role(ROLE_VERIFIER) or user.has_role(ROLE_SUPERVISOR):
        return None
    return user.agency_id


def find_employee(db: Session, asn_id: str) -> Employee | None:
    if not asn_id:
        return None
    return db.query(Employee).filter(Employee.asn_id == asn_id).first()


def agency_name(db: Session, agency_id: str) -> str:
    """Display name of an agency, taken from any employee profile that carries it."""
    row = db.query(Employee.agency).filter(Employee.agency_id == agency_id, Employee.agency.isnot(None)).first()
    return row[0] if row else ""


def paginate(query: Query, page: int, per_page: int) -> tuple[list, int]:
    if per_page < 1 or per_page > MAX_PER_PAGE:
        raise AppError(ErrorCode.LIST_COUNT_PER_PAGE, f"per_page={per_page}")
    if page < 1:
        raise AppError(ErrorCode.LIST_PAGE_NUMBER, f"page={page}")
    total = query.count()
    items = query.offset((page - 1) * per_page).limit(per_page).all()
    return items, total


def status_statistics(db: Session, model, statuses: type[IntEnum], agency_id: str | None = None) -> list[dict]:
    """Count of cases per status, including statuses with no cases."""
    query = db.query(model.status, func.count(model.id))
    if agency_id is not None:
        query = query.filter(model.agency_id == agency_id)
    counts = dict(query.group_by(model.status).all())
    return [{"status": int(s), "count": counts.get(int(s), 0)} for s in statuses]


def upload_url(storage: ObjectStorage, subdir: str, content_type: str, expire_seconds: int) -> dict:
    """A fresh object name under ``subdir`` plus a signed PUT URL for the temporary area."""
    try:
        filename = storage.generate_filename(content_type)
    except UnsupportedFileTypeError as exc:
        raise AppError(ErrorCode.MIME_TYPE_NOT_SUPPORTED, str(exc)) from exc
    return fixed_upload_url(storage, posixpath.join(subdir, filename), content_type, expire_seconds)


def document_upload_url(storage: ObjectStorage, subdirs: dict[str, str], document: str, content_type: str,
                        expire_seconds: int) -> dict:
    """Like :func:`upload_url`, with the subdirectory picked by document name."""
    if document not in subdirs:
        raise AppError(ErrorCode.ENTRY_NOT_FOUND, f"unknown document {document!r}, expected one of {sorted(subdirs)}")
    return upload_url(storage, subdirs[document], content_type, expire_seconds)


def fixed_upload_url(storage: ObjectStorage, key: str, content_type: str, expire_seconds: int) -> dict:
    return {
        "filename": posixpath.basename(key),
        "url": storage.generate_put_sign(key, content_type),
        "content_type": content_type,
        "expires_in_seconds": expire_seconds,
    }


def download_url(storage: ObjectStorage, key: str) -> str:
    """Signed GET URL for a permanent object, which must exist."""
    try:
        storage.get_metadata(key)
    except ObjectNotFoundError as exc:
        raise AppError(ErrorCode.STORAGE_FILE_NOT_FOUND, f"{storage.namespace}/{key}") from exc
    except (StorageError, OSError) as exc:
        raise AppError(ErrorCode.STORAGE_GET_METADATA_FAIL, f"{storage.namespace}/{key}: {exc}") from exc
    return storage.generate_get_sign(key)
