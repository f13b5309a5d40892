"""CPNS promotion admissions: appointing a civil-servant candidate into a functional position."""
import posixpath

from sqlalchemy.orm import Session

from jfcase.errors import AppError, ErrorCode
from jfcase.models import Employee, PromotionCpns
from jfcase.models.promotion import PromotionStatus
from jfcase.schemas.promotion import PromotionCpnsCreate
from jfcase.services import workflow
from jfcase.services.object_storage import ObjectStorage
from jfcase.utils.deadline import Deadline

PAK_LETTER_SUBDIR = "pak"
PROMOTION_LETTER_SUBDIR = "promotion-cpns-letter"

KIND_PAK_LETTER = "pak_letter"
KIND_PROMOTION_LETTER = "promotion_letter"


def _field_error(detail: str) -> AppError:
    return AppError(ErrorCode.PROMOTION_CPNS_FIELD_INVALID, detail)


def check_submit(req: PromotionCpnsCreate):
    if not req.asn_id:
        raise _field_error("asn_id cannot be empty")
    if not req.admission_number:
        raise _field_error("admission_number cannot be empty")
    if not req.promotion_position_id:
        raise _field_error("promotion_position_id cannot be empty")
    if not req.organization_unit_id:
        raise _field_error("organization_unit_id cannot be empty")
    if workflow.parse_date(req.admission_date, ErrorCode.PROMOTION_CPNS_FIELD_INVALID) is None:
        raise _field_error("admission_date cannot be empty")

    pak = req.pak_letter
    if pak is None or not pak.document_number or not pak.document_date:
        raise _field_error("pak_letter needs a filename, document number and document date")
    workflow.parse_date(pak.document_date, ErrorCode.PROMOTION_CPNS_FIELD_INVALID)

    letter = req.promotion_letter
    if letter is None or not letter.document_number or not letter.document_date:
        raise _field_error("promotion_letter needs a filename, document number and document date")
    workflow.parse_date(letter.document_date, ErrorCode.PROMOTION_CPNS_FIELD_INVALID)


def submit(db: Session, storage: ObjectStorage, user: Employee, req: PromotionCpnsCreate,
           deadline: Deadline | None = None) -> PromotionCpns:
    check_submit(req)
    employee = workflow.find_employee(db, req.asn_id)
    if employee is None or employee.agency_id != user.agency_id:
        raise _field_error(f"ASN {req.asn_id!r} cannot be found")

    ts = workflow.now()
    admission = PromotionCpns(
        id=workflow.new_id(),
        agency_id=user.agency_id,
        asn_id=employee.asn_id,
        admission_number=req.admission_number,
        admission_date=req.admission_date,
        promotion_position_id=req.promotion_position_id,
        promotion_position=req.promotion_position,
        first_credit_number=req.first_credit_number,
        organization_unit_id=req.organization_unit_id,
        organization_unit=req.organization_unit,
        status=int(PromotionStatus.CREATED),
        status_ts=ts,
        status_by=user.asn_id,
        created_at=ts,
    )
    db.add(admission)
    workflow.set_status(db, workflow.CASE_PROMOTION_CPNS, admission, PromotionStatus.CREATED, user.asn_id)

    filename = f"{admission.id}.pdf"
    temp_keys = []
    for subdir, kind, doc in (
        (PAK_LETTER_SUBDIR, KIND_PAK_LETTER, req.pak_letter),
        (PROMOTION_LETTER_SUBDIR, KIND_PROMOTION_LETTER, req.promotion_letter),
    ):
        if deadline is not None:
            deadline.check("saving CPNS promotion documents")
        temp_key = posixpath.join(subdir, doc.filename)
        workflow.promote_file(storage, temp_key, posixpath.join(subdir, filename))
        temp_keys.append(temp_key)
        workflow.record_document(
            db, workflow.CASE_PROMOTION_CPNS, admission.id, kind, filename,
            document_name=doc.document_name, document_number=doc.document_number,
            document_date=doc.document_date,
        )
    workflow.commit(db, deadline)

    storage.delete_temp(temp_keys)
    return admission


def get_detail(db: Session, admission_id: str, user: Employee) -> PromotionCpns:
    return workflow.get_case(db, PromotionCpns, admission_id, workflow.agency_scope(user))


def search(db: Session, user: Employee, admission_date: str | None = None, status: int | None = None,
           agency_id: str | None = None, page: int = 1, per_page: int = 20) -> tuple[list[PromotionCpns], int]:
    admission_date = workflow.parse_date(admission_date, ErrorCode.PROMOTION_FILTER_DATE_INVALID)
    status = workflow.check_enum(status, PromotionStatus, ErrorCode.PROMOTION_FILTER_STATUS_INVALID)

    query = db.query(PromotionCpns)
    scope = workflow.agency_scope(user) or agency_id
    if scope:
        query = query.filter(PromotionCpns.agency_id == scope)
    if admission_date:
        query = query.filter(PromotionCpns.admission_date == admission_date)
    if status:
        query = query.filter(PromotionCpns.status == status)
    return workflow.paginate(query.order_by(PromotionCpns.created_at.desc()), page, per_page)


def _lock_created(db: Session, admission_id: str) -> PromotionCpns:
    admission = workflow.lock_case(db, PromotionCpns, admission_id)
    if admission.status != PromotionStatus.CREATED:
        raise AppError(ErrorCode.PROMOTION_CPNS_NOT_CREATED)
    return admission


def accept(db: Session, admission_id: str, user: Employee) -> PromotionCpns:
    admission = workflow.lock_case(db, PromotionCpns, admission_id)
    if admission.status == PromotionStatus.ACCEPTED:
        raise AppError(ErrorCode.PROMOTION_CPNS_ALREADY_ACCEPTED)
    if admission.status != PromotionStatus.CREATED:
        raise AppError(ErrorCode.PROMOTION_CPNS_NOT_CREATED)
    workflow.set_status(db, workflow.CASE_PROMOTION_CPNS, admission, PromotionStatus.ACCEPTED, user.asn_id)
    workflow.commit(db)
    return admission


def reject(db: Session, admission_id: str, user: Employee, reason: str | None = None) -> PromotionCpns:
    admission = _lock_created(db, admission_id)
    admission.rejection_reason = reason
    workflow.set_status(db, workflow.CASE_PROMOTION_CPNS, admission, PromotionStatus.REJECTED, user.asn_id,
                        note=reason)
    workflow.commit(db)
    return admission


def document_url(db: Session, storage: ObjectStorage, admission_id: str, kind: str, user: Employee) -> str:
    admission = get_detail(db, admission_id, user)
    subdirs = {KIND_PAK_LETTER: PAK_LETTER_SUBDIR, KIND_PROMOTION_LETTER: PROMOTION_LETTER_SUBDIR}
    if kind not in subdirs:
        raise AppError(ErrorCode.ENTRY_NOT_FOUND, f"{kind} of CPNS promotion {admission.id}")
    return workflow.download_url(storage, posixpath.join(subdirs[kind], f"{admission.id}.pdf"))


def statistics(db: Session, user: Employee) -> list[dict]:
    return workflow.status_statistics(db, PromotionCpns, PromotionStatus, workflow.agency_scope(user))
