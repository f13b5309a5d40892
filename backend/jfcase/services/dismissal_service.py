"""Dismissal admissions and their acceptance letters."""
import posixpath

from sqlalchemy.orm import Session

from jfcase.errors import AppError, ErrorCode
from jfcase.models import Dismissal, Employee
from jfcase.models.dismissal import DECREE_REASONS, DISMISSAL_REASONS, DismissalStatus
from jfcase.models.employee import ROLE_SUPERVISOR
from jfcase.schemas.dismissal import DismissalAcceptance, DismissalCreate, DismissalDenial
from jfcase.services import workflow
from jfcase.services.generator import DocumentGenerator
from jfcase.services.object_storage import ObjectStorage
from jfcase.services.template_data import DismissalAcceptanceLetter
from jfcase.services.template_repository import Template
from jfcase.utils.deadline import Deadline

SUPPORT_SUBDIR = "dismissal-support"
ACCEPTANCE_LETTER_SUBDIR = "acceptance-letter"
DENY_SUPPORT_SUBDIR = "deny-support"

KIND_SUPPORT = "support"
KIND_ACCEPTANCE_LETTER = "acceptance_letter"
KIND_DENY_SUPPORT = "deny_support"


def acceptance_letter_key(dismissal_id: str) -> str:
    return posixpath.join(ACCEPTANCE_LETTER_SUBDIR, f"{dismissal_id}.pdf")


def check_submit(req: DismissalCreate):
    if req.reason not in DISMISSAL_REASONS:
        raise AppError(ErrorCode.DISMISSAL_REASON_EMPTY, f"reason {req.reason!r}")
    if req.reason in DECREE_REASONS:
        if not req.decree_number or not req.decree_date or not req.reason_detail:
            raise AppError(ErrorCode.DISMISSAL_DECREE_DATA_EMPTY)
        workflow.parse_date(req.decree_date, ErrorCode.DISMISSAL_DECREE_DATA_EMPTY)
    workflow.parse_date(req.dismissal_date, ErrorCode.DISMISSAL_FILTER_DATE_INVALID)
    if not req.admission_number:
        raise AppError(ErrorCode.DISMISSAL_ADMISSION_NUMBER_INVALID)
    if not req.support_documents:
        raise AppError(ErrorCode.DISMISSAL_NO_SUPPORT_DOCS)


def submit(db: Session, storage: ObjectStorage, user: Employee, req: DismissalCreate,
           deadline: Deadline | None = None) -> Dismissal:
    check_submit(req)
    employee = workflow.find_employee(db, req.asn_id)
    if employee is None or employee.agency_id != user.agency_id:
        raise AppError(ErrorCode.DISMISSAL_ASN_NOT_FOUND, f"ASN {req.asn_id!r}")

    ts = workflow.now()
    dismissal = Dismissal(
        id=workflow.new_id(),
        agency_id=user.agency_id,
        asn_id=employee.asn_id,
        admission_number=req.admission_number,
        admission_date=workflow.today(),
        reason=req.reason,
        reason_detail=req.reason_detail,
        decree_number=req.decree_number,
        decree_date=req.decree_date,
        dismissal_date=req.dismissal_date,
        status=int(DismissalStatus.CREATED),
        status_ts=ts,
        status_by=user.asn_id,
        created_at=ts,
    )
    db.add(dismissal)
    workflow.set_status(db, workflow.CASE_DISMISSAL, dismissal, DismissalStatus.CREATED, user.asn_id)
    workflow.promote_documents(
        db, storage, workflow.CASE_DISMISSAL, dismissal.id, KIND_SUPPORT, SUPPORT_SUBDIR,
        req.support_documents, deadline=deadline,
    )
    workflow.commit(db, deadline)
    storage.delete_temp(workflow.document_keys(SUPPORT_SUBDIR, req.support_documents))
    return dismissal


def get_detail(db: Session, dismissal_id: str, user: Employee) -> Dismissal:
    return workflow.get_case(db, Dismissal, dismissal_id, workflow.agency_scope(user))


def search(db: Session, user: Employee, admission_date: str | None = None, status: int | None = None,
           agency_id: str | None = None, page: int = 1, per_page: int = 20) -> tuple[list[Dismissal], int]:
    admission_date = workflow.parse_date(admission_date, ErrorCode.DISMISSAL_FILTER_DATE_INVALID)
    status = workflow.check_enum(status, DismissalStatus, ErrorCode.DISMISSAL_FILTER_STATUS_INVALID)

    query = db.query(Dismissal)
    scope = workflow.agency_scope(user) or agency_id
    if scope:
        query = query.filter(Dismissal.agency_id == scope)
    if admission_date:
        query = query.filter(Dismissal.admission_date == admission_date)
    if status:
        query = query.filter(Dismissal.status == status)
    return workflow.paginate(query.order_by(Dismissal.created_at.desc()), page, per_page)


def build_acceptance_letter_data(db: Session, dismissal: Dismissal) -> DismissalAcceptanceLetter:
    employee = workflow.find_employee(db, dismissal.asn_id)
    if employee is None:
        raise AppError(ErrorCode.ENTRY_NOT_FOUND, f"ASN {dismissal.asn_id} has no profile")
    letters = workflow.documents_of(db, workflow.CASE_DISMISSAL, dismissal.id, KIND_ACCEPTANCE_LETTER)
    letter = letters[-1] if letters else None

    return DismissalAcceptanceLetter(
        document_number=letter.document_number if letter else "",
        document_date=letter.document_date if letter else "",
        decree_number=dismissal.decree_number or "",
        decree_date=dismissal.decree_date or "",
        dismissal_date=dismissal.dismissal_date or "",
        reason=dismissal.reason_detail or dismissal.reason,
        name=employee.name,
        nip=employee.nip,
        rank=employee.rank or "",
        functional_position=employee.functional_position or "",
        organization_unit=employee.organization_unit or "",
    )


def accept(db: Session, dismissal_id: str, user: Employee, req: DismissalAcceptance) -> Dismissal:
    """Accept a dismissal and record its acceptance letter. The PDF is rendered on first download."""
    if not req.document_number or not req.document_date:
        raise AppError(ErrorCode.DISMISSAL_ACCEPTANCE_NO_LETTER)
    document_date = workflow.parse_date(req.document_date, ErrorCode.DISMISSAL_ACCEPTANCE_NO_LETTER)

    dismissal = workflow.lock_case(db, Dismissal, dismissal_id, workflow.agency_scope(user))
    signer = workflow.find_employee(db, req.signer_asn_id)
    if signer is None:
        raise AppError(ErrorCode.DISMISSAL_SIGNER_NOT_FOUND, f"signer {req.signer_asn_id!r}")
    if not signer.has_role(ROLE_SUPERVISOR):
        raise AppError(ErrorCode.ROLE_UNAUTHORIZED, f"signer {signer.asn_id} is not a supervisor")
    if dismissal.status == DismissalStatus.ACCEPTED:
        raise AppError(ErrorCode.DISMISSAL_ALREADY_ACCEPTED)
    if dismissal.status != DismissalStatus.CREATED:
        raise AppError(ErrorCode.DISMISSAL_PROCESSED_FURTHER)

    workflow.set_status(db, workflow.CASE_DISMISSAL, dismissal, DismissalStatus.ACCEPTED, user.asn_id)
    for old in workflow.documents_of(db, workflow.CASE_DISMISSAL, dismissal.id, KIND_ACCEPTANCE_LETTER):
        db.delete(old)
    workflow.record_document(
        db, workflow.CASE_DISMISSAL, dismissal.id, KIND_ACCEPTANCE_LETTER, f"{dismissal.id}.pdf",
        document_name=req.document_name, document_number=req.document_number,
        document_date=document_date, signer_id=signer.asn_id,
    )
    workflow.commit(db)
    return dismissal


def deny(db: Session, storage: ObjectStorage, dismissal_id: str, user: Employee, req: DismissalDenial,
         deadline: Deadline | None = None) -> Dismissal:
    if not req.reason:
        raise AppError(ErrorCode.DISMISSAL_DENIAL_NO_REASON)
    dismissal = workflow.lock_case(db, Dismissal, dismissal_id, workflow.agency_scope(user))
    if dismissal.status != DismissalStatus.CREATED:
        raise AppError(ErrorCode.DISMISSAL_PROCESSED_FURTHER)

    dismissal.deny_reason = req.reason
    workflow.set_status(db, workflow.CASE_DISMISSAL, dismissal, DismissalStatus.REJECTED, user.asn_id,
                        note=req.reason)
    if req.support_documents:
        workflow.promote_documents(
            db, storage, workflow.CASE_DISMISSAL, dismissal.id, KIND_DENY_SUPPORT, DENY_SUPPORT_SUBDIR,
            req.support_documents, deadline=deadline,
        )
    workflow.commit(db, deadline)
    storage.delete_temp(workflow.document_keys(DENY_SUPPORT_SUBDIR, req.support_documents))
    return dismissal


def generate_acceptance_letter(db: Session, storage: ObjectStorage, generator: DocumentGenerator,
                               dismissal_id: str, user: Employee, force_regenerate: bool = False,
                               deadline: Deadline | None = None) -> str:
    dismissal = get_detail(db, dismissal_id, user)
    if dismissal.status != DismissalStatus.ACCEPTED:
        raise AppError(ErrorCode.DISMISSAL_NOT_ACCEPTED)
    key = acceptance_letter_key(dismissal.id)
    generator.get_or_generate(
        storage, key, Template.DISMISSAL_ACCEPTANCE_LETTER,
        lambda: build_acceptance_letter_data(db, dismissal),
        force_regenerate=force_regenerate, deadline=deadline,
    )
    return key


def support_document_url(db: Session, storage: ObjectStorage, dismissal_id: str, filename: str,
                         user: Employee) -> str:
    dismissal = get_detail(db, dismissal_id, user)
    for doc in workflow.documents_of(db, workflow.CASE_DISMISSAL, dismissal.id):
        if doc.filename != filename:
            continue
        if doc.kind == KIND_SUPPORT:
            return workflow.download_url(storage, posixpath.join(SUPPORT_SUBDIR, filename))
        if doc.kind == KIND_DENY_SUPPORT:
            return workflow.download_url(storage, posixpath.join(DENY_SUPPORT_SUBDIR, filename))
    raise AppError(ErrorCode.ENTRY_NOT_FOUND, f"support document {filename}")


def statistics(db: Session, user: Employee) -> list[dict]:
    return workflow.status_statistics(db, Dismissal, DismissalStatus, workflow.agency_scope(user))
