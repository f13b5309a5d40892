"""Functional-position promotion (pengangkatan) admissions and promotion letters."""
import posixpath

from sqlalchemy.orm import Session

from jfcase.errors import AppError, ErrorCode
from jfcase.models import Employee, Promotion
from jfcase.models.promotion import PromotionStatus, PromotionTestStatus, PromotionType
from jfcase.schemas.promotion import PromotionAcceptance, PromotionCreate
from jfcase.services import workflow
from jfcase.services.generator import DocumentGenerator
from jfcase.services.object_storage import ObjectStorage
from jfcase.services.template_data import PromotionLetter
from jfcase.services.template_repository import Template
from jfcase.utils.deadline import Deadline

PAK_LETTER_SUBDIR = "pak"
RECOMMENDATION_LETTER_SUBDIR = "recommendation-letter"
TEST_CERTIFICATE_SUBDIR = "test-certificate"
PROMOTION_LETTER_SUBDIR = "promotion-letter"

KIND_PAK_LETTER = "pak_letter"
KIND_RECOMMENDATION_LETTER = "recommendation_letter"
KIND_TEST_CERTIFICATE = "test_certificate"
KIND_PROMOTION_LETTER = "promotion_letter"

# request attribute -> (subdir, document kind)
SUBMITTED_DOCUMENTS = {
    "pak_letter": (PAK_LETTER_SUBDIR, KIND_PAK_LETTER),
    "recommendation_letter": (RECOMMENDATION_LETTER_SUBDIR, KIND_RECOMMENDATION_LETTER),
    "test_certificate": (TEST_CERTIFICATE_SUBDIR, KIND_TEST_CERTIFICATE),
}


def promotion_letter_key(promotion_id: str) -> str:
    return posixpath.join(PROMOTION_LETTER_SUBDIR, f"{promotion_id}.pdf")


def _check_document(doc, code: ErrorCode):
    if doc is None:
        raise AppError(code)
    workflow.parse_date(doc.document_date, ErrorCode.PROMOTION_DATE_INVALID)


def check_submit(req: PromotionCreate):
    if not req.asn_id:
        raise AppError(ErrorCode.PROMOTION_FIELD_EMPTY, "asn_id cannot be empty")
    if not req.admission_number:
        raise AppError(ErrorCode.PROMOTION_FIELD_EMPTY, "admission_number cannot be empty")
    if workflow.parse_date(req.admission_date, ErrorCode.PROMOTION_DATE_INVALID) is None:
        raise AppError(ErrorCode.PROMOTION_DATE_INVALID, "admission_date is required")
    if req.promotion_type not in {int(t) for t in PromotionType}:
        raise AppError(ErrorCode.PROMOTION_TYPE_INVALID, f"promotion type {req.promotion_type}")

    if req.promotion_type == PromotionType.TRANSFER:
        _check_document(req.recommendation_letter, ErrorCode.PROMOTION_RECOMMENDATION_LETTER_EMPTY)
        _check_document(req.pak_letter, ErrorCode.PROMOTION_PAK_LETTER_EMPTY)
    elif req.promotion_type == PromotionType.PROMOTION:
        _check_document(req.test_certificate, ErrorCode.PROMOTION_TEST_CERTIFICATE_EMPTY)
        if not req.test_status:
            raise AppError(ErrorCode.PROMOTION_FIELD_EMPTY, "test_status must be 1 (pass) or 2 (fail)")
        if req.test_status not in {int(s) for s in PromotionTestStatus}:
            raise AppError(ErrorCode.PROMOTION_TEST_STATUS_INVALID, f"test status {req.test_status}")

    if not req.promotion_position_id:
        raise AppError(ErrorCode.PROMOTION_POSITION_INVALID)


def submit(db: Session, storage: ObjectStorage, user: Employee, req: PromotionCreate,
           deadline: Deadline | None = None) -> Promotion:
    check_submit(req)
    employee = workflow.find_employee(db, req.asn_id)
    if employee is None or employee.agency_id != user.agency_id:
        raise AppError(ErrorCode.PROMOTION_ASN_NOT_FOUND, f"ASN {req.asn_id!r}")

    ts = workflow.now()
    promotion = Promotion(
        id=workflow.new_id(),
        agency_id=user.agency_id,
        asn_id=employee.asn_id,
        admission_number=req.admission_number,
        admission_date=req.admission_date,
        promotion_type=req.promotion_type,
        promotion_position_id=req.promotion_position_id,
        promotion_position=req.promotion_position,
        test_status=req.test_status,
        test_score=req.test_score,
        status=int(PromotionStatus.CREATED),
        status_ts=ts,
        status_by=user.asn_id,
        created_at=ts,
    )
    db.add(promotion)
    workflow.set_status(db, workflow.CASE_PROMOTION, promotion, PromotionStatus.CREATED, user.asn_id)

    temp_keys = []
    for attr, (subdir, kind) in SUBMITTED_DOCUMENTS.items():
        doc = getattr(req, attr)
        if doc is None:
            continue
        if deadline is not None:
            deadline.check("saving promotion documents")
        filename = f"{promotion.id}.pdf"
        temp_key = posixpath.join(subdir, doc.filename)
        workflow.promote_file(storage, temp_key, posixpath.join(subdir, filename))
        temp_keys.append(temp_key)
        workflow.record_document(
            db, workflow.CASE_PROMOTION, promotion.id, kind, filename,
            document_name=doc.document_name, document_number=doc.document_number,
            document_date=doc.document_date,
        )
    workflow.commit(db, deadline)
    storage.delete_temp(temp_keys)
    return promotion


def get_detail(db: Session, promotion_id: str, user: Employee) -> Promotion:
    return workflow.get_case(db, Promotion, promotion_id, workflow.agency_scope(user))


def search(db: Session, user: Employee, admission_date: str | None = None, status: int | None = None,
           promotion_type: int | None = None, agency_id: str | None = None,
           page: int = 1, per_page: int = 20) -> tuple[list[Promotion], int]:
    admission_date = workflow.parse_date(admission_date, ErrorCode.PROMOTION_FILTER_DATE_INVALID)
    status = workflow.check_enum(status, PromotionStatus, ErrorCode.PROMOTION_FILTER_STATUS_INVALID)
    promotion_type = workflow.check_enum(promotion_type, PromotionType, ErrorCode.PROMOTION_FILTER_TYPE_INVALID)

    query = db.query(Promotion)
    scope = workflow.agency_scope(user) or agency_id
    if scope:
        query = query.filter(Promotion.agency_id == scope)
    if admission_date:
        query = query.filter(Promotion.admission_date == admission_date)
    if status:
        query = query.filter(Promotion.status == status)
    if promotion_type:
        query = query.filter(Promotion.promotion_type == promotion_type)
    return workflow.paginate(query.order_by(Promotion.created_at.desc()), page, per_page)


def accept(db: Session, promotion_id: str, user: Employee, req: PromotionAcceptance) -> Promotion:
    promotion = workflow.lock_case(db, Promotion, promotion_id)
    if promotion.status == PromotionStatus.ACCEPTED:
        raise AppError(ErrorCode.PROMOTION_ALREADY_ACCEPTED)
    if promotion.status != PromotionStatus.CREATED:
        raise AppError(ErrorCode.PROMOTION_PROCESSED_FURTHER)
    document_date = workflow.parse_date(req.document_date, ErrorCode.PROMOTION_DATE_INVALID)

    workflow.set_status(db, workflow.CASE_PROMOTION, promotion, PromotionStatus.ACCEPTED, user.asn_id)
    if req.document_number or document_date:
        workflow.record_document(
            db, workflow.CASE_PROMOTION, promotion.id, KIND_PROMOTION_LETTER, f"{promotion.id}.pdf",
            document_name=req.document_name, document_number=req.document_number,
            document_date=document_date, signer_id=req.signer_asn_id,
        )
    workflow.commit(db)
    return promotion


def reject(db: Session, promotion_id: str, user: Employee, reason: str | None = None) -> Promotion:
    promotion = workflow.lock_case(db, Promotion, promotion_id)
    if promotion.status == PromotionStatus.REJECTED:
        raise AppError(ErrorCode.PROMOTION_ALREADY_REJECTED)
    if promotion.status != PromotionStatus.CREATED:
        raise AppError(ErrorCode.PROMOTION_PROCESSED_FURTHER)

    promotion.rejection_reason = reason
    workflow.set_status(db, workflow.CASE_PROMOTION, promotion, PromotionStatus.REJECTED, user.asn_id, note=reason)
    workflow.commit(db)
    return promotion


def build_promotion_letter_data(db: Session, promotion: Promotion) -> PromotionLetter:
    employee = workflow.find_employee(db, promotion.asn_id)
    if employee is None:
        raise AppError(ErrorCode.ENTRY_NOT_FOUND, f"ASN {promotion.asn_id} has no profile")
    letters = workflow.documents_of(db, workflow.CASE_PROMOTION, promotion.id, KIND_PROMOTION_LETTER)
    signed_date = letters[-1].document_date if letters and letters[-1].document_date else promotion.status_ts[:10]

    return PromotionLetter(
        admission_number=promotion.admission_number,
        admission_date=promotion.admission_date,
        name=employee.name,
        functional_position=promotion.promotion_position or promotion.promotion_position_id,
        signed_date=signed_date,
    )


def generate_promotion_letter(db: Session, storage: ObjectStorage, generator: DocumentGenerator,
                              promotion_id: str, user: Employee, force_regenerate: bool = False,
                              deadline: Deadline | None = None) -> str:
    promotion = get_detail(db, promotion_id, user)
    if promotion.status != PromotionStatus.ACCEPTED:
        raise AppError(ErrorCode.PROMOTION_NOT_ACCEPTED)
    key = promotion_letter_key(promotion.id)
    generator.get_or_generate(
        storage, key, Template.PROMOTION_LETTER,
        lambda: build_promotion_letter_data(db, promotion),
        force_regenerate=force_regenerate, deadline=deadline,
    )
    return key


def document_url(db: Session, storage: ObjectStorage, promotion_id: str, kind: str, user: Employee) -> str:
    """Signed URL of one of the documents supplied at submission."""
    promotion = get_detail(db, promotion_id, user)
    subdirs = {k: subdir for subdir, k in SUBMITTED_DOCUMENTS.values()}
    if kind not in subdirs or not workflow.documents_of(db, workflow.CASE_PROMOTION, promotion.id, kind):
        raise AppError(ErrorCode.ENTRY_NOT_FOUND, f"{kind} of promotion {promotion.id}")
    return workflow.download_url(storage, posixpath.join(subdirs[kind], f"{promotion.id}.pdf"))


def statistics(db: Session, user: Employee) -> list[dict]:
    return workflow.status_statistics(db, Promotion, PromotionStatus, workflow.agency_scope(user))
