"""
Requirement (formation need) admissions.

An agency submits how many functional-position holders it needs per
organization unit, backed by estimation documents and a cover letter. A
verifier accepts or sends it back for revision; accepted requirements of one
agency are then bundled into a single recommendation letter that a supervisor
signs.
"""
import logging
import posixpath

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from jfcase.errors import AppError, ErrorCode
from jfcase.models import CaseDocument, Employee, Requirement, RequirementCount
from jfcase.models.employee import ROLE_SUPERVISOR
from jfcase.models.requirement import RequirementStatus
from jfcase.schemas.requirement import (
    RecommendationLetterBulkSubmit,
    RequirementCreate,
    RequirementRevision,
    RequirementVerification,
)
from jfcase.services import workflow
from jfcase.services.generator import DocumentGenerator
from jfcase.services.object_storage import ObjectStorage, UnsupportedFileTypeError
from jfcase.services.template_data import RecommendationEntry, RecommendationUnit, RequirementRecommendationLetter
from jfcase.services.template_repository import Template
from jfcase.utils.deadline import Deadline

logger = logging.getLogger("jfcase.requirement")

COVER_LETTER_SUBDIR = "cover-letter"
ESTIMATION_SUBDIR = "estimation"
RECOMMENDATION_LETTER_SUBDIR = "recommendation-letter"

KIND_COVER_LETTER = "cover_letter"
KIND_ESTIMATION = "estimation"
KIND_RECOMMENDATION_LETTER = "recommendation_letter"

PDF = "application/pdf"

PROCESSED = (RequirementStatus.ACCEPTED, RequirementStatus.ACCEPTED_WITH_RECOMMENDATION)


def cover_letter_key(requirement_id: str) -> str:
    return posixpath.join(COVER_LETTER_SUBDIR, f"{requirement_id}.pdf")


def check_submit(req: RequirementCreate, documents_required: bool = True):
    if not req.functional_position_id:
        raise AppError(ErrorCode.REQUIREMENT_POSITION_GRADE_EMPTY)
    if not req.counts:
        raise AppError(ErrorCode.REQUIREMENT_COUNT_INVALID, "no organization units supplied")
    for entry in req.counts:
        if not entry.organization_unit_id or entry.count <= 0:
            raise AppError(ErrorCode.REQUIREMENT_COUNT_INVALID, f"organization unit {entry.organization_unit_id!r}")
    if documents_required and not req.estimation_documents:
        raise AppError(ErrorCode.REQUIREMENT_NO_ESTIMATION_DOCS)
    if req.cover_letter is None:
        if documents_required:
            raise AppError(ErrorCode.REQUIREMENT_COVER_LETTER_INVALID, "cover letter is required")
    elif not req.cover_letter.document_name:
        raise AppError(ErrorCode.REQUIREMENT_COVER_LETTER_INVALID, "cover letter needs a document name")
    if req.fiscal_year <= 0:
        raise AppError(ErrorCode.REQUIREMENT_NO_FISCAL_YEAR)
    if not req.admission_number:
        raise AppError(ErrorCode.REQUIREMENT_NO_ADMISSION_NUMBER)


def bezetting(db: Session, functional_position_id: str, unit_ids: list[str]) -> dict[str, int]:
    """Current holders of the functional position per organization unit; units without holders count 0."""
    try:
        rows = db.query(Employee.organization_unit_id, func.count(Employee.asn_id)).filter(
            Employee.functional_position_id == functional_position_id,
            Employee.organization_unit_id.in_(unit_ids),
        ).group_by(Employee.organization_unit_id).all()
    except SQLAlchemyError as exc:
        raise AppError(ErrorCode.REQUIREMENT_BEZETTING, str(exc)) from exc
    counts = dict(rows)
    return {unit_id: counts.get(unit_id, 0) for unit_id in unit_ids}


def _replace_counts(db: Session, requirement: Requirement, req: RequirementCreate):
    held = bezetting(db, req.functional_position_id, [c.organization_unit_id for c in req.counts])
    requirement.counts.clear()
    db.flush()
    for entry in req.counts:
        requirement.counts.append(RequirementCount(
            organization_unit_id=entry.organization_unit_id,
            organization_unit=entry.organization_unit,
            count=entry.count,
            bezetting=held[entry.organization_unit_id],
        ))


def _save_cover_letter(db: Session, storage: ObjectStorage, requirement: Requirement, cover_letter) -> str:
    """Promote the uploaded cover letter; returns its temp key, to be deleted once the request commits."""
    temp_key = posixpath.join(COVER_LETTER_SUBDIR, cover_letter.filename)
    workflow.promote_file(storage, temp_key, cover_letter_key(requirement.id))
    for old in workflow.documents_of(db, workflow.CASE_REQUIREMENT, requirement.id, KIND_COVER_LETTER):
        db.delete(old)
    workflow.record_document(
        db, workflow.CASE_REQUIREMENT, requirement.id, KIND_COVER_LETTER, f"{requirement.id}.pdf",
        document_name=cover_letter.document_name, document_number=cover_letter.document_number,
        document_date=cover_letter.document_date,
    )
    return temp_key


def submit(db: Session, storage: ObjectStorage, user: Employee, req: RequirementCreate,
           deadline: Deadline | None = None) -> Requirement:
    check_submit(req)

    ts = workflow.now()
    requirement = Requirement(
        id=workflow.new_id(),
        agency_id=user.agency_id,
        functional_position_id=req.functional_position_id,
        functional_position=req.functional_position,
        fiscal_year=req.fiscal_year,
        admission_number=req.admission_number,
        admission_date=workflow.today(),
        status=int(RequirementStatus.CREATED),
        status_ts=ts,
        status_by=user.asn_id,
        created_at=ts,
    )
    db.add(requirement)
    _replace_counts(db, requirement, req)
    workflow.set_status(db, workflow.CASE_REQUIREMENT, requirement, RequirementStatus.CREATED, user.asn_id)

    temp_key = _save_cover_letter(db, storage, requirement, req.cover_letter)
    workflow.promote_documents(
        db, storage, workflow.CASE_REQUIREMENT, requirement.id, KIND_ESTIMATION, ESTIMATION_SUBDIR,
        req.estimation_documents, deadline=deadline,
    )
    workflow.commit(db, deadline)
    storage.delete_temp([temp_key] + workflow.document_keys(ESTIMATION_SUBDIR, req.estimation_documents))
    return requirement


def edit(db: Session, storage: ObjectStorage, requirement_id: str, user: Employee, req: RequirementCreate,
         deadline: Deadline | None = None) -> Requirement:
    """Resubmit a requirement that was sent back for revision.

    Counts are replaced with bezetting recomputed. The cover letter and the
    estimation documents are replaced only when new ones are supplied.
    """
    requirement = workflow.lock_case(db, Requirement, requirement_id, workflow.agency_scope(user))
    if requirement.status != RequirementStatus.REVISION:
        raise AppError(ErrorCode.REQUIREMENT_NOT_IN_REVISION)
    check_submit(req, documents_required=False)

    requirement.functional_position_id = req.functional_position_id
    requirement.functional_position = req.functional_position
    requirement.fiscal_year = req.fiscal_year
    requirement.admission_number = req.admission_number
    requirement.note = None
    _replace_counts(db, requirement, req)

    temp_keys = []
    if req.cover_letter is not None:
        temp_keys.append(_save_cover_letter(db, storage, requirement, req.cover_letter))
    if req.estimation_documents:
        for old in workflow.documents_of(db, workflow.CASE_REQUIREMENT, requirement.id, KIND_ESTIMATION):
            db.delete(old)
        workflow.promote_documents(
            db, storage, workflow.CASE_REQUIREMENT, requirement.id, KIND_ESTIMATION, ESTIMATION_SUBDIR,
            req.estimation_documents, deadline=deadline,
        )
        temp_keys.extend(workflow.document_keys(ESTIMATION_SUBDIR, req.estimation_documents))

    workflow.set_status(db, workflow.CASE_REQUIREMENT, requirement, RequirementStatus.CREATED, user.asn_id)
    workflow.commit(db, deadline)
    storage.delete_temp(temp_keys)
    return requirement


def get_detail(db: Session, requirement_id: str, user: Employee) -> Requirement:
    return workflow.get_case(db, Requirement, requirement_id, workflow.agency_scope(user))


def search(db: Session, user: Employee, admission_date: str | None = None, status: int | None = None,
           agency_id: str | None = None, page: int = 1, per_page: int = 20) -> tuple[list[Requirement], int]:
    admission_date = workflow.parse_date(admission_date, ErrorCode.REQUIREMENT_FILTER_DATE_INVALID)
    status = workflow.check_enum(status, RequirementStatus, ErrorCode.REQUIREMENT_FILTER_STATUS_INVALID)

    query = db.query(Requirement)
    scope = workflow.agency_scope(user) or agency_id
    if scope:
        query = query.filter(Requirement.agency_id == scope)
    if admission_date:
        query = query.filter(Requirement.admission_date == admission_date)
    if status:
        query = query.filter(Requirement.status == status)
    return workflow.paginate(query.order_by(Requirement.created_at.desc()), page, per_page)


def _apply_verification(db: Session, requirement: Requirement, req: RequirementVerification):
    if req.cover_letter_note is not None:
        for doc in workflow.documents_of(db, workflow.CASE_REQUIREMENT, requirement.id, KIND_COVER_LETTER):
            doc.note = req.cover_letter_note

    estimation = {d.filename: d for d in workflow.documents_of(
        db, workflow.CASE_REQUIREMENT, requirement.id, KIND_ESTIMATION)}
    for entry in req.estimation_document_notes:
        doc = estimation.get(entry.filename)
        if doc is None:
            raise AppError(ErrorCode.ENTRY_NOT_FOUND, data={"invalid_estimation_document": entry.filename})
        doc.note = entry.note

    counts = {c.organization_unit_id: c for c in requirement.counts}
    for entry in req.recommendations:
        count = counts.get(entry.organization_unit_id)
        if count is None:
            raise AppError(ErrorCode.ENTRY_NOT_FOUND, f"organization unit {entry.organization_unit_id}")
        count.recommendation = entry.recommendation


def accept(db: Session, requirement_id: str, user: Employee, req: RequirementVerification) -> Requirement:
    requirement = workflow.lock_case(db, Requirement, requirement_id)
    if requirement.status in PROCESSED:
        raise AppError(ErrorCode.REQUIREMENT_ALREADY_ACCEPTED)
    if requirement.status not in (RequirementStatus.CREATED, RequirementStatus.REVISION):
        raise AppError(ErrorCode.REQUIREMENT_PROCESSED_FURTHER)

    _apply_verification(db, requirement, req)
    requirement.note = None
    workflow.set_status(db, workflow.CASE_REQUIREMENT, requirement, RequirementStatus.ACCEPTED, user.asn_id)
    workflow.commit(db)
    return requirement


def revise(db: Session, requirement_id: str, user: Employee, req: RequirementRevision) -> Requirement:
    requirement = workflow.lock_case(db, Requirement, requirement_id)
    if requirement.status in PROCESSED:
        raise AppError(ErrorCode.REQUIREMENT_ALREADY_ACCEPTED)
    if requirement.status not in (RequirementStatus.CREATED, RequirementStatus.REVISION, RequirementStatus.DENIED):
        raise AppError(ErrorCode.REQUIREMENT_PROCESSED_FURTHER)
    if not req.reason:
        raise AppError(ErrorCode.REQUIREMENT_REVISION_NO_NOTE)

    _apply_verification(db, requirement, req)
    requirement.note = req.reason
    workflow.set_status(db, workflow.CASE_REQUIREMENT, requirement, RequirementStatus.REVISION, user.asn_id,
                        note=req.reason)
    workflow.commit(db)
    return requirement


def build_recommendation_letter_data(db: Session, requirements: list[Requirement],
                                     req: RecommendationLetterBulkSubmit) -> RequirementRecommendationLetter:
    entries = []
    for requirement in requirements:
        units = [
            RecommendationUnit(
                organization_unit=c.organization_unit or c.organization_unit_id,
                bezetting=c.bezetting,
                estimation=c.count,
                need=c.bezetting - c.count,
                recommendation=c.recommendation or 0,
            )
            for c in requirement.counts
        ]
        entries.append(RecommendationEntry.from_units(
            requirement.functional_position or requirement.functional_position_id, units,
        ))

    first = requirements[0]
    return RequirementRecommendationLetter(
        document_number=req.document_number,
        document_date=req.document_date,
        functional_position=first.functional_position or first.functional_position_id,
        agency=workflow.agency_name(db, first.agency_id),
        total_estimation=sum(c.count for r in requirements for c in r.counts),
        total_need=sum(c.bezetting - c.count for r in requirements for c in r.counts),
        entries=entries,
    )


def bulk_submit_recommendation_letter(db: Session, storage: ObjectStorage, generator: DocumentGenerator,
                                      user: Employee, req: RecommendationLetterBulkSubmit,
                                      deadline: Deadline | None = None) -> str:
    """Mark accepted requirements of one agency as recommended and render their shared letter.

    Returns the letter's filename under ``recommendation-letter/``.
    """
    ids = list(dict.fromkeys(req.requirement_ids))
    if not ids:
        raise AppError(ErrorCode.REQUIREMENT_RECOMMENDATION_LETTER_INVALID, "no requirement ids supplied")
    if not req.document_number or not req.document_date:
        raise AppError(ErrorCode.REQUIREMENT_RECOMMENDATION_LETTER_INVALID, "document number and date are required")
    document_date = workflow.parse_date(req.document_date, ErrorCode.REQUIREMENT_RECOMMENDATION_LETTER_INVALID)

    rows = {r.id: r for r in db.query(Requirement).filter(Requirement.id.in_(ids)).with_for_update()}
    missing = [i for i in ids if i not in rows]
    if missing:
        raise AppError(ErrorCode.ENTRY_NOT_FOUND, data={"invalid_requirement_ids": missing})
    requirements = [rows[i] for i in ids]
    if len({r.agency_id for r in requirements}) > 1:
        raise AppError(ErrorCode.REQUIREMENT_NOT_SAME_AGENCY)
    not_accepted = [r.id for r in requirements if r.status != RequirementStatus.ACCEPTED]
    if not_accepted:
        raise AppError(ErrorCode.REQUIREMENT_NOT_ACCEPTED, data={"invalid_requirement_ids": not_accepted})

    signer = workflow.find_employee(db, req.signer_asn_id)
    if signer is None or not signer.has_role(ROLE_SUPERVISOR):
        raise AppError(ErrorCode.ROLE_UNAUTHORIZED, f"signer {req.signer_asn_id!r} is not a supervisor")

    try:
        filename = storage.generate_filename(PDF)
    except UnsupportedFileTypeError as exc:
        raise AppError(ErrorCode.MIME_TYPE_NOT_SUPPORTED, str(exc)) from exc
    for requirement in requirements:
        workflow.set_status(db, workflow.CASE_REQUIREMENT, requirement,
                            RequirementStatus.ACCEPTED_WITH_RECOMMENDATION, user.asn_id)
        for old in workflow.documents_of(db, workflow.CASE_REQUIREMENT, requirement.id, KIND_RECOMMENDATION_LETTER):
            db.delete(old)
        workflow.record_document(
            db, workflow.CASE_REQUIREMENT, requirement.id, KIND_RECOMMENDATION_LETTER, filename,
            document_name=req.document_name, document_number=req.document_number,
            document_date=document_date, note=req.note, signer_id=signer.asn_id,
        )

    key = posixpath.join(RECOMMENDATION_LETTER_SUBDIR, filename)
    generator.generate(
        storage, build_recommendation_letter_data(db, requirements, req),
        Template.REQUIREMENT_RECOMMENDATION_LETTER, key, deadline,
    )
    try:
        workflow.commit(db, deadline)
    except AppError:
        storage.delete(key)
        raise
    logger.info("Recommendation letter %s issued for %d requirement(s)", filename, len(requirements))
    return filename


def sign_recommendation_letter(db: Session, user: Employee, filename: str) -> list[str]:
    """Mark every record of the letter as signed. Already-signed records are left untouched."""
    docs = db.query(CaseDocument).filter(
        CaseDocument.case_type == workflow.CASE_REQUIREMENT,
        CaseDocument.kind == KIND_RECOMMENDATION_LETTER,
        CaseDocument.filename == filename,
    ).with_for_update().all()
    if not docs:
        raise AppError(ErrorCode.ENTRY_NOT_FOUND, f"recommendation letter {filename}")

    ts = workflow.now()
    for doc in docs:
        if doc.is_signed:
            continue
        doc.is_signed = 1
        doc.signed_at = ts
        doc.signer_id = doc.signer_id or user.asn_id
    workflow.commit(db)
    return [d.case_id for d in docs]


def cover_letter_url(db: Session, storage: ObjectStorage, requirement_id: str, user: Employee) -> str:
    requirement = get_detail(db, requirement_id, user)
    return workflow.download_url(storage, cover_letter_key(requirement.id))


def estimation_document_url(db: Session, storage: ObjectStorage, requirement_id: str, filename: str,
                            user: Employee) -> str:
    requirement = get_detail(db, requirement_id, user)
    names = {d.filename for d in workflow.documents_of(db, workflow.CASE_REQUIREMENT, requirement.id, KIND_ESTIMATION)}
    if filename not in names:
        raise AppError(ErrorCode.ENTRY_NOT_FOUND, f"estimation document {filename}")
    return workflow.download_url(storage, posixpath.join(ESTIMATION_SUBDIR, filename))


def recommendation_letter_url(db: Session, storage: ObjectStorage, requirement_id: str, user: Employee) -> str:
    requirement = get_detail(db, requirement_id, user)
    docs = workflow.documents_of(db, workflow.CASE_REQUIREMENT, requirement.id, KIND_RECOMMENDATION_LETTER)
    if not docs:
        raise AppError(ErrorCode.REQUIREMENT_RECOMMENDATION_LETTER_INVALID, "no recommendation letter issued yet")
    return workflow.download_url(storage, posixpath.join(RECOMMENDATION_LETTER_SUBDIR, docs[0].filename))


def statistics(db: Session, user: Employee) -> list[dict]:
    return workflow.status_statistics(db, Requirement, RequirementStatus, workflow.agency_scope(user))
