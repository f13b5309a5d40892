"""Activity (training and exam) admissions, attendee verification and certificates."""
import posixpath

from sqlalchemy.orm import Session

from jfcase.errors import AppError, ErrorCode
from jfcase.models import Activity, ActivityAttendee, ActivityCertificate, Employee
from jfcase.models.activity import ActivityStatus, ActivityType, CertificateType
from jfcase.schemas.activity import (
    ActivityCertRequest,
    ActivityCreate,
    ActivityVerification,
    CertificatesSubmit,
    CertificateUploadRequest,
    RecommendationLetterSubmit,
)
from jfcase.services import workflow
from jfcase.services.generator import DocumentGenerator
from jfcase.services.object_storage import ObjectStorage
from jfcase.services.template_data import ActivityCertificate as ActivityCertificateData
from jfcase.services.template_repository import Template
from jfcase.utils.deadline import Deadline

SUPPORT_SUBDIR = "support"
CERT_SUBDIR = "cert"
PAK_SUBDIR = "pak"
RECOMMENDATION_LETTER_SUBDIR = "recommendation-letter"

CERT_TYPE_SUBDIRS = {
    CertificateType.CERT: CERT_SUBDIR,
    CertificateType.PAK: PAK_SUBDIR,
}

KIND_SUPPORT = "support"
KIND_RECOMMENDATION_LETTER = "recommendation_letter"

PDF = "application/pdf"


def cert_key(activity_id: str, attendee_asn_id: str, cert_type: int = CertificateType.CERT) -> str:
    subdir = CERT_TYPE_SUBDIRS.get(cert_type)
    if subdir is None:
        raise AppError(ErrorCode.ACTIVITY_CERT_TYPE_UNSUPPORTED, f"certificate type {cert_type}")
    return posixpath.join(subdir, f"{activity_id}-{attendee_asn_id}.pdf")


def recommendation_letter_key(activity_id: str) -> str:
    return posixpath.join(RECOMMENDATION_LETTER_SUBDIR, f"{activity_id}.pdf")


def check_submit(req: ActivityCreate):
    if not req.attendees:
        raise AppError(ErrorCode.ACTIVITY_INSERT_NO_ATTENDEES)
    if not req.name:
        raise AppError(ErrorCode.ACTIVITY_INSERT_NAME_EMPTY)
    if not req.position_grade:
        raise AppError(ErrorCode.ACTIVITY_POSITION_GRADE_EMPTY)
    if req.activity_type not in {int(t) for t in ActivityType}:
        raise AppError(ErrorCode.ACTIVITY_INSERT_TYPE_INVALID, f"activity type {req.activity_type}")

    start = workflow.parse_date(req.start_date, ErrorCode.ACTIVITY_DATE_PERIOD_INVALID)
    end = workflow.parse_date(req.end_date, ErrorCode.ACTIVITY_DATE_PERIOD_INVALID)
    if start is None or end is None:
        raise AppError(ErrorCode.ACTIVITY_DATE_PERIOD_INVALID, "start and end date are required")
    if end < start:
        raise AppError(ErrorCode.ACTIVITY_DATE_PERIOD_INVALID, "end date is before start date")

    if req.training_year < 1970:
        raise AppError(ErrorCode.ACTIVITY_TRAINING_YEAR_INVALID)
    if req.duration < 0:
        raise AppError(ErrorCode.ACTIVITY_DURATION_INVALID)
    if not req.admission_number:
        raise AppError(ErrorCode.ACTIVITY_ADMISSION_NUMBER_INVALID)
    if not req.support_documents:
        raise AppError(ErrorCode.ACTIVITY_NO_SUPPORT_DOCS)


def submit(db: Session, storage: ObjectStorage, user: Employee, req: ActivityCreate,
           deadline: Deadline | None = None) -> Activity:
    check_submit(req)

    attendee_ids = list(dict.fromkeys(req.attendees))
    found = {
        e.asn_id for e in db.query(Employee).filter(
            Employee.asn_id.in_(attendee_ids), Employee.agency_id == user.agency_id,
        )
    }
    missing = [a for a in attendee_ids if a not in found]
    if missing:
        raise AppError(ErrorCode.ACTIVITY_INSERT_ASN_NOT_FOUND, data={"missing_asn_ids": missing})

    ts = workflow.now()
    activity = Activity(
        id=workflow.new_id(),
        agency_id=user.agency_id,
        name=req.name,
        activity_type=req.activity_type,
        description=req.description,
        position_grade=req.position_grade,
        training_year=req.training_year,
        duration=req.duration,
        organizer_agency=req.organizer_agency,
        admission_number=req.admission_number,
        admission_date=workflow.today(),
        start_date=req.start_date,
        end_date=req.end_date,
        status=int(ActivityStatus.CREATED),
        status_ts=ts,
        status_by=user.asn_id,
        created_at=ts,
    )
    db.add(activity)
    for asn_id in attendee_ids:
        db.add(ActivityAttendee(activity_id=activity.id, asn_id=asn_id))
    workflow.set_status(db, workflow.CASE_ACTIVITY, activity, ActivityStatus.CREATED, user.asn_id)

    workflow.promote_documents(
        db, storage, workflow.CASE_ACTIVITY, activity.id, KIND_SUPPORT, SUPPORT_SUBDIR,
        req.support_documents, deadline=deadline,
    )
    workflow.commit(db, deadline)
    storage.delete_temp(workflow.document_keys(SUPPORT_SUBDIR, req.support_documents))
    return activity


def get_detail(db: Session, activity_id: str, user: Employee) -> Activity:
    activity = workflow.get_case(db, Activity, activity_id)
    scope = workflow.agency_scope(user)
    if scope is not None and activity.agency_id != scope:
        raise AppError(ErrorCode.ACTIVITY_DETAIL_FORBIDDEN)
    return activity


def search(db: Session, user: Employee, admission_date: str | None = None, status: int | None = None,
           activity_type: int | None = None, agency_id: str | None = None,
           page: int = 1, per_page: int = 20) -> tuple[list[Activity], int]:
    admission_date = workflow.parse_date(admission_date, ErrorCode.ACTIVITY_FILTER_DATE_INVALID)
    status = workflow.check_enum(status, ActivityStatus, ErrorCode.ACTIVITY_FILTER_STATUS_INVALID)
    activity_type = workflow.check_enum(activity_type, ActivityType, ErrorCode.ACTIVITY_FILTER_TYPE_INVALID)

    query = db.query(Activity)
    scope = workflow.agency_scope(user) or agency_id
    if scope:
        query = query.filter(Activity.agency_id == scope)
    if admission_date:
        query = query.filter(Activity.admission_date == admission_date)
    if status:
        query = query.filter(Activity.status == status)
    if activity_type:
        query = query.filter(Activity.activity_type == activity_type)
    return workflow.paginate(query.order_by(Activity.created_at.desc()), page, per_page)


def _attendee(db: Session, activity_id: str, asn_id: str) -> ActivityAttendee:
    attendee = db.query(ActivityAttendee).filter(
        ActivityAttendee.activity_id == activity_id, ActivityAttendee.asn_id == asn_id,
    ).first()
    if attendee is None:
        raise AppError(ErrorCode.ENTRY_NOT_FOUND, f"attendee {asn_id} is not part of activity {activity_id}")
    return attendee


def accept(db: Session, activity_id: str, user: Employee, req: ActivityVerification) -> Activity:
    activity = workflow.lock_case(db, Activity, activity_id)
    if activity.status == ActivityStatus.ACCEPTED:
        raise AppError(ErrorCode.ACTIVITY_VERIFICATION_ALREADY_ACCEPTED)
    if activity.status != ActivityStatus.CREATED:
        raise AppError(ErrorCode.ACTIVITY_VERIFICATION_PROCESSED_FURTHER)
    if not req.attendees:
        raise AppError(ErrorCode.ACTIVITY_VERIFICATION_NO_ATTENDEES)

    ts = workflow.now()
    for decision in req.attendees:
        attendee = _attendee(db, activity.id, decision.asn_id)
        attendee.is_accepted = int(decision.is_accepted)
        attendee.accepted_reason_rejected = None if decision.is_accepted else decision.reason_rejected
        attendee.accepted_at = ts

    workflow.set_status(db, workflow.CASE_ACTIVITY, activity, ActivityStatus.ACCEPTED, user.asn_id)
    workflow.commit(db)
    return activity


def reject(db: Session, activity_id: str, user: Employee, reason: str | None = None) -> Activity:
    activity = workflow.lock_case(db, Activity, activity_id)
    if activity.status != ActivityStatus.CREATED:
        raise AppError(ErrorCode.ACTIVITY_VERIFICATION_PROCESSED_FURTHER)
    workflow.set_status(db, workflow.CASE_ACTIVITY, activity, ActivityStatus.REJECTED, user.asn_id, note=reason)
    workflow.commit(db)
    return activity


def request_certificates(db: Session, activity_id: str, user: Employee, req: ActivityCertRequest) -> Activity:
    activity = workflow.lock_case(db, Activity, activity_id, workflow.agency_scope(user))
    if activity.status == ActivityStatus.CERT_REQUEST:
        raise AppError(ErrorCode.ACTIVITY_CSR_ONGOING)
    if activity.status != ActivityStatus.ACCEPTED:
        raise AppError(ErrorCode.ACTIVITY_CSR_NOT_ACCEPTED)
    if not req.attendees:
        raise AppError(ErrorCode.ACTIVITY_CSR_NO_ATTENDEES)

    ts = workflow.now()
    for decision in req.attendees:
        attendee = _attendee(db, activity.id, decision.asn_id)
        attendee.is_passing = int(decision.is_passing)
        attendee.passing_reason_rejected = None if decision.is_passing else decision.reason_rejected
        attendee.passing_at = ts

    workflow.set_status(db, workflow.CASE_ACTIVITY, activity, ActivityStatus.CERT_REQUEST, user.asn_id)
    workflow.commit(db)
    return activity


def _check_certificate_type(activity: Activity, cert_type: int):
    if cert_type not in CERT_TYPE_SUBDIRS:
        raise AppError(ErrorCode.ACTIVITY_CERT_TYPE_UNSUPPORTED, f"certificate type {cert_type}")
    if cert_type == CertificateType.PAK and activity.activity_type != ActivityType.MUTATION_EXAM:
        raise AppError(ErrorCode.ACTIVITY_CERT_PAK_UNSUPPORTED)


def certificate_upload_url(db: Session, storage: ObjectStorage, activity_id: str, user: Employee,
                           req: CertificateUploadRequest, expire_seconds: int) -> dict:
    activity = workflow.get_case(db, Activity, activity_id, workflow.agency_scope(user))
    if activity.status not in (ActivityStatus.ACCEPTED, ActivityStatus.CERT_REQUEST):
        raise AppError(ErrorCode.ACTIVITY_CERT_NOT_REQUESTED)
    _check_certificate_type(activity, req.cert_type)
    _attendee(db, activity.id, req.attendee_asn_id)
    key = cert_key(activity.id, req.attendee_asn_id, req.cert_type)
    return workflow.fixed_upload_url(storage, key, PDF, expire_seconds)


def submit_certificates(db: Session, storage: ObjectStorage, activity_id: str, user: Employee,
                        req: CertificatesSubmit, deadline: Deadline | None = None) -> Activity:
    activity = workflow.lock_case(db, Activity, activity_id, workflow.agency_scope(user))
    if activity.status not in (ActivityStatus.ACCEPTED, ActivityStatus.CERT_REQUEST):
        raise AppError(ErrorCode.ACTIVITY_CERT_NOT_REQUESTED)
    if not req.certificates:
        raise AppError(ErrorCode.ACTIVITY_CERT_NO_DOCS)

    ts = workflow.now()
    promoted = []
    for entry in req.certificates:
        _check_certificate_type(activity, entry.cert_type)
        attendee = _attendee(db, activity.id, entry.attendee_asn_id)
        attendee.is_passing = int(entry.is_passing)
        attendee.passing_reason_rejected = None if entry.is_passing else entry.reason_rejected
        attendee.passing_at = ts
        if not entry.is_passing:
            continue

        db.merge(ActivityCertificate(
            activity_id=activity.id,
            asn_id=entry.attendee_asn_id,
            cert_type=entry.cert_type,
            document_number=entry.document_number,
            document_date=entry.document_date,
            signer_id=entry.signer_asn_id,
            score=entry.score,
            created_at=ts,
        ))
        key = cert_key(activity.id, entry.attendee_asn_id, entry.cert_type)
        if storage.exists_temp(key):
            if deadline is not None:
                deadline.check("saving certificates")
            workflow.promote_file(storage, key, key)
            promoted.append(key)

    workflow.set_status(db, workflow.CASE_ACTIVITY, activity, ActivityStatus.CERT_PUBLISHED, user.asn_id)
    workflow.commit(db, deadline)
    storage.delete_temp(promoted)
    return activity


def build_certificate_data(db: Session, activity: Activity, attendee: ActivityAttendee) -> ActivityCertificateData:
    employee = workflow.find_employee(db, attendee.asn_id)
    if employee is None:
        raise AppError(ErrorCode.ENTRY_NOT_FOUND, f"ASN {attendee.asn_id} has no profile")
    certificate = db.query(ActivityCertificate).filter(
        ActivityCertificate.activity_id == activity.id,
        ActivityCertificate.asn_id == attendee.asn_id,
        ActivityCertificate.cert_type == CertificateType.CERT,
    ).first()

    return ActivityCertificateData(
        name=employee.name,
        nip=employee.nip,
        birth_place=employee.birth_place or "",
        birth_date=employee.birth_date or "",
        photo=employee.photo or "",
        functional_position=activity.position_grade,
        agency=employee.agency or "",
        organizer_agency=activity.organizer_agency or "",
        qualification="Diterima" if attendee.is_accepted else "Ditolak",
        activity=activity.name,
        duration=activity.duration,
        admission_number=activity.admission_number,
        start_date=activity.start_date,
        end_date=activity.end_date,
        description=activity.description or "",
        document_number=certificate.document_number if certificate else "",
        document_date=certificate.document_date if certificate else "",
    )


def generate_certificate(db: Session, storage: ObjectStorage, generator: DocumentGenerator, activity_id: str,
                         attendee_asn_id: str, force_regenerate: bool = False,
                         deadline: Deadline | None = None) -> str:
    """Make sure the attendee's certificate exists and return its key."""
    activity = workflow.get_case(db, Activity, activity_id)
    if activity.status not in (ActivityStatus.ACCEPTED, ActivityStatus.CERT_REQUEST, ActivityStatus.CERT_PUBLISHED):
        raise AppError(ErrorCode.ACTIVITY_CERT_NOT_REQUESTED)
    attendee = _attendee(db, activity.id, attendee_asn_id)

    key = cert_key(activity.id, attendee_asn_id)
    generator.get_or_generate(
        storage, key, Template.ACTIVITY_CERTIFICATE,
        lambda: build_certificate_data(db, activity, attendee),
        force_regenerate=force_regenerate, deadline=deadline,
    )
    return key


def recommendation_letter_upload_url(db: Session, storage: ObjectStorage, activity_id: str, user: Employee,
                                     expire_seconds: int) -> dict:
    activity = workflow.get_case(db, Activity, activity_id, workflow.agency_scope(user))
    if activity.status != ActivityStatus.CREATED:
        raise AppError(ErrorCode.ACTIVITY_VERIFICATION_ALREADY_ACCEPTED)
    return workflow.fixed_upload_url(storage, recommendation_letter_key(activity.id), PDF, expire_seconds)


def submit_recommendation_letter(db: Session, storage: ObjectStorage, activity_id: str, user: Employee,
                                 req: RecommendationLetterSubmit) -> Activity:
    activity = workflow.lock_case(db, Activity, activity_id, workflow.agency_scope(user))
    if activity.status != ActivityStatus.CREATED:
        raise AppError(ErrorCode.ACTIVITY_VERIFICATION_ALREADY_ACCEPTED)
    if not req.document_number or not req.document_date:
        raise AppError(ErrorCode.ACTIVITY_NO_RECOMMENDATION_LETTER)
    document_date = workflow.parse_date(req.document_date, ErrorCode.ACTIVITY_NO_RECOMMENDATION_LETTER)

    key = recommendation_letter_key(activity.id)
    workflow.promote_file(storage, key, key)
    for old in workflow.documents_of(db, workflow.CASE_ACTIVITY, activity.id, KIND_RECOMMENDATION_LETTER):
        db.delete(old)
    workflow.record_document(
        db, workflow.CASE_ACTIVITY, activity.id, KIND_RECOMMENDATION_LETTER, posixpath.basename(key),
        document_name=req.document_name, document_number=req.document_number,
        document_date=document_date, signer_id=req.signer_asn_id,
    )
    workflow.commit(db)
    storage.delete_temp([key])
    return activity


def recommendation_letter_url(db: Session, storage: ObjectStorage, activity_id: str, user: Employee) -> str:
    activity = get_detail(db, activity_id, user)
    if not workflow.documents_of(db, workflow.CASE_ACTIVITY, activity.id, KIND_RECOMMENDATION_LETTER):
        raise AppError(ErrorCode.ACTIVITY_NO_RECOMMENDATION_LETTER)
    return workflow.download_url(storage, recommendation_letter_key(activity.id))


def support_document_url(db: Session, storage: ObjectStorage, activity_id: str, filename: str,
                         user: Employee) -> str:
    activity = get_detail(db, activity_id, user)
    names = {d.filename for d in workflow.documents_of(db, workflow.CASE_ACTIVITY, activity.id, KIND_SUPPORT)}
    if filename not in names:
        raise AppError(ErrorCode.ENTRY_NOT_FOUND, f"support document {filename}")
    return workflow.download_url(storage, posixpath.join(SUPPORT_SUBDIR, filename))


def pak_url(db: Session, storage: ObjectStorage, activity_id: str, attendee_asn_id: str, user: Employee) -> str:
    activity = get_detail(db, activity_id, user)
    _attendee(db, activity.id, attendee_asn_id)
    return workflow.download_url(storage, cert_key(activity.id, attendee_asn_id, CertificateType.PAK))


def statistics(db: Session, user: Employee) -> list[dict]:
    return workflow.status_statistics(db, Activity, ActivityStatus, workflow.agency_scope(user))
