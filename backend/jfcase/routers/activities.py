from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from jfcase.config import settings
from jfcase.database import get_db
from jfcase.dependencies import (
    get_current_user,
    get_deadline,
    get_generator,
    get_storage_registry,
    require_role,
)
from jfcase.models import Activity, Employee
from jfcase.models.employee import ROLE_VERIFIER
from jfcase.schemas.activity import (
    ActivityCertRequest,
    ActivityCreate,
    ActivityListResponse,
    ActivityResponse,
    ActivityVerification,
    AttendeeOut,
    CertificateOut,
    CertificatesSubmit,
    CertificateUploadRequest,
    RecommendationLetterSubmit,
)
from jfcase.schemas.common import (
    RejectRequest,
    StatisticStatus,
    StatusChangeResponse,
    UploadUrlRequest,
    UploadUrlResponse,
    document_to_response,
)
from jfcase.services import activity_service, workflow
from jfcase.services.generator import DocumentGenerator
from jfcase.services.object_storage import ObjectStorage, StorageRegistry
from jfcase.utils.deadline import Deadline

router = APIRouter(prefix="/activities", tags=["activities"])


def get_storage(registry: StorageRegistry = Depends(get_storage_registry)) -> ObjectStorage:
    return registry.get(workflow.CASE_ACTIVITY)


def _activity_to_response(db: Session, activity: Activity, detail: bool = False) -> ActivityResponse:
    response = ActivityResponse(
        id=activity.id,
        agency_id=activity.agency_id,
        name=activity.name,
        activity_type=activity.activity_type,
        description=activity.description,
        position_grade=activity.position_grade,
        training_year=activity.training_year,
        duration=activity.duration,
        organizer_agency=activity.organizer_agency,
        admission_number=activity.admission_number,
        admission_date=activity.admission_date,
        start_date=activity.start_date,
        end_date=activity.end_date,
        status=activity.status,
        status_ts=activity.status_ts,
        status_by=activity.status_by,
        created_at=activity.created_at,
    )
    if not detail:
        return response

    for attendee in activity.attendees:
        employee = workflow.find_employee(db, attendee.asn_id)
        response.attendees.append(AttendeeOut(
            asn_id=attendee.asn_id,
            nip=employee.nip if employee else None,
            name=employee.name if employee else None,
            is_accepted=None if attendee.is_accepted is None else bool(attendee.is_accepted),
            accepted_reason_rejected=attendee.accepted_reason_rejected,
            is_passing=None if attendee.is_passing is None else bool(attendee.is_passing),
            passing_reason_rejected=attendee.passing_reason_rejected,
        ))
    response.certificates = [
        CertificateOut(
            attendee_asn_id=c.asn_id,
            cert_type=c.cert_type,
            document_number=c.document_number,
            document_date=c.document_date,
            signer_id=c.signer_id,
            score=c.score,
        )
        for c in activity.certificates
    ]
    response.documents = [
        document_to_response(d) for d in workflow.documents_of(db, workflow.CASE_ACTIVITY, activity.id)
    ]
    return response


def _status_change(activity: Activity) -> StatusChangeResponse:
    return StatusChangeResponse(id=activity.id, status=activity.status, status_ts=activity.status_ts)


@router.post("/upload-url", response_model=UploadUrlResponse)
def support_upload_url(
    req: UploadUrlRequest,
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
):
    return workflow.upload_url(
        storage, activity_service.SUPPORT_SUBDIR, req.content_type, settings.sign_url_expire_seconds,
    )


@router.post("", response_model=ActivityResponse, status_code=201)
def submit_activity(
    req: ActivityCreate,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
    deadline: Deadline = Depends(get_deadline),
):
    activity = activity_service.submit(db, storage, user, req, deadline=deadline)
    return _activity_to_response(db, activity, detail=True)


@router.get("", response_model=ActivityListResponse)
def search_activities(
    admission_date: str | None = None,
    status: int | None = None,
    activity_type: int | None = None,
    agency_id: str | None = None,
    page: int = Query(1),
    per_page: int = Query(20),
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
):
    activities, total = activity_service.search(
        db, user, admission_date=admission_date, status=status, activity_type=activity_type,
        agency_id=agency_id, page=page, per_page=per_page,
    )
    return ActivityListResponse(
        activities=[_activity_to_response(db, a) for a in activities],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/statistics", response_model=list[StatisticStatus])
def activity_statistics(db: Session = Depends(get_db), user: Employee = Depends(get_current_user)):
    return activity_service.statistics(db, user)


@router.get("/{activity_id}", response_model=ActivityResponse)
def get_activity(activity_id: str, db: Session = Depends(get_db), user: Employee = Depends(get_current_user)):
    activity = activity_service.get_detail(db, activity_id, user)
    return _activity_to_response(db, activity, detail=True)


@router.post("/{activity_id}/accept", response_model=StatusChangeResponse)
def accept_activity(
    activity_id: str,
    req: ActivityVerification,
    db: Session = Depends(get_db),
    user: Employee = Depends(require_role(ROLE_VERIFIER)),
):
    return _status_change(activity_service.accept(db, activity_id, user, req))


@router.post("/{activity_id}/reject", response_model=StatusChangeResponse)
def reject_activity(
    activity_id: str,
    req: RejectRequest,
    db: Session = Depends(get_db),
    user: Employee = Depends(require_role(ROLE_VERIFIER)),
):
    return _status_change(activity_service.reject(db, activity_id, user, req.reason))


@router.post("/{activity_id}/cert-request", response_model=StatusChangeResponse)
def request_certificates(
    activity_id: str,
    req: ActivityCertRequest,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
):
    return _status_change(activity_service.request_certificates(db, activity_id, user, req))


@router.post("/{activity_id}/certificates/upload-url", response_model=UploadUrlResponse)
def certificate_upload_url(
    activity_id: str,
    req: CertificateUploadRequest,
    db: Session = Depends(get_db),
    user: Employee = Depends(require_role(ROLE_VERIFIER)),
    storage: ObjectStorage = Depends(get_storage),
):
    return activity_service.certificate_upload_url(
        db, storage, activity_id, user, req, settings.sign_url_expire_seconds,
    )


@router.post("/{activity_id}/certificates", response_model=StatusChangeResponse)
def submit_certificates(
    activity_id: str,
    req: CertificatesSubmit,
    db: Session = Depends(get_db),
    user: Employee = Depends(require_role(ROLE_VERIFIER)),
    storage: ObjectStorage = Depends(get_storage),
    deadline: Deadline = Depends(get_deadline),
):
    activity = activity_service.submit_certificates(db, storage, activity_id, user, req, deadline=deadline)
    return _status_change(activity)


@router.get("/{activity_id}/certificates/{asn_id}")
def download_certificate(
    activity_id: str,
    asn_id: str,
    force_regenerate: bool = False,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
    generator: DocumentGenerator = Depends(get_generator),
    deadline: Deadline = Depends(get_deadline),
):
    activity_service.get_detail(db, activity_id, user)
    key = activity_service.generate_certificate(
        db, storage, generator, activity_id, asn_id, force_regenerate=force_regenerate, deadline=deadline,
    )
    return RedirectResponse(workflow.download_url(storage, key), status_code=302)


@router.get("/{activity_id}/pak/{asn_id}")
def download_pak(
    activity_id: str,
    asn_id: str,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
):
    return RedirectResponse(activity_service.pak_url(db, storage, activity_id, asn_id, user), status_code=302)


@router.get("/{activity_id}/support-documents/{filename}")
def download_support_document(
    activity_id: str,
    filename: str,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
):
    url = activity_service.support_document_url(db, storage, activity_id, filename, user)
    return RedirectResponse(url, status_code=302)


@router.post("/{activity_id}/recommendation-letter/upload-url", response_model=UploadUrlResponse)
def recommendation_letter_upload_url(
    activity_id: str,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
):
    return activity_service.recommendation_letter_upload_url(
        db, storage, activity_id, user, settings.sign_url_expire_seconds,
    )


@router.post("/{activity_id}/recommendation-letter", response_model=ActivityResponse)
def submit_recommendation_letter(
    activity_id: str,
    req: RecommendationLetterSubmit,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
):
    activity = activity_service.submit_recommendation_letter(db, storage, activity_id, user, req)
    return _activity_to_response(db, activity, detail=True)


@router.get("/{activity_id}/recommendation-letter")
def download_recommendation_letter(
    activity_id: str,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
):
    url = activity_service.recommendation_letter_url(db, storage, activity_id, user)
    return RedirectResponse(url, status_code=302)
