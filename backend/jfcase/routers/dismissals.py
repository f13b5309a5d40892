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
from jfcase.models import Dismissal, Employee
from jfcase.models.employee import ROLE_VERIFIER
from jfcase.schemas.common import (
    StatisticStatus,
    StatusChangeResponse,
    UploadUrlRequest,
    UploadUrlResponse,
    document_to_response,
)
from jfcase.schemas.dismissal import (
    DismissalAcceptance,
    DismissalCreate,
    DismissalDenial,
    DismissalListResponse,
    DismissalResponse,
)
from jfcase.services import dismissal_service, workflow
from jfcase.services.generator import DocumentGenerator
from jfcase.services.object_storage import ObjectStorage, StorageRegistry
from jfcase.utils.deadline import Deadline

router = APIRouter(prefix="/dismissals", tags=["dismissals"])

UPLOAD_SUBDIRS = {
    "support": dismissal_service.SUPPORT_SUBDIR,
    "deny-support": dismissal_service.DENY_SUPPORT_SUBDIR,
}


def get_storage(registry: StorageRegistry = Depends(get_storage_registry)) -> ObjectStorage:
    return registry.get(workflow.CASE_DISMISSAL)


def _dismissal_to_response(db: Session, dismissal: Dismissal, detail: bool = False) -> DismissalResponse:
    response = DismissalResponse(
        id=dismissal.id,
        agency_id=dismissal.agency_id,
        asn_id=dismissal.asn_id,
        admission_number=dismissal.admission_number,
        admission_date=dismissal.admission_date,
        reason=dismissal.reason,
        reason_detail=dismissal.reason_detail,
        decree_number=dismissal.decree_number,
        decree_date=dismissal.decree_date,
        dismissal_date=dismissal.dismissal_date,
        deny_reason=dismissal.deny_reason,
        status=dismissal.status,
        status_ts=dismissal.status_ts,
        status_by=dismissal.status_by,
        created_at=dismissal.created_at,
    )
    if detail:
        response.documents = [
            document_to_response(d) for d in workflow.documents_of(db, workflow.CASE_DISMISSAL, dismissal.id)
        ]
    return response


def _status_change(dismissal: Dismissal) -> StatusChangeResponse:
    return StatusChangeResponse(id=dismissal.id, status=dismissal.status, status_ts=dismissal.status_ts)


@router.post("/upload-url/{document}", response_model=UploadUrlResponse)
def document_upload_url(
    document: str,
    req: UploadUrlRequest,
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
):
    return workflow.document_upload_url(
        storage, UPLOAD_SUBDIRS, document, req.content_type, settings.sign_url_expire_seconds,
    )


@router.post("", response_model=DismissalResponse, status_code=201)
def submit_dismissal(
    req: DismissalCreate,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
    deadline: Deadline = Depends(get_deadline),
):
    dismissal = dismissal_service.submit(db, storage, user, req, deadline=deadline)
    return _dismissal_to_response(db, dismissal, detail=True)


@router.get("", response_model=DismissalListResponse)
def search_dismissals(
    admission_date: str | None = None,
    status: int | None = None,
    agency_id: str | None = None,
    page: int = Query(1),
    per_page: int = Query(20),
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
):
    dismissals, total = dismissal_service.search(
        db, user, admission_date=admission_date, status=status, agency_id=agency_id, page=page, per_page=per_page,
    )
    return DismissalListResponse(
        dismissals=[_dismissal_to_response(db, d) for d in dismissals],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/statistics", response_model=list[StatisticStatus])
def dismissal_statistics(db: Session = Depends(get_db), user: Employee = Depends(get_current_user)):
    return dismissal_service.statistics(db, user)


@router.get("/{dismissal_id}", response_model=DismissalResponse)
def get_dismissal(dismissal_id: str, db: Session = Depends(get_db), user: Employee = Depends(get_current_user)):
    dismissal = dismissal_service.get_detail(db, dismissal_id, user)
    return _dismissal_to_response(db, dismissal, detail=True)


@router.post("/{dismissal_id}/accept", response_model=StatusChangeResponse)
def accept_dismissal(
    dismissal_id: str,
    req: DismissalAcceptance,
    db: Session = Depends(get_db),
    user: Employee = Depends(require_role(ROLE_VERIFIER)),
):
    return _status_change(dismissal_service.accept(db, dismissal_id, user, req))


@router.post("/{dismissal_id}/deny", response_model=StatusChangeResponse)
def deny_dismissal(
    dismissal_id: str,
    req: DismissalDenial,
    db: Session = Depends(get_db),
    user: Employee = Depends(require_role(ROLE_VERIFIER)),
    storage: ObjectStorage = Depends(get_storage),
    deadline: Deadline = Depends(get_deadline),
):
    return _status_change(dismissal_service.deny(db, storage, dismissal_id, user, req, deadline=deadline))


@router.get("/{dismissal_id}/acceptance-letter")
def download_acceptance_letter(
    dismissal_id: str,
    force_regenerate: bool = False,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
    generator: DocumentGenerator = Depends(get_generator),
    deadline: Deadline = Depends(get_deadline),
):
    key = dismissal_service.generate_acceptance_letter(
        db, storage, generator, dismissal_id, user, force_regenerate=force_regenerate, deadline=deadline,
    )
    return RedirectResponse(workflow.download_url(storage, key), status_code=302)


@router.get("/{dismissal_id}/support-documents/{filename}")
def download_support_document(
    dismissal_id: str,
    filename: str,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
):
    url = dismissal_service.support_document_url(db, storage, dismissal_id, filename, user)
    return RedirectResponse(url, status_code=302)
