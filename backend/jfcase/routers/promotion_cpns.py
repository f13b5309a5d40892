from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from jfcase.config import settings
from jfcase.database import get_db
from jfcase.dependencies import get_current_user, get_deadline, get_storage_registry, require_role
from jfcase.models import Employee, PromotionCpns
from jfcase.models.employee import ROLE_VERIFIER
from jfcase.schemas.common import (
    RejectRequest,
    StatisticStatus,
    StatusChangeResponse,
    UploadUrlRequest,
    UploadUrlResponse,
    document_to_response,
)
from jfcase.schemas.promotion import PromotionCpnsCreate, PromotionCpnsListResponse, PromotionCpnsResponse
from jfcase.services import promotion_cpns_service, workflow
from jfcase.services.object_storage import ObjectStorage, StorageRegistry
from jfcase.utils.deadline import Deadline

router = APIRouter(prefix="/promotion-cpns", tags=["promotion-cpns"])

UPLOAD_SUBDIRS = {
    "pak-letter": promotion_cpns_service.PAK_LETTER_SUBDIR,
    "promotion-letter": promotion_cpns_service.PROMOTION_LETTER_SUBDIR,
}


def get_storage(registry: StorageRegistry = Depends(get_storage_registry)) -> ObjectStorage:
    return registry.get(workflow.CASE_PROMOTION_CPNS)


def _admission_to_response(db: Session, admission: PromotionCpns, detail: bool = False) -> PromotionCpnsResponse:
    response = PromotionCpnsResponse(
        id=admission.id,
        agency_id=admission.agency_id,
        asn_id=admission.asn_id,
        admission_number=admission.admission_number,
        admission_date=admission.admission_date,
        promotion_position_id=admission.promotion_position_id,
        promotion_position=admission.promotion_position,
        first_credit_number=admission.first_credit_number,
        organization_unit_id=admission.organization_unit_id,
        organization_unit=admission.organization_unit,
        rejection_reason=admission.rejection_reason,
        status=admission.status,
        status_ts=admission.status_ts,
        status_by=admission.status_by,
        created_at=admission.created_at,
    )
    if detail:
        response.documents = [
            document_to_response(d)
            for d in workflow.documents_of(db, workflow.CASE_PROMOTION_CPNS, admission.id)
        ]
    return response


def _status_change(admission: PromotionCpns) -> StatusChangeResponse:
    return StatusChangeResponse(id=admission.id, status=admission.status, status_ts=admission.status_ts)


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


@router.post("", response_model=PromotionCpnsResponse, status_code=201)
def submit_admission(
    req: PromotionCpnsCreate,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
    deadline: Deadline = Depends(get_deadline),
):
    admission = promotion_cpns_service.submit(db, storage, user, req, deadline=deadline)
    return _admission_to_response(db, admission, detail=True)


@router.get("", response_model=PromotionCpnsListResponse)
def search_admissions(
    admission_date: str | None = None,
    status: int | None = None,
    agency_id: str | None = None,
    page: int = Query(1),
    per_page: int = Query(20),
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
):
    admissions, total = promotion_cpns_service.search(
        db, user, admission_date=admission_date, status=status, agency_id=agency_id, page=page, per_page=per_page,
    )
    return PromotionCpnsListResponse(
        promotions=[_admission_to_response(db, a) for a in admissions],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/statistics", response_model=list[StatisticStatus])
def admission_statistics(db: Session = Depends(get_db), user: Employee = Depends(get_current_user)):
    return promotion_cpns_service.statistics(db, user)


@router.get("/{admission_id}", response_model=PromotionCpnsResponse)
def get_admission(admission_id: str, db: Session = Depends(get_db), user: Employee = Depends(get_current_user)):
    admission = promotion_cpns_service.get_detail(db, admission_id, user)
    return _admission_to_response(db, admission, detail=True)


@router.post("/{admission_id}/accept", response_model=StatusChangeResponse)
def accept_admission(
    admission_id: str,
    db: Session = Depends(get_db),
    user: Employee = Depends(require_role(ROLE_VERIFIER)),
):
    return _status_change(promotion_cpns_service.accept(db, admission_id, user))


@router.post("/{admission_id}/reject", response_model=StatusChangeResponse)
def reject_admission(
    admission_id: str,
    req: RejectRequest,
    db: Session = Depends(get_db),
    user: Employee = Depends(require_role(ROLE_VERIFIER)),
):
    return _status_change(promotion_cpns_service.reject(db, admission_id, user, req.reason))


@router.get("/{admission_id}/documents/{kind}")
def download_document(
    admission_id: str,
    kind: str,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
):
    url = promotion_cpns_service.document_url(db, storage, admission_id, kind, user)
    return RedirectResponse(url, status_code=302)
