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
from jfcase.models import Employee, Promotion
from jfcase.models.employee import ROLE_VERIFIER
from jfcase.schemas.common import (
    RejectRequest,
    StatisticStatus,
    StatusChangeResponse,
    UploadUrlRequest,
    UploadUrlResponse,
    document_to_response,
)
from jfcase.schemas.promotion import (
    PromotionAcceptance,
    PromotionCreate,
    PromotionListResponse,
    PromotionResponse,
)
from jfcase.services import promotion_service, workflow
from jfcase.services.generator import DocumentGenerator
from jfcase.services.object_storage import ObjectStorage, StorageRegistry
from jfcase.utils.deadline import Deadline

router = APIRouter(prefix="/promotions", tags=["promotions"])

UPLOAD_SUBDIRS = {
    "pak-letter": promotion_service.PAK_LETTER_SUBDIR,
    "recommendation-letter": promotion_service.RECOMMENDATION_LETTER_SUBDIR,
    "test-certificate": promotion_service.TEST_CERTIFICATE_SUBDIR,
}


def get_storage(registry: StorageRegistry = Depends(get_storage_registry)) -> ObjectStorage:
    return registry.get(workflow.CASE_PROMOTION)


def _promotion_to_response(db: Session, promotion: Promotion, detail: bool = False) -> PromotionResponse:
    response = PromotionResponse(
        id=promotion.id,
        agency_id=promotion.agency_id,
        asn_id=promotion.asn_id,
        admission_number=promotion.admission_number,
        admission_date=promotion.admission_date,
        promotion_type=promotion.promotion_type,
        promotion_position_id=promotion.promotion_position_id,
        promotion_position=promotion.promotion_position,
        test_status=promotion.test_status,
        test_score=promotion.test_score,
        rejection_reason=promotion.rejection_reason,
        status=promotion.status,
        status_ts=promotion.status_ts,
        status_by=promotion.status_by,
        created_at=promotion.created_at,
    )
    if detail:
        response.documents = [
            document_to_response(d) for d in workflow.documents_of(db, workflow.CASE_PROMOTION, promotion.id)
        ]
    return response


def _status_change(promotion: Promotion) -> StatusChangeResponse:
    return StatusChangeResponse(id=promotion.id, status=promotion.status, status_ts=promotion.status_ts)


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


@router.post("", response_model=PromotionResponse, status_code=201)
def submit_promotion(
    req: PromotionCreate,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
    deadline: Deadline = Depends(get_deadline),
):
    promotion = promotion_service.submit(db, storage, user, req, deadline=deadline)
    return _promotion_to_response(db, promotion, detail=True)


@router.get("", response_model=PromotionListResponse)
def search_promotions(
    admission_date: str | None = None,
    status: int | None = None,
    promotion_type: int | None = None,
    agency_id: str | None = None,
    page: int = Query(1),
    per_page: int = Query(20),
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
):
    promotions, total = promotion_service.search(
        db, user, admission_date=admission_date, status=status, promotion_type=promotion_type,
        agency_id=agency_id, page=page, per_page=per_page,
    )
    return PromotionListResponse(
        promotions=[_promotion_to_response(db, p) for p in promotions],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/statistics", response_model=list[StatisticStatus])
def promotion_statistics(db: Session = Depends(get_db), user: Employee = Depends(get_current_user)):
    return promotion_service.statistics(db, user)


@router.get("/{promotion_id}", response_model=PromotionResponse)
def get_promotion(promotion_id: str, db: Session = Depends(get_db), user: Employee = Depends(get_current_user)):
    promotion = promotion_service.get_detail(db, promotion_id, user)
    return _promotion_to_response(db, promotion, detail=True)


@router.post("/{promotion_id}/accept", response_model=StatusChangeResponse)
def accept_promotion(
    promotion_id: str,
    req: PromotionAcceptance,
    db: Session = Depends(get_db),
    user: Employee = Depends(require_role(ROLE_VERIFIER)),
):
    return _status_change(promotion_service.accept(db, promotion_id, user, req))


@router.post("/{promotion_id}/reject", response_model=StatusChangeResponse)
def reject_promotion(
    promotion_id: str,
    req: RejectRequest,
    db: Session = Depends(get_db),
    user: Employee = Depends(require_role(ROLE_VERIFIER)),
):
    return _status_change(promotion_service.reject(db, promotion_id, user, req.reason))


@router.get("/{promotion_id}/promotion-letter")
def download_promotion_letter(
    promotion_id: str,
    force_regenerate: bool = False,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
    generator: DocumentGenerator = Depends(get_generator),
    deadline: Deadline = Depends(get_deadline),
):
    key = promotion_service.generate_promotion_letter(
        db, storage, generator, promotion_id, user, force_regenerate=force_regenerate, deadline=deadline,
    )
    return RedirectResponse(workflow.download_url(storage, key), status_code=302)


@router.get("/{promotion_id}/documents/{kind}")
def download_document(
    promotion_id: str,
    kind: str,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
):
    return RedirectResponse(promotion_service.document_url(db, storage, promotion_id, kind, user), status_code=302)
