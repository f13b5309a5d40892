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
from jfcase.models import Employee, Requirement
from jfcase.models.employee import ROLE_SUPERVISOR, ROLE_VERIFIER
from jfcase.schemas.common import (
    StatisticStatus,
    StatusChangeResponse,
    UploadUrlRequest,
    UploadUrlResponse,
    document_to_response,
)
from jfcase.schemas.requirement import (
    RecommendationLetterBulkSubmit,
    RecommendationLetterResponse,
    RecommendationLetterSign,
    RequirementCountOut,
    RequirementCreate,
    RequirementListResponse,
    RequirementResponse,
    RequirementRevision,
    RequirementVerification,
)
from jfcase.services import requirement_service, workflow
from jfcase.services.generator import DocumentGenerator
from jfcase.services.object_storage import ObjectStorage, StorageRegistry
from jfcase.utils.deadline import Deadline

router = APIRouter(prefix="/requirements", tags=["requirements"])

UPLOAD_SUBDIRS = {
    "estimation": requirement_service.ESTIMATION_SUBDIR,
    "cover-letter": requirement_service.COVER_LETTER_SUBDIR,
}


def get_storage(registry: StorageRegistry = Depends(get_storage_registry)) -> ObjectStorage:
    return registry.get(workflow.CASE_REQUIREMENT)


def _requirement_to_response(db: Session, requirement: Requirement, detail: bool = False) -> RequirementResponse:
    response = RequirementResponse(
        id=requirement.id,
        agency_id=requirement.agency_id,
        functional_position_id=requirement.functional_position_id,
        functional_position=requirement.functional_position,
        fiscal_year=requirement.fiscal_year,
        admission_number=requirement.admission_number,
        admission_date=requirement.admission_date,
        status=requirement.status,
        status_ts=requirement.status_ts,
        status_by=requirement.status_by,
        note=requirement.note,
        created_at=requirement.created_at,
        counts=[
            RequirementCountOut(
                organization_unit_id=c.organization_unit_id,
                organization_unit=c.organization_unit,
                count=c.count,
                recommendation=c.recommendation,
                bezetting=c.bezetting,
            )
            for c in requirement.counts
        ],
    )
    if detail:
        response.documents = [
            document_to_response(d) for d in workflow.documents_of(db, workflow.CASE_REQUIREMENT, requirement.id)
        ]
    return response


def _status_change(requirement: Requirement) -> StatusChangeResponse:
    return StatusChangeResponse(id=requirement.id, status=requirement.status, status_ts=requirement.status_ts)


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


@router.post("", response_model=RequirementResponse, status_code=201)
def submit_requirement(
    req: RequirementCreate,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
    deadline: Deadline = Depends(get_deadline),
):
    requirement = requirement_service.submit(db, storage, user, req, deadline=deadline)
    return _requirement_to_response(db, requirement, detail=True)


@router.get("", response_model=RequirementListResponse)
def search_requirements(
    admission_date: str | None = None,
    status: int | None = None,
    agency_id: str | None = None,
    page: int = Query(1),
    per_page: int = Query(20),
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
):
    requirements, total = requirement_service.search(
        db, user, admission_date=admission_date, status=status, agency_id=agency_id, page=page, per_page=per_page,
    )
    return RequirementListResponse(
        requirements=[_requirement_to_response(db, r) for r in requirements],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/statistics", response_model=list[StatisticStatus])
def requirement_statistics(db: Session = Depends(get_db), user: Employee = Depends(get_current_user)):
    return requirement_service.statistics(db, user)


@router.post("/recommendation-letters", response_model=RecommendationLetterResponse, status_code=201)
def submit_recommendation_letter(
    req: RecommendationLetterBulkSubmit,
    db: Session = Depends(get_db),
    user: Employee = Depends(require_role(ROLE_VERIFIER)),
    storage: ObjectStorage = Depends(get_storage),
    generator: DocumentGenerator = Depends(get_generator),
    deadline: Deadline = Depends(get_deadline),
):
    filename = requirement_service.bulk_submit_recommendation_letter(
        db, storage, generator, user, req, deadline=deadline,
    )
    return RecommendationLetterResponse(filename=filename, requirement_ids=list(dict.fromkeys(req.requirement_ids)))


@router.post("/recommendation-letters/sign", response_model=RecommendationLetterResponse)
def sign_recommendation_letter(
    req: RecommendationLetterSign,
    db: Session = Depends(get_db),
    user: Employee = Depends(require_role(ROLE_SUPERVISOR)),
):
    ids = requirement_service.sign_recommendation_letter(db, user, req.filename)
    return RecommendationLetterResponse(filename=req.filename, requirement_ids=ids)


@router.get("/{requirement_id}", response_model=RequirementResponse)
def get_requirement(requirement_id: str, db: Session = Depends(get_db), user: Employee = Depends(get_current_user)):
    requirement = requirement_service.get_detail(db, requirement_id, user)
    return _requirement_to_response(db, requirement, detail=True)


@router.put("/{requirement_id}", response_model=RequirementResponse)
def edit_requirement(
    requirement_id: str,
    req: RequirementCreate,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
    deadline: Deadline = Depends(get_deadline),
):
    requirement = requirement_service.edit(db, storage, requirement_id, user, req, deadline=deadline)
    return _requirement_to_response(db, requirement, detail=True)


@router.post("/{requirement_id}/accept", response_model=StatusChangeResponse)
def accept_requirement(
    requirement_id: str,
    req: RequirementVerification,
    db: Session = Depends(get_db),
    user: Employee = Depends(require_role(ROLE_VERIFIER)),
):
    return _status_change(requirement_service.accept(db, requirement_id, user, req))


@router.post("/{requirement_id}/revision", response_model=StatusChangeResponse)
def revise_requirement(
    requirement_id: str,
    req: RequirementRevision,
    db: Session = Depends(get_db),
    user: Employee = Depends(require_role(ROLE_VERIFIER)),
):
    return _status_change(requirement_service.revise(db, requirement_id, user, req))


@router.get("/{requirement_id}/recommendation-letter")
def download_recommendation_letter(
    requirement_id: str,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
):
    url = requirement_service.recommendation_letter_url(db, storage, requirement_id, user)
    return RedirectResponse(url, status_code=302)


@router.get("/{requirement_id}/cover-letter")
def download_cover_letter(
    requirement_id: str,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
):
    return RedirectResponse(requirement_service.cover_letter_url(db, storage, requirement_id, user), status_code=302)


@router.get("/{requirement_id}/estimation-documents/{filename}")
def download_estimation_document(
    requirement_id: str,
    filename: str,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
):
    url = requirement_service.estimation_document_url(db, storage, requirement_id, filename, user)
    return RedirectResponse(url, status_code=302)
