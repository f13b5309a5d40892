from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from jfcase.config import settings
from jfcase.database import get_db
from jfcase.dependencies import get_current_user, get_deadline, get_storage_registry, require_role
from jfcase.models import AssessmentTeam, Employee
from jfcase.models.employee import ROLE_VERIFIER
from jfcase.schemas.assessment_team import (
    AssessmentTeamCreate,
    AssessmentTeamListResponse,
    AssessmentTeamResponse,
    AssessmentTeamVerification,
    AssessorOut,
)
from jfcase.schemas.common import UploadUrlRequest, UploadUrlResponse, document_to_response
from jfcase.services import assessment_team_service, workflow
from jfcase.services.object_storage import ObjectStorage, StorageRegistry
from jfcase.utils.deadline import Deadline

router = APIRouter(prefix="/assessment-teams", tags=["assessment-teams"])


def get_storage(registry: StorageRegistry = Depends(get_storage_registry)) -> ObjectStorage:
    return registry.get(workflow.CASE_ASSESSMENT_TEAM)


def _team_to_response(db: Session, team: AssessmentTeam, detail: bool = False) -> AssessmentTeamResponse:
    response = AssessmentTeamResponse(
        id=team.id,
        agency_id=team.agency_id,
        submitter_asn_id=team.submitter_asn_id,
        functional_position_id=team.functional_position_id,
        admission_number=team.admission_number,
        admission_date=team.admission_date,
        status=team.status,
        status_ts=team.status_ts,
        status_by=team.status_by,
        created_at=team.created_at,
        assessors=[
            AssessorOut(asn_id=m.asn_id, role=m.role, status=m.status, reason_rejected=m.reason_rejected)
            for m in team.members
        ],
    )
    if detail:
        response.documents = [
            document_to_response(d) for d in workflow.documents_of(db, workflow.CASE_ASSESSMENT_TEAM, team.id)
        ]
    return response


@router.post("/upload-url", response_model=UploadUrlResponse)
def support_upload_url(
    req: UploadUrlRequest,
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
):
    return workflow.upload_url(
        storage, assessment_team_service.SUPPORT_SUBDIR, req.content_type, settings.sign_url_expire_seconds,
    )


@router.post("", response_model=AssessmentTeamResponse, status_code=201)
def submit_team(
    req: AssessmentTeamCreate,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
    deadline: Deadline = Depends(get_deadline),
):
    team = assessment_team_service.submit(db, storage, user, req, deadline=deadline)
    return _team_to_response(db, team, detail=True)


@router.get("", response_model=AssessmentTeamListResponse)
def search_teams(
    admission_date: str | None = None,
    status: int | None = None,
    agency_id: str | None = None,
    page: int = Query(1),
    per_page: int = Query(20),
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
):
    teams, total = assessment_team_service.search(
        db, user, admission_date=admission_date, status=status, agency_id=agency_id, page=page, per_page=per_page,
    )
    return AssessmentTeamListResponse(
        assessment_teams=[_team_to_response(db, t) for t in teams],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/{team_id}", response_model=AssessmentTeamResponse)
def get_team(team_id: str, db: Session = Depends(get_db), user: Employee = Depends(get_current_user)):
    return _team_to_response(db, assessment_team_service.get_detail(db, team_id, user), detail=True)


@router.post("/{team_id}/recommendation-letter/upload-url", response_model=UploadUrlResponse)
def recommendation_letter_upload_url(
    team_id: str,
    db: Session = Depends(get_db),
    user: Employee = Depends(require_role(ROLE_VERIFIER)),
    storage: ObjectStorage = Depends(get_storage),
):
    return assessment_team_service.recommendation_letter_upload_url(
        db, storage, team_id, settings.sign_url_expire_seconds,
    )


@router.post("/{team_id}/verify", response_model=AssessmentTeamResponse)
def verify_team(
    team_id: str,
    req: AssessmentTeamVerification,
    db: Session = Depends(get_db),
    user: Employee = Depends(require_role(ROLE_VERIFIER)),
    storage: ObjectStorage = Depends(get_storage),
):
    team = assessment_team_service.verify(db, storage, team_id, user, req)
    return _team_to_response(db, team, detail=True)


@router.get("/{team_id}/support-documents/{filename}")
def download_support_document(
    team_id: str,
    filename: str,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
):
    url = assessment_team_service.support_document_url(db, storage, team_id, filename, user)
    return RedirectResponse(url, status_code=302)


@router.get("/{team_id}/recommendation-letter")
def download_recommendation_letter(
    team_id: str,
    db: Session = Depends(get_db),
    user: Employee = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
):
    url = assessment_team_service.recommendation_letter_url(db, storage, team_id, user)
    return RedirectResponse(url, status_code=302)
