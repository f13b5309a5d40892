from pydantic import BaseModel

from jfcase.schemas.common import DocumentIn, DocumentOut


class AssessorIn(BaseModel):
    asn_id: str
    role: int


class AssessmentTeamCreate(BaseModel):
    functional_position_id: str = ""
    admission_number: str = ""
    assessors: list[AssessorIn] = []
    support_documents: list[DocumentIn] = []


class AssessorVerification(BaseModel):
    asn_id: str
    status: int
    reason_rejected: str | None = None


class RecommendationLetterIn(BaseModel):
    document_name: str | None = None
    document_number: str | None = None
    document_date: str | None = None


class AssessmentTeamVerification(BaseModel):
    assessors: list[AssessorVerification] = []
    recommendation_letter: RecommendationLetterIn = RecommendationLetterIn()


class AssessorOut(BaseModel):
    asn_id: str
    role: int
    status: int | None
    reason_rejected: str | None


class AssessmentTeamResponse(BaseModel):
    id: str
    agency_id: str
    submitter_asn_id: str
    functional_position_id: str
    admission_number: str
    admission_date: str
    status: int
    status_ts: str
    status_by: str | None
    created_at: str
    assessors: list[AssessorOut] = []
    documents: list[DocumentOut] = []


class AssessmentTeamListResponse(BaseModel):
    assessment_teams: list[AssessmentTeamResponse]
    total: int
    page: int
    per_page: int
