from pydantic import BaseModel

from jfcase.schemas.common import DocumentIn, DocumentOut


class ActivityCreate(BaseModel):
    name: str = ""
    activity_type: int = 0
    description: str | None = None
    position_grade: str = ""
    training_year: int = 0
    duration: int = 0
    organizer_agency: str | None = None
    admission_number: str = ""
    start_date: str = ""
    end_date: str = ""
    attendees: list[str] = []
    support_documents: list[DocumentIn] = []


class AttendeeAcceptance(BaseModel):
    asn_id: str
    is_accepted: bool
    reason_rejected: str | None = None


class ActivityVerification(BaseModel):
    attendees: list[AttendeeAcceptance] = []


class AttendeePassing(BaseModel):
    asn_id: str
    is_passing: bool
    reason_rejected: str | None = None


class ActivityCertRequest(BaseModel):
    attendees: list[AttendeePassing] = []


class CertificateUploadRequest(BaseModel):
    attendee_asn_id: str
    cert_type: int = 1


class CertificateEntry(BaseModel):
    attendee_asn_id: str
    cert_type: int = 1
    is_passing: bool = True
    reason_rejected: str | None = None
    document_number: str = ""
    document_date: str = ""
    signer_asn_id: str | None = None
    score: float | None = None


class CertificatesSubmit(BaseModel):
    certificates: list[CertificateEntry] = []


class RecommendationLetterSubmit(BaseModel):
    document_name: str | None = None
    document_number: str = ""
    document_date: str = ""
    signer_asn_id: str | None = None


class AttendeeOut(BaseModel):
    asn_id: str
    nip: str | None
    name: str | None
    is_accepted: bool | None
    accepted_reason_rejected: str | None
    is_passing: bool | None
    passing_reason_rejected: str | None


class CertificateOut(BaseModel):
    attendee_asn_id: str
    cert_type: int
    document_number: str
    document_date: str
    signer_id: str | None
    score: float | None


class ActivityResponse(BaseModel):
    id: str
    agency_id: str
    name: str
    activity_type: int
    description: str | None
    position_grade: str
    training_year: int
    duration: int
    organizer_agency: str | None
    admission_number: str
    admission_date: str
    start_date: str
    end_date: str
    status: int
    status_ts: str
    status_by: str | None
    created_at: str
    attendees: list[AttendeeOut] = []
    certificates: list[CertificateOut] = []
    documents: list[DocumentOut] = []


class ActivityListResponse(BaseModel):
    activities: list[ActivityResponse]
    total: int
    page: int
    per_page: int
