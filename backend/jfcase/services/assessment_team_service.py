"""Assessment team admissions: an agency proposes assessors, a verifier accepts or rejects each of them."""
import posixpath

from sqlalchemy.orm import Session

from jfcase.errors import AppError, ErrorCode
from jfcase.models import AssessmentTeam, AssessmentTeamMember, Employee
from jfcase.models.assessment_team import AssessmentTeamStatus, AssessorRole, AssessorStatus
from jfcase.schemas.assessment_team import AssessmentTeamCreate, AssessmentTeamVerification
from jfcase.services import workflow
from jfcase.services.object_storage import ObjectStorage
from jfcase.utils.deadline import Deadline

SUPPORT_SUBDIR = "support"
RECOMMENDATION_SUBDIR = "recommendation"

KIND_SUPPORT = "support"
KIND_RECOMMENDATION_LETTER = "recommendation_letter"

PDF = "application/pdf"


def recommendation_letter_key(team_id: str) -> str:
    return posixpath.join(RECOMMENDATION_SUBDIR, f"{team_id}.pdf")


def check_submit(req: AssessmentTeamCreate):
    if len(req.assessors) < 3:
        raise AppError(ErrorCode.ASSESSMENT_TEAM_ASSESSOR_COUNT_INVALID)
    if len(req.assessors) % 2 == 0:
        raise AppError(ErrorCode.ASSESSMENT_TEAM_ASSESSOR_COUNT_EVEN)
    if not req.functional_position_id:
        raise AppError(ErrorCode.ASSESSMENT_TEAM_POSITION_INVALID)
    if not req.admission_number:
        raise AppError(ErrorCode.ASSESSMENT_TEAM_ADMISSION_NUMBER_INVALID)
    roles = {int(r) for r in AssessorRole}
    for assessor in req.assessors:
        if assessor.role not in roles:
            raise AppError(ErrorCode.ASSESSMENT_TEAM_ASSESSOR_ROLE_INVALID, f"role {assessor.role} of {assessor.asn_id}")


def submit(db: Session, storage: ObjectStorage, user: Employee, req: AssessmentTeamCreate,
           deadline: Deadline | None = None) -> AssessmentTeam:
    check_submit(req)

    ts = workflow.now()
    team = AssessmentTeam(
        id=workflow.new_id(),
        agency_id=user.agency_id,
        submitter_asn_id=user.asn_id,
        functional_position_id=req.functional_position_id,
        admission_number=req.admission_number,
        admission_date=workflow.today(),
        status=int(AssessmentTeamStatus.CREATED),
        status_ts=ts,
        status_by=user.asn_id,
        created_at=ts,
    )
    db.add(team)
    for assessor in req.assessors:
        team.members.append(AssessmentTeamMember(asn_id=assessor.asn_id, role=assessor.role))
    workflow.set_status(db, workflow.CASE_ASSESSMENT_TEAM, team, AssessmentTeamStatus.CREATED, user.asn_id)

    workflow.promote_documents(
        db, storage, workflow.CASE_ASSESSMENT_TEAM, team.id, KIND_SUPPORT, SUPPORT_SUBDIR,
        req.support_documents, deadline=deadline,
    )
    workflow.commit(db, deadline)
    storage.delete_temp(workflow.document_keys(SUPPORT_SUBDIR, req.support_documents))
    return team


def get_detail(db: Session, team_id: str, user: Employee) -> AssessmentTeam:
    return workflow.get_case(db, AssessmentTeam, team_id, workflow.agency_scope(user))


def search(db: Session, user: Employee, admission_date: str | None = None, status: int | None = None,
           agency_id: str | None = None, page: int = 1, per_page: int = 20) -> tuple[list[AssessmentTeam], int]:
    admission_date = workflow.parse_date(admission_date, ErrorCode.ASSESSMENT_TEAM_FILTER_DATE_INVALID)
    status = workflow.check_enum(status, AssessmentTeamStatus, ErrorCode.ASSESSMENT_TEAM_FILTER_STATUS_INVALID)

    query = db.query(AssessmentTeam)
    scope = workflow.agency_scope(user) or agency_id
    if scope:
        query = query.filter(AssessmentTeam.agency_id == scope)
    if admission_date:
        query = query.filter(AssessmentTeam.admission_date == admission_date)
    if status:
        query = query.filter(AssessmentTeam.status == status)
    return workflow.paginate(query.order_by(AssessmentTeam.created_at.desc()), page, per_page)


def recommendation_letter_upload_url(db: Session, storage: ObjectStorage, team_id: str,
                                     expire_seconds: int) -> dict:
    team = workflow.get_case(db, AssessmentTeam, team_id)
    if team.status != AssessmentTeamStatus.CREATED:
        raise AppError(ErrorCode.ASSESSMENT_TEAM_NOT_CREATED)
    return workflow.fixed_upload_url(storage, recommendation_letter_key(team.id), PDF, expire_seconds)


def verify(db: Session, storage: ObjectStorage, team_id: str, user: Employee,
           req: AssessmentTeamVerification) -> AssessmentTeam:
    team = workflow.lock_case(db, AssessmentTeam, team_id)
    if team.status == AssessmentTeamStatus.VERIFIED:
        raise AppError(ErrorCode.ASSESSMENT_TEAM_ALREADY_VERIFIED)

    statuses = {int(s) for s in AssessorStatus}
    members = {m.asn_id: m for m in team.members}
    for decision in req.assessors:
        if decision.status not in statuses:
            raise AppError(ErrorCode.ASSESSMENT_TEAM_ASSESSOR_STATUS_INVALID, f"status {decision.status}")
        member = members.get(decision.asn_id)
        if member is None:
            raise AppError(ErrorCode.ENTRY_NOT_FOUND, f"assessor {decision.asn_id} is not part of team {team.id}")
        member.status = decision.status
        member.reason_rejected = decision.reason_rejected if decision.status == AssessorStatus.REJECTED else None

    workflow.set_status(db, workflow.CASE_ASSESSMENT_TEAM, team, AssessmentTeamStatus.VERIFIED, user.asn_id)
    key = recommendation_letter_key(team.id)
    workflow.promote_file(storage, key, key)
    letter = req.recommendation_letter
    workflow.record_document(
        db, workflow.CASE_ASSESSMENT_TEAM, team.id, KIND_RECOMMENDATION_LETTER, posixpath.basename(key),
        document_name=letter.document_name, document_number=letter.document_number,
        document_date=workflow.parse_date(letter.document_date, ErrorCode.ASSESSMENT_TEAM_FILTER_DATE_INVALID),
    )
    workflow.commit(db)
    storage.delete_temp([key])
    return team


def support_document_url(db: Session, storage: ObjectStorage, team_id: str, filename: str, user: Employee) -> str:
    team = get_detail(db, team_id, user)
    names = {d.filename for d in workflow.documents_of(db, workflow.CASE_ASSESSMENT_TEAM, team.id, KIND_SUPPORT)}
    if filename not in names:
        raise AppError(ErrorCode.ENTRY_NOT_FOUND, f"support document {filename}")
    return workflow.download_url(storage, posixpath.join(SUPPORT_SUBDIR, filename))


def recommendation_letter_url(db: Session, storage: ObjectStorage, team_id: str, user: Employee) -> str:
    team = get_detail(db, team_id, user)
    if team.status != AssessmentTeamStatus.VERIFIED:
        raise AppError(ErrorCode.ENTRY_NOT_FOUND, f"assessment team {team.id} has no recommendation letter")
    return workflow.download_url(storage, recommendation_letter_key(team.id))
