from jfcase.models.employee import Employee
from jfcase.models.document import CaseDocument, StatusHistory
from jfcase.models.activity import Activity, ActivityAttendee, ActivityCertificate
from jfcase.models.requirement import Requirement, RequirementCount
from jfcase.models.dismissal import Dismissal
from jfcase.models.promotion import Promotion, PromotionCpns
from jfcase.models.assessment_team import AssessmentTeam, AssessmentTeamMember

__all__ = [
    "Employee",
    "CaseDocument",
    "StatusHistory",
    "Activity",
    "ActivityAttendee",
    "ActivityCertificate",
    "Requirement",
    "RequirementCount",
    "Dismissal",
    "Promotion",
    "PromotionCpns",
    "AssessmentTeam",
    "AssessmentTeamMember",
]
