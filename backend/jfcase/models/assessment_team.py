from enum import IntEnum

from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from jfcase.database import Base


class AssessmentTeamStatus(IntEnum):
    CREATED = 1
    VERIFIED = 2


class AssessorRole(IntEnum):
    CHAIR = 1
    MEMBER = 2
    SECRETARY = 3


class AssessorStatus(IntEnum):
    ACCEPTED = 1
    REJECTED = 2


class AssessmentTeam(Base):
    __tablename__ = "assessment_teams"

    id = Column(Text, primary_key=True)
    agency_id = Column(Text, nullable=False)
    submitter_asn_id = Column(Text, nullable=False)
    functional_position_id = Column(Text, nullable=False)
    admission_number = Column(Text, nullable=False)
    admission_date = Column(Text, nullable=False)
    status = Column(Integer, nullable=False)
    status_ts = Column(Text, nullable=False)
    status_by = Column(Text)
    created_at = Column(Text, nullable=False)

    members = relationship("AssessmentTeamMember", back_populates="team", cascade="all, delete-orphan")


class AssessmentTeamMember(Base):
    __tablename__ = "assessment_team_members"

    team_id = Column(Text, ForeignKey("assessment_teams.id", ondelete="CASCADE"), primary_key=True)
    asn_id = Column(Text, primary_key=True)
    role = Column(Integer, nullable=False)
    status = Column(Integer)
    reason_rejected = Column(Text)

    team = relationship("AssessmentTeam", back_populates="members")
