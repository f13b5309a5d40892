from enum import IntEnum

from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from jfcase.database import Base


class RequirementStatus(IntEnum):
    CREATED = 1
    REVISION = 2
    ACCEPTED = 3
    ACCEPTED_WITH_RECOMMENDATION = 4
    DENIED = 5


class Requirement(Base):
    __tablename__ = "requirements"

    id = Column(Text, primary_key=True)
    agency_id = Column(Text, nullable=False)
    functional_position_id = Column(Text, nullable=False)
    functional_position = Column(Text)
    fiscal_year = Column(Integer, nullable=False)
    admission_number = Column(Text, nullable=False)
    admission_date = Column(Text, nullable=False)
    status = Column(Integer, nullable=False)
    status_ts = Column(Text, nullable=False)
    status_by = Column(Text)
    note = Column(Text)
    created_at = Column(Text, nullable=False)

    counts = relationship("RequirementCount", back_populates="requirement", cascade="all, delete-orphan")


class RequirementCount(Base):
    __tablename__ = "requirement_counts"

    requirement_id = Column(Text, ForeignKey("requirements.id", ondelete="CASCADE"), primary_key=True)
    organization_unit_id = Column(Text, primary_key=True)
    organization_unit = Column(Text)
    count = Column(Integer, nullable=False)
    recommendation = Column(Integer)
    bezetting = Column(Integer, nullable=False, default=0)

    requirement = relationship("Requirement", back_populates="counts")
