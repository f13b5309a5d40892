from enum import IntEnum

from sqlalchemy import Column, Float, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from jfcase.database import Base


class ActivityStatus(IntEnum):
    CREATED = 1
    ACCEPTED = 2
    CERT_REQUEST = 3
    CERT_PUBLISHED = 4
    REJECTED = 5


class ActivityType(IntEnum):
    TRAINING = 1
    COMPETENCY_EXAM = 2
    MUTATION_EXAM = 3


class CertificateType(IntEnum):
    CERT = 1
    PAK = 2


class Activity(Base):
    __tablename__ = "activities"

    id = Column(Text, primary_key=True)
    agency_id = Column(Text, nullable=False)
    name = Column(Text, nullable=False)
    activity_type = Column(Integer, nullable=False)
    description = Column(Text)
    position_grade = Column(Text, nullable=False)
    training_year = Column(Integer, nullable=False)
    duration = Column(Integer, nullable=False, default=0)
    organizer_agency = Column(Text)
    admission_number = Column(Text, nullable=False)
    admission_date = Column(Text, nullable=False)
    start_date = Column(Text, nullable=False)
    end_date = Column(Text, nullable=False)
    status = Column(Integer, nullable=False)
    status_ts = Column(Text, nullable=False)
    status_by = Column(Text)
    created_at = Column(Text, nullable=False)

    attendees = relationship("ActivityAttendee", back_populates="activity", cascade="all, delete-orphan")
    certificates = relationship("ActivityCertificate", back_populates="activity", cascade="all, delete-orphan")


class ActivityAttendee(Base):
    __tablename__ = "activity_attendees"

    activity_id = Column(Text, ForeignKey("activities.id", ondelete="CASCADE"), primary_key=True)
    asn_id = Column(Text, primary_key=True)
    is_accepted = Column(Integer)
    accepted_reason_rejected = Column(Text)
    accepted_at = Column(Text)
    is_passing = Column(Integer)
    passing_reason_rejected = Column(Text)
    passing_at = Column(Text)

    activity = relationship("Activity", back_populates="attendees")


class ActivityCertificate(Base):
    __tablename__ = "activity_certificates"

    activity_id = Column(Text, ForeignKey("activities.id", ondelete="CASCADE"), primary_key=True)
    asn_id = Column(Text, primary_key=True)
    cert_type = Column(Integer, primary_key=True)
    document_number = Column(Text, nullable=False)
    document_date = Column(Text, nullable=False)
    signer_id = Column(Text)
    score = Column(Float)
    created_at = Column(Text, nullable=False)

    activity = relationship("Activity", back_populates="certificates")
