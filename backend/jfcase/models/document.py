from sqlalchemy import Column, Integer, Text
from jfcase.database import Base


class CaseDocument(Base):
    __tablename__ = "case_documents"

    id = Column(Text, primary_key=True)
    case_type = Column(Text, nullable=False)
    case_id = Column(Text, nullable=False)
    kind = Column(Text, nullable=False)
    filename = Column(Text, nullable=False)
    document_name = Column(Text)
    document_number = Column(Text)
    document_date = Column(Text)
    note = Column(Text)
    signer_id = Column(Text)
    subject_id = Column(Text)
    is_signed = Column(Integer, nullable=False, default=0)
    created_at = Column(Text, nullable=False)
    signed_at = Column(Text)


class StatusHistory(Base):
    __tablename__ = "status_history"

    id = Column(Text, primary_key=True)
    case_type = Column(Text, nullable=False)
    case_id = Column(Text, nullable=False)
    status = Column(Integer, nullable=False)
    changed_by = Column(Text)
    changed_at = Column(Text, nullable=False)
    note = Column(Text)
