import sqlite3
from pathlib import Path
from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from jfcase.config import settings


class Base(DeclarativeBase):
    pass


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA busy_timeout=15000")
    cursor.close()
    # Let SQLAlchemy emit BEGIN itself, see _begin_immediate.
    dbapi_conn.isolation_level = None


def _begin_immediate(conn):
    # SQLite ignores FOR UPDATE; taking the write lock at BEGIN serializes
    # concurrent status transitions the same way a row lock would.
    conn.exec_driver_sql("BEGIN IMMEDIATE")


def get_engine(db_path: Path | None = None):
    path = db_path or settings.db_path
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _set_sqlite_pragmas)
    event.listen(engine, "begin", _begin_immediate)
    return engine


engine = get_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def get_db(request: Request):
    db = SessionLocal()
    # Read by workflow.commit, which rolls back once the request has timed out.
    db.info["deadline"] = getattr(request.state, "deadline", None)
    try:
        yield db
    finally:
        db.close()


SCHEMA_SQL = """\
-- ============================================================
-- EMPLOYEES (ASN profile, roles and API token hash)
-- ============================================================
CREATE TABLE IF NOT EXISTS employees (
    asn_id                 TEXT PRIMARY KEY,
    nip                    TEXT NOT NULL UNIQUE,
    name                   TEXT NOT NULL,
    birth_place            TEXT,
    birth_date             TEXT,
    photo                  TEXT,
    functional_position_id TEXT,
    functional_position    TEXT,
    rank                   TEXT,
    organization_unit_id   TEXT,
    organization_unit      TEXT,
    agency_id              TEXT NOT NULL,
    agency                 TEXT,
    roles                  TEXT NOT NULL DEFAULT '',
    token_hash             TEXT,
    created_at             TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

CREATE INDEX IF NOT EXISTS idx_employees_position ON employees(functional_position_id, organization_unit_id);

-- ============================================================
-- DOCUMENTS AND STATUS HISTORY (shared by every workflow)
-- ============================================================
CREATE TABLE IF NOT EXISTS case_documents (
    id              TEXT PRIMARY KEY,
    case_type       TEXT NOT NULL,
    case_id         TEXT NOT NULL,
    kind            TEXT NOT NULL,
    filename        TEXT NOT NULL,
    document_name   TEXT,
    document_number TEXT,
    document_date   TEXT,
    note            TEXT,
    signer_id       TEXT,
    subject_id      TEXT,
    is_signed       INTEGER NOT NULL DEFAULT 0,
    created_at      TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now')),
    signed_at       TEXT
);

CREATE INDEX IF NOT EXISTS idx_case_documents_case ON case_documents(case_type, case_id, kind);
CREATE INDEX IF NOT EXISTS idx_case_documents_filename ON case_documents(filename);

CREATE TABLE IF NOT EXISTS status_history (
    id         TEXT PRIMARY KEY,
    case_type  TEXT NOT NULL,
    case_id    TEXT NOT NULL,
    status     INTEGER NOT NULL,
    changed_by TEXT,
    changed_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now')),
    note       TEXT
);

CREATE INDEX IF NOT EXISTS idx_status_history_case ON status_history(case_type, case_id);

-- ============================================================
-- ACTIVITIES
-- ============================================================
CREATE TABLE IF NOT EXISTS activities (
    id               TEXT PRIMARY KEY,
    agency_id        TEXT NOT NULL,
    name             TEXT NOT NULL,
    activity_type    INTEGER NOT NULL,
    description      TEXT,
    position_grade   TEXT NOT NULL,
    training_year    INTEGER NOT NULL,
    duration         INTEGER NOT NULL DEFAULT 0,
    organizer_agency TEXT,
    admission_number TEXT NOT NULL,
    admission_date   TEXT NOT NULL,
    start_date       TEXT NOT NULL,
    end_date         TEXT NOT NULL,
    status           INTEGER NOT NULL,
    status_ts        TEXT NOT NULL,
    status_by        TEXT,
    created_at       TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_activities_status ON activities(status);
CREATE INDEX IF NOT EXISTS idx_activities_agency ON activities(agency_id);

CREATE TABLE IF NOT EXISTS activity_attendees (
    activity_id             TEXT NOT NULL REFERENCES activities(id) ON DELETE CASCADE,
    asn_id                  TEXT NOT NULL,
    is_accepted             INTEGER,
    accepted_reason_rejected TEXT,
    accepted_at             TEXT,
    is_passing              INTEGER,
    passing_reason_rejected TEXT,
    passing_at              TEXT,
    PRIMARY KEY (activity_id, asn_id)
);

CREATE TABLE IF NOT EXISTS activity_certificates (
    activity_id     TEXT NOT NULL REFERENCES activities(id) ON DELETE CASCADE,
    asn_id          TEXT NOT NULL,
    cert_type       INTEGER NOT NULL,
    document_number TEXT NOT NULL,
    document_date   TEXT NOT NULL,
    signer_id       TEXT,
    score           REAL,
    created_at      TEXT NOT NULL,
    PRIMARY KEY (activity_id, asn_id, cert_type)
);

-- ============================================================
-- REQUIREMENTS
-- ============================================================
CREATE TABLE IF NOT EXISTS requirements (
    id                     TEXT PRIMARY KEY,
    agency_id              TEXT NOT NULL,
    functional_position_id TEXT NOT NULL,
    functional_position    TEXT,
    fiscal_year            INTEGER NOT NULL,
    admission_number       TEXT NOT NULL,
    admission_date         TEXT NOT NULL,
    status                 INTEGER NOT NULL,
    status_ts              TEXT NOT NULL,
    status_by              TEXT,
    note                   TEXT,
    created_at             TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_requirements_status ON requirements(status);

CREATE TABLE IF NOT EXISTS requirement_counts (
    requirement_id       TEXT NOT NULL REFERENCES requirements(id) ON DELETE CASCADE,
    organization_unit_id TEXT NOT NULL,
    organization_unit    TEXT,
    count                INTEGER NOT NULL,
    recommendation       INTEGER,
    bezetting            INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (requirement_id, organization_unit_id)
);

-- ============================================================
-- DISMISSALS
-- ============================================================
CREATE TABLE IF NOT EXISTS dismissals (
    id               TEXT PRIMARY KEY,
    agency_id        TEXT NOT NULL,
    asn_id           TEXT NOT NULL,
    admission_number TEXT NOT NULL,
    admission_date   TEXT NOT NULL,
    reason           TEXT NOT NULL,
    reason_detail    TEXT,
    decree_number    TEXT,
    decree_date      TEXT,
    dismissal_date   TEXT,
    deny_reason      TEXT,
    status           INTEGER NOT NULL,
    status_ts        TEXT NOT NULL,
    status_by        TEXT,
    created_at       TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_dismissals_status ON dismissals(status);

-- ============================================================
-- PROMOTIONS
-- ============================================================
CREATE TABLE IF NOT EXISTS promotions (
    id                    TEXT PRIMARY KEY,
    agency_id             TEXT NOT NULL,
    asn_id                TEXT NOT NULL,
    admission_number      TEXT NOT NULL,
    admission_date        TEXT NOT NULL,
    promotion_type        INTEGER NOT NULL,
    promotion_position_id TEXT NOT NULL,
    promotion_position    TEXT,
    test_status           INTEGER NOT NULL,
    test_score            REAL,
    rejection_reason      TEXT,
    status                INTEGER NOT NULL,
    status_ts             TEXT NOT NULL,
    status_by             TEXT,
    created_at            TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_promotions_status ON promotions(status);

CREATE TABLE IF NOT EXISTS promotion_cpns (
    id                    TEXT PRIMARY KEY,
    agency_id             TEXT NOT NULL,
    asn_id                TEXT NOT NULL,
    admission_number      TEXT NOT NULL,
    admission_date        TEXT NOT NULL,
    promotion_position_id TEXT NOT NULL,
    promotion_position    TEXT,
    first_credit_number   INTEGER NOT NULL DEFAULT 0,
    organization_unit_id  TEXT NOT NULL,
    organization_unit     TEXT,
    rejection_reason      TEXT,
    status                INTEGER NOT NULL,
    status_ts             TEXT NOT NULL,
    status_by             TEXT,
    created_at            TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_promotion_cpns_status ON promotion_cpns(status);

-- ============================================================
-- ASSESSMENT TEAMS
-- ============================================================
CREATE TABLE IF NOT EXISTS assessment_teams (
    id                     TEXT PRIMARY KEY,
    agency_id              TEXT NOT NULL,
    submitter_asn_id       TEXT NOT NULL,
    functional_position_id TEXT NOT NULL,
    admission_number       TEXT NOT NULL,
    admission_date         TEXT NOT NULL,
    status                 INTEGER NOT NULL,
    status_ts              TEXT NOT NULL,
    status_by              TEXT,
    created_at             TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS assessment_team_members (
    team_id         TEXT NOT NULL REFERENCES assessment_teams(id) ON DELETE CASCADE,
    asn_id          TEXT NOT NULL,
    role            INTEGER NOT NULL,
    status          INTEGER,
    reason_rejected TEXT,
    PRIMARY KEY (team_id, asn_id)
);
"""


def init_db(db_path: Path | None = None):
    path = db_path or settings.db_path
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.executescript(SCHEMA_SQL)
    conn.close()
