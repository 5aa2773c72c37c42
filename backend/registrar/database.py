import sqlite3
from pathlib import Path
from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from registrar.config import settings


class Base(DeclarativeBase):
    pass


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def get_engine(db_path: Path | None = None):
    path = db_path or settings.db_path
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


def get_session_factory(db_path: Path | None = None) -> sessionmaker:
    return sessionmaker(bind=get_engine(db_path), autoflush=False, autocommit=False)


SCHEMA_SQL = """\
-- ============================================================
-- USERS (read-only to the workflow; used for notifications)
-- ============================================================
CREATE TABLE IF NOT EXISTS users (
    user_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    student_number TEXT,
    first_name     TEXT NOT NULL DEFAULT '',
    last_name      TEXT NOT NULL DEFAULT '',
    email          TEXT,
    role           TEXT NOT NULL DEFAULT 'Student'
                   CHECK(role IN ('Student','Admin','Staff','Accounting'))
);

-- ============================================================
-- DOCUMENT TYPES
-- ============================================================
CREATE TABLE IF NOT EXISTS document_types (
    document_type_id   INTEGER PRIMARY KEY AUTOINCREMENT,
    name               TEXT NOT NULL,
    description        TEXT,
    requires_payment   INTEGER NOT NULL DEFAULT 0,
    amount             TEXT NOT NULL DEFAULT '0.00',
    processing_days    INTEGER NOT NULL DEFAULT 0 CHECK(processing_days >= 0),
    requires_clearance INTEGER NOT NULL DEFAULT 0,
    category           TEXT NOT NULL DEFAULT '',
    is_active          INTEGER NOT NULL DEFAULT 1,
    created_date       TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

-- ============================================================
-- DOCUMENT REQUESTS
-- ============================================================
CREATE TABLE IF NOT EXISTS document_requests (
    request_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    queue_number        TEXT NOT NULL,
    user_id             INTEGER NOT NULL,
    document_type_id    INTEGER NOT NULL REFERENCES document_types(document_type_id),
    document_type       TEXT NOT NULL,
    purpose             TEXT NOT NULL DEFAULT '',
    quantity            INTEGER NOT NULL CHECK(quantity >= 1),
    total_amount        TEXT NOT NULL,
    status              TEXT NOT NULL DEFAULT 'Active'
                        CHECK(status IN ('Active','Pending','Processing','Ready',
                                         'Completed','Cancelled')),
    current_stage       TEXT NOT NULL
                        CHECK(current_stage IN ('Pending Payment','Awaiting Payment',
                                                'Payment Verification','Pending Review',
                                                'Document Processing','Ready for Pickup',
                                                'Completed')),
    payment_status      TEXT NOT NULL
                        CHECK(payment_status IN ('Not Required','Pending',
                                                 'Pending Verification','Verified','Rejected')),
    request_date        TEXT NOT NULL,
    target_release_date TEXT,
    completed_date      TEXT,
    processed_by        INTEGER,
    processed_date      TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_requests_queue_number ON document_requests(queue_number);
CREATE INDEX IF NOT EXISTS idx_requests_user ON document_requests(user_id);
CREATE INDEX IF NOT EXISTS idx_requests_status ON document_requests(status);

-- ============================================================
-- PAYMENTS
-- ============================================================
CREATE TABLE IF NOT EXISTS payments (
    payment_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    request_id        INTEGER NOT NULL REFERENCES document_requests(request_id) ON DELETE CASCADE,
    amount            TEXT NOT NULL,
    payment_method    TEXT NOT NULL,
    reference_number  TEXT,
    payment_proof_url TEXT,
    status            TEXT NOT NULL DEFAULT 'Pending'
                      CHECK(status IN ('Pending','Pending Verification','Verified','Rejected')),
    verified_by       INTEGER,
    verified_date     TEXT,
    rejection_reason  TEXT,
    payment_date      TEXT NOT NULL,
    updated_date      TEXT
);

CREATE INDEX IF NOT EXISTS idx_payments_request ON payments(request_id);
CREATE INDEX IF NOT EXISTS idx_payments_status ON payments(status);

-- ============================================================
-- WORKFLOW HISTORY
-- ============================================================
CREATE TABLE IF NOT EXISTS workflow_history (
    history_id   INTEGER PRIMARY KEY AUTOINCREMENT,
    request_id   INTEGER NOT NULL,
    stage        TEXT NOT NULL,
    action       TEXT,
    comments     TEXT,
    processed_by INTEGER,
    processed_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_history_request ON workflow_history(request_id);
"""


MIGRATIONS = [
    # v0.2: officer verification queue lookups
    "CREATE INDEX IF NOT EXISTS idx_payments_status ON payments(status)",
]


def init_db(db_path: Path | None = None):
    path = db_path or settings.db_path
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.executescript(SCHEMA_SQL)
    # Run migrations idempotently
    for migration in MIGRATIONS:
        try:
            conn.execute(migration)
            conn.commit()
        except sqlite3.OperationalError:
            pass  # already applied
    conn.close()
