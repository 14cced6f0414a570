"""SQLite persistence for job search requests.

Every write is a single-row UPDATE so the step chain and the abort call can
interleave without torn updates. Status changes are compare-and-set on the
expected current status.
"""

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter

from jobsearch.core.schemas import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    EnrichedResults,
    FilteredJob,
    JobRequest,
    RawJob,
    RequestStatus,
    SearchParams,
)
from jobsearch.pipeline.state import check_transition

_JOB_REQUESTS_TABLE = """
CREATE TABLE IF NOT EXISTS job_requests (
    id                TEXT    PRIMARY KEY,
    user_id           TEXT    NOT NULL,
    search_params     TEXT    NOT NULL,
    status            TEXT    NOT NULL DEFAULT 'pending',
    raw_results       TEXT,
    filtered_results  TEXT,
    enriched_results  TEXT,
    error_message     TEXT,
    abort_requested   INTEGER NOT NULL DEFAULT 0,
    scrape_run_id     TEXT,
    created_at        TEXT    NOT NULL,
    updated_at        TEXT    NOT NULL,
    completed_at      TEXT
);
"""

_USER_INDEX = """
CREATE INDEX IF NOT EXISTS idx_job_requests_user
    ON job_requests (user_id, created_at);
"""

_RAW_JOBS = TypeAdapter(list[RawJob])
_FILTERED_JOBS = TypeAdapter(list[FilteredJob])

_TERMINAL_VALUES = tuple(s.value for s in TERMINAL_STATUSES)
_ACTIVE_VALUES = tuple(s.value for s in ACTIVE_STATUSES)


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection.

    The connection may be used from the thread running the event loop as
    well as the thread that created it.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_JOB_REQUESTS_TABLE)
    conn.execute(_USER_INDEX)
    conn.commit()
    return conn


def insert_request(
    conn: sqlite3.Connection,
    request_id: str,
    user_id: str,
    params: SearchParams,
    now: datetime | None = None,
) -> JobRequest:
    """Insert a new request in ``pending`` and return its snapshot."""
    ts = (now or datetime.now()).isoformat()
    conn.execute(
        """
        INSERT INTO job_requests
            (id, user_id, search_params, status, abort_requested, created_at, updated_at)
        VALUES (?, ?, ?, ?, 0, ?, ?)
        """,
        (request_id, user_id, params.model_dump_json(), RequestStatus.PENDING.value, ts, ts),
    )
    conn.commit()
    request = get_request(conn, request_id)
    if request is None:
        msg = f"Request {request_id} vanished right after insert"
        raise RuntimeError(msg)
    return request


def get_request(conn: sqlite3.Connection, request_id: str) -> JobRequest | None:
    """Point read by id. Returns None if the request does not exist."""
    row = conn.execute("SELECT * FROM job_requests WHERE id = ?", (request_id,)).fetchone()
    if row is None:
        return None
    return _row_to_request(row)


def list_requests(conn: sqlite3.Connection, user_id: str, limit: int = 10) -> list[JobRequest]:
    """Return a user's requests, newest first."""
    rows = conn.execute(
        """
        SELECT * FROM job_requests
        WHERE user_id = ?
        ORDER BY created_at DESC, rowid DESC
        LIMIT ?
        """,
        (user_id, limit),
    ).fetchall()
    return [_row_to_request(r) for r in rows]


def list_active_requests(conn: sqlite3.Connection) -> list[JobRequest]:
    """Return every request that has not reached a terminal status."""
    placeholders = ", ".join("?" for _ in _ACTIVE_VALUES)
    rows = conn.execute(
        f"SELECT * FROM job_requests WHERE status IN ({placeholders})",
        _ACTIVE_VALUES,
    ).fetchall()
    return [_row_to_request(r) for r in rows]


def transition(
    conn: sqlite3.Connection,
    request_id: str,
    current: RequestStatus,
    target: RequestStatus,
    *,
    enriched_results: EnrichedResults | None = None,
    error_message: str | None = None,
    now: datetime | None = None,
) -> bool:
    """Move a request from *current* to *target* in one UPDATE.

    Returns False if the row is no longer in *current* (another writer got
    there first). ``enriched_results`` is only written with ``completed``
    and ``error_message`` only with ``failed``.

    Raises:
        InvalidTransition: If the lifecycle does not allow the change.
        ValueError: If a payload is passed with the wrong target status.
    """
    check_transition(current, target)
    if (enriched_results is not None) != (target is RequestStatus.COMPLETED):
        msg = "enriched_results must be stored exactly when completing a request"
        raise ValueError(msg)
    if (error_message is not None) != (target is RequestStatus.FAILED):
        msg = "error_message must be stored exactly when failing a request"
        raise ValueError(msg)

    ts = (now or datetime.now()).isoformat()
    completed_at = ts if target.is_terminal else None
    enriched_json = enriched_results.model_dump_json() if enriched_results else None
    cursor = conn.execute(
        """
        UPDATE job_requests
        SET status = ?,
            enriched_results = COALESCE(?, enriched_results),
            error_message = COALESCE(?, error_message),
            completed_at = COALESCE(?, completed_at),
            updated_at = ?
        WHERE id = ? AND status = ?
        """,
        (
            target.value,
            enriched_json,
            error_message,
            completed_at,
            ts,
            request_id,
            current.value,
        ),
    )
    conn.commit()
    return cursor.rowcount == 1


def store_raw_results(conn: sqlite3.Connection, request_id: str, jobs: list[RawJob]) -> bool:
    """Persist scrape output on a non-terminal request."""
    return _store_payload(conn, request_id, "raw_results", _RAW_JOBS.dump_json(jobs).decode())


def store_filtered_results(
    conn: sqlite3.Connection,
    request_id: str,
    jobs: list[FilteredJob],
) -> bool:
    """Persist filter output on a non-terminal request."""
    return _store_payload(
        conn, request_id, "filtered_results", _FILTERED_JOBS.dump_json(jobs).decode(),
    )


def set_scrape_run_id(conn: sqlite3.Connection, request_id: str, run_id: str) -> None:
    """Record the scrape provider's handle so the run can be aborted later."""
    conn.execute(
        "UPDATE job_requests SET scrape_run_id = ? WHERE id = ?",
        (run_id, request_id),
    )
    conn.commit()


def request_abort(conn: sqlite3.Connection, request_id: str) -> bool:
    """Set the abort flag on a non-terminal request.

    Touches only ``abort_requested``. Returns True if the row was updated.
    """
    placeholders = ", ".join("?" for _ in _TERMINAL_VALUES)
    cursor = conn.execute(
        f"""
        UPDATE job_requests SET abort_requested = 1
        WHERE id = ? AND status NOT IN ({placeholders})
        """,
        (request_id, *_TERMINAL_VALUES),
    )
    conn.commit()
    return cursor.rowcount == 1


def is_abort_requested(conn: sqlite3.Connection, request_id: str) -> bool:
    row = conn.execute(
        "SELECT abort_requested FROM job_requests WHERE id = ?",
        (request_id,),
    ).fetchone()
    return bool(row is not None and row["abort_requested"])


def _store_payload(conn: sqlite3.Connection, request_id: str, column: str, payload: str) -> bool:
    placeholders = ", ".join("?" for _ in _TERMINAL_VALUES)
    cursor = conn.execute(
        f"""
        UPDATE job_requests SET {column} = ?
        WHERE id = ? AND status NOT IN ({placeholders})
        """,
        (payload, request_id, *_TERMINAL_VALUES),
    )
    conn.commit()
    return cursor.rowcount == 1


def _row_to_request(row: sqlite3.Row) -> JobRequest:
    data: dict[str, Any] = {
        "id": row["id"],
        "user_id": row["user_id"],
        "search_params": SearchParams.model_validate_json(row["search_params"]),
        "status": RequestStatus(row["status"]),
        "raw_results": _RAW_JOBS.validate_json(row["raw_results"]) if row["raw_results"] else None,
        "filtered_results": (
            _FILTERED_JOBS.validate_json(row["filtered_results"])
            if row["filtered_results"]
            else None
        ),
        "enriched_results": (
            EnrichedResults.model_validate_json(row["enriched_results"])
            if row["enriched_results"]
            else None
        ),
        "error_message": row["error_message"],
        "abort_requested": bool(row["abort_requested"]),
        "scrape_run_id": row["scrape_run_id"],
        "created_at": datetime.fromisoformat(row["created_at"]),
        "updated_at": datetime.fromisoformat(row["updated_at"]),
        "completed_at": (
            datetime.fromisoformat(row["completed_at"]) if row["completed_at"] else None
        ),
    }
    return JobRequest.model_validate(data)
