"""
Script execution log storage: one ScriptLog row per script invocation.

log_execution never raises: the article pipeline must keep going when the log
table is unavailable. Failures are reported on this module's logger.
"""

import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import delete
from sqlmodel import Session, col, select

from rssflow.core.config import settings
from rssflow.models import ScriptLog, ScriptLogPublic

_log = logging.getLogger(__name__)


def _truncate(s: str | None, max_len: int) -> str | None:
    if s is None:
        return None
    return s[:max_len]


def _encode_result(result: Any) -> str | None:
    if result is None:
        return None
    to_dict = getattr(result, "to_dict", None)
    if callable(to_dict):
        result = to_dict()
    return json.dumps(result, ensure_ascii=False, default=str)


def _decode_result(raw: str | None) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except ValueError:
        return {"raw": raw}
    return value if isinstance(value, dict) else {"value": value}


def log_execution(
    session: Session,
    feed_id: uuid.UUID,
    script_content: str | None,
    result: Any,
    error_message: str | None,
) -> None:
    """
    Write one execution record (verdict or error). Never raises.

    result: a Verdict (KeepVerdict/FilterVerdict), a plain dict, or None.
    """
    try:
        rec = ScriptLog(
            feed_id=feed_id,
            script_content=_truncate(script_content or "", settings.SCRIPT_LOG_SOURCE_MAX_LEN),
            execution_result=_encode_result(result),
            error_message=error_message,
        )
        session.add(rec)
        session.commit()
    except Exception as e:
        _log.error("Failed to write script log for feed %s: %s", feed_id, e, exc_info=True)
        try:
            session.rollback()
        except Exception as rollback_error:
            _log.warning("log_execution rollback failed: %s", rollback_error)


def get_execution_logs(
    session: Session,
    feed_id: uuid.UUID,
    *,
    limit: int = 50,
    offset: int = 0,
) -> list[ScriptLogPublic]:
    """Execution records for a feed, newest first."""
    stmt = (
        select(ScriptLog)
        .where(ScriptLog.feed_id == feed_id)
        .order_by(col(ScriptLog.created_at).desc())
        .offset(max(offset, 0))
        .limit(max(limit, 0))
    )
    rows = session.exec(stmt).all()
    return [
        ScriptLogPublic(
            id=r.id,
            feed_id=r.feed_id,
            script_content=r.script_content,
            execution_result=_decode_result(r.execution_result),
            error_message=r.error_message,
            created_at=r.created_at,
        )
        for r in rows
    ]


def cleanup_old_logs(session: Session, days_to_keep: int = 7) -> int:
    """Delete records older than days_to_keep days. Returns the number of rows deleted."""
    cutoff = datetime.now(timezone.utc) - timedelta(days=days_to_keep)
    result = session.exec(delete(ScriptLog).where(col(ScriptLog.created_at) < cutoff))  # type: ignore[call-overload]
    session.commit()
    deleted = result.rowcount or 0
    _log.info("Script log cleanup removed %d rows older than %d days", deleted, days_to_keep)
    return deleted
