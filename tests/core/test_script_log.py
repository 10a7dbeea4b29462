"""Tests for core.script_log (execution log storage and retention)."""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from sqlmodel import Session, select

from rssflow.core.script_log import cleanup_old_logs, get_execution_logs, log_execution
from rssflow.engines.script import FilterVerdict, KeepVerdict, ScriptEngine
from rssflow.models import ScriptLog


def _add_log(db: Session, feed_id: uuid.UUID, *, age: timedelta, error: str | None = None) -> ScriptLog:
    rec = ScriptLog(
        feed_id=feed_id,
        script_content="def process_article(article): ...",
        error_message=error,
        created_at=datetime.now(timezone.utc) - age,
    )
    db.add(rec)
    db.commit()
    db.refresh(rec)
    return rec


def test_log_execution_success_record(db: Session) -> None:
    feed_id = uuid.uuid4()
    verdict = KeepVerdict(article={"title": "Új cím"}, extras={"webhook": True})
    log_execution(db, feed_id, "script body", verdict, None)

    logs = get_execution_logs(db, feed_id)
    assert len(logs) == 1
    assert logs[0].feed_id == feed_id
    assert logs[0].script_content == "script body"
    assert logs[0].execution_result == {
        "action": "keep",
        "article": {"title": "Új cím"},
        "webhook": True,
    }
    assert logs[0].error_message is None


def test_log_execution_error_record(db: Session) -> None:
    feed_id = uuid.uuid4()
    log_execution(db, feed_id, "script body", None, "Script execution failed: timed out after 5s")
    logs = get_execution_logs(db, feed_id)
    assert logs[0].execution_result is None
    assert logs[0].error_message == "Script execution failed: timed out after 5s"


def test_log_execution_truncates_source(db: Session) -> None:
    feed_id = uuid.uuid4()
    log_execution(db, feed_id, "x" * 5000, {"action": "keep"}, None)
    row = db.exec(select(ScriptLog).where(ScriptLog.feed_id == feed_id)).one()
    assert row.script_content == "x" * 1000


def test_get_execution_logs_newest_first_and_paged(db: Session) -> None:
    feed_id = uuid.uuid4()
    other_feed = uuid.uuid4()
    old = _add_log(db, feed_id, age=timedelta(hours=3), error="old")
    mid = _add_log(db, feed_id, age=timedelta(hours=2), error="mid")
    new = _add_log(db, feed_id, age=timedelta(hours=1), error="new")
    _add_log(db, other_feed, age=timedelta(minutes=1))

    logs = get_execution_logs(db, feed_id)
    assert [r.id for r in logs] == [new.id, mid.id, old.id]

    page = get_execution_logs(db, feed_id, limit=1, offset=1)
    assert [r.id for r in page] == [mid.id]


def test_cleanup_old_logs(db: Session) -> None:
    feed_id = uuid.uuid4()
    recent = _add_log(db, feed_id, age=timedelta(days=3))
    _add_log(db, feed_id, age=timedelta(days=10))

    assert cleanup_old_logs(db, 7) == 1
    remaining = db.exec(select(ScriptLog)).all()
    assert [r.id for r in remaining] == [recent.id]


def test_cleanup_old_logs_nothing_to_delete(db: Session) -> None:
    _add_log(db, uuid.uuid4(), age=timedelta(hours=1))
    assert cleanup_old_logs(db) == 0


def test_log_execution_never_raises() -> None:
    session = MagicMock()
    session.commit.side_effect = RuntimeError("database is gone")

    log_execution(session, uuid.uuid4(), "script", FilterVerdict(reason="x"), None)

    session.add.assert_called_once()
    session.rollback.assert_called_once()


def test_engine_usable_after_log_write_failure() -> None:
    session = MagicMock()
    session.commit.side_effect = RuntimeError("database is gone")
    runtime = MagicMock()
    runtime.run = AsyncMock(return_value={"action": "keep"})
    engine = ScriptEngine(runtime=runtime)

    first = asyncio.run(engine.execute_script("s", {"title": "a"}))
    log_execution(session, uuid.uuid4(), "s", first, None)
    second = asyncio.run(engine.execute_script("s", {"title": "b"}))

    assert isinstance(second, KeepVerdict)
    assert runtime.run.await_count == 2
