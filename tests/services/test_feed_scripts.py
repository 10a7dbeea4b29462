"""Tests for services.feed_scripts (feed script pipeline and dry runs)."""

import asyncio
import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from rssflow.core.script_log import get_execution_logs
from rssflow.engines.script import (
    FilterVerdict,
    KeepVerdict,
    ScriptRuntimeError,
    ScriptTimeoutError,
)
from rssflow.models import Article
from rssflow.services.feed_scripts import apply_article_patch, dry_run_script, run_feed_script
from tests.utils.feed import create_random_article, create_random_feed, create_random_script

SCRIPT = "def process_article(article, raw_item=None):\n    return {'action': 'keep'}\n"


def _engine(result: object = None, side_effect: BaseException | None = None) -> MagicMock:
    engine = MagicMock()
    engine.execute_script = AsyncMock(return_value=result, side_effect=side_effect)
    return engine


def test_filter_deletes_article_and_logs(db: Session) -> None:
    feed = create_random_feed(db, script=create_random_script(db, content=SCRIPT))
    article = create_random_article(db, feed, title="Sponsored post")
    article_id = article.id
    engine = _engine(FilterVerdict(reason="sponsored"))

    outcome = asyncio.run(run_feed_script(db, feed, article, {"creator": "ads"}, engine=engine))

    assert outcome is not None
    assert outcome.success
    assert outcome.deleted is True
    assert db.get(Article, article_id) is None
    logs = get_execution_logs(db, feed.id)
    assert len(logs) == 1
    assert logs[0].execution_result == {"action": "filter", "reason": "sponsored"}
    assert logs[0].error_message is None

    call = engine.execute_script.call_args
    assert call.args[0] == SCRIPT
    assert call.args[2] == {"creator": "ads"}
    assert call.kwargs["log_extra"] == {"feed_id": str(feed.id)}


def test_keep_applies_patch_and_marks_processed(db: Session) -> None:
    feed = create_random_feed(db, script=create_random_script(db, content=SCRIPT))
    article = create_random_article(db, feed, title="Original")
    original_link = article.link
    engine = _engine(KeepVerdict(article={"title": "Rewritten", "description": "Short"}))

    outcome = asyncio.run(run_feed_script(db, feed, article, engine=engine))

    assert outcome is not None
    assert outcome.deleted is False
    assert sorted(outcome.updated_fields) == ["description", "title"]
    stored = db.get(Article, article.id)
    assert stored is not None
    assert stored.title == "Rewritten"
    assert stored.description == "Short"
    assert stored.link == original_link
    assert stored.content == "Original content"
    assert stored.is_processed is True


def test_keep_without_patch_marks_processed(db: Session) -> None:
    feed = create_random_feed(db, script=create_random_script(db, content=SCRIPT))
    article = create_random_article(db, feed, title="Unchanged")

    outcome = asyncio.run(run_feed_script(db, feed, article, engine=_engine(KeepVerdict())))

    assert outcome is not None
    assert outcome.updated_fields == []
    stored = db.get(Article, article.id)
    assert stored is not None
    assert stored.title == "Unchanged"
    assert stored.is_processed is True


@pytest.mark.parametrize(
    "error",
    [ScriptTimeoutError(5.0), ScriptRuntimeError("ZeroDivisionError: division by zero")],
)
def test_failure_logs_error_and_keeps_article(db: Session, error: Exception) -> None:
    feed = create_random_feed(db, script=create_random_script(db, content=SCRIPT))
    article = create_random_article(db, feed, title="Kept as stored")

    outcome = asyncio.run(run_feed_script(db, feed, article, engine=_engine(side_effect=error)))

    assert outcome is not None
    assert outcome.success is False
    assert outcome.error == str(error)
    stored = db.get(Article, article.id)
    assert stored is not None
    assert stored.title == "Kept as stored"
    assert stored.is_processed is False
    logs = get_execution_logs(db, feed.id)
    assert len(logs) == 1
    assert logs[0].execution_result is None
    assert logs[0].error_message.startswith("Script execution failed: ")


def test_feed_without_script(db: Session) -> None:
    feed = create_random_feed(db)
    article = create_random_article(db, feed)
    engine = _engine(KeepVerdict())

    assert asyncio.run(run_feed_script(db, feed, article, engine=engine)) is None
    engine.execute_script.assert_not_called()
    assert get_execution_logs(db, feed.id) == []


def test_apply_article_patch_ignores_unknown_fields_and_parses_pub_date() -> None:
    article = Article(feed_id=uuid.uuid4(), title="t", guid="g")
    original_id = article.id
    changed = apply_article_patch(
        article,
        {
            "id": "other",
            "feed_id": "other",
            "is_processed": True,
            "pub_date": "2026-03-01T12:00:00Z",
            "guid": "new-guid",
            "content": None,
        },
    )
    assert sorted(changed) == ["guid", "pub_date"]
    assert article.id == original_id
    assert article.is_processed is False
    assert article.pub_date == datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    assert article.content == ""


def test_apply_article_patch_bad_pub_date_skipped() -> None:
    article = Article(feed_id=uuid.uuid4(), title="t")
    assert apply_article_patch(article, {"pub_date": "yesterday", "title": 42}) == ["title"]
    assert article.title == "42"
    assert article.pub_date is None


def test_apply_article_patch_truncates_bounded_fields() -> None:
    article = Article(feed_id=uuid.uuid4(), title="t", link="l", guid="g")
    changed = apply_article_patch(
        article,
        {"title": "x" * 5000, "link": "https://example.com/" + "a" * 5000, "guid": "g" * 3000, "content": "c" * 5000},
    )
    assert sorted(changed) == ["content", "guid", "link", "title"]
    assert len(article.title) == 1024
    assert len(article.link) == 2048
    assert article.link.startswith("https://example.com/")
    assert len(article.guid) == 2048
    assert len(article.content) == 5000


def test_failed_verdict_write_is_rolled_back_and_logged(db: Session) -> None:
    feed = create_random_feed(db, script=create_random_script(db, content=SCRIPT))
    article = create_random_article(db, feed, title="Still here")
    article_id = article.id
    engine = _engine(FilterVerdict(reason="dup"))
    db_error = OperationalError("DELETE FROM article", {}, Exception("database is locked"))

    with patch("rssflow.services.feed_scripts._apply_verdict", side_effect=db_error):
        outcome = asyncio.run(run_feed_script(db, feed, article, engine=engine))

    assert outcome is not None
    assert outcome.success is False
    assert outcome.error.startswith("Failed to apply script verdict: ")
    assert "database is locked" in outcome.error
    assert outcome.deleted is False
    assert outcome.verdict == FilterVerdict(reason="dup")
    stored = db.get(Article, article_id)
    assert stored is not None
    assert stored.title == "Still here"
    logs = get_execution_logs(db, feed.id)
    assert len(logs) == 1
    assert logs[0].error_message == outcome.error


def test_dry_run_results_in_order() -> None:
    async def fake_execute(script: str, article: dict, raw_item: object = None) -> object:
        # later samples finish first
        await asyncio.sleep(0.01 * (3 - int(article["id"])))
        if article["title"] == "bad":
            raise ScriptRuntimeError("ValueError: bad sample")
        return KeepVerdict(extras={"seen": raw_item})

    engine = MagicMock()
    engine.execute_script = AsyncMock(side_effect=fake_execute)
    samples = [
        {"id": "0", "title": "first", "raw_item": {"n": 0}},
        {"id": "1", "title": "bad"},
        {"id": "2", "title": "third"},
    ]

    results = asyncio.run(dry_run_script(SCRIPT, samples, engine=engine, concurrency=2))

    assert [r.article_id for r in results] == ["0", "1", "2"]
    assert [r.success for r in results] == [True, False, True]
    assert results[0].result == {"action": "keep", "seen": {"n": 0}}
    assert results[1].error == "Script execution failed: ValueError: bad sample"
    assert results[1].article_title == "bad"
    assert results[2].result == {"action": "keep", "seen": None}


def test_dry_run_does_not_write(db: Session) -> None:
    feed = create_random_feed(db)
    article = create_random_article(db, feed, title="Sample")
    engine = _engine(FilterVerdict())

    results = asyncio.run(dry_run_script(SCRIPT, [article], engine=engine))

    assert results[0].success is True
    assert results[0].article_title == "Sample"
    assert results[0].article_id == str(article.id)
    assert db.exec(select(Article)).all() != []
    assert get_execution_logs(db, feed.id) == []
