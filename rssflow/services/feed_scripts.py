"""
Feed script pipeline: the caller side of the script engine.

run_feed_script() is called by the feed poll loop for each newly stored
article. It runs the feed's script, records the attempt in script_log and
applies the verdict: "filter" deletes the article, "keep" applies the patch
and marks the article processed. A failing script leaves the article as
stored.

dry_run_script() runs a script against sample articles for the script editor.
Nothing is persisted or logged.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from rssflow.core.config import settings
from rssflow.core.script_log import log_execution
from rssflow.engines.script import (
    FilterVerdict,
    KeepVerdict,
    ScriptEngine,
    ScriptExecutionError,
    Verdict,
    get_script_engine,
)
from rssflow.models import Article, Feed, Script

_log = logging.getLogger(__name__)

# Article fields a script may overwrite; id/feed_id are never patched.
PATCHABLE_FIELDS = ("title", "link", "description", "content", "pub_date", "guid")
# Column limits of the bounded Article string fields
FIELD_MAX_LENGTHS = {"title": 1024, "link": 2048, "guid": 2048}


@dataclass
class ScriptRunOutcome:
    article_id: uuid.UUID
    verdict: Verdict | None = None
    error: str | None = None
    deleted: bool = False
    updated_fields: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class DryRunResult:
    article_id: str | None
    article_title: str
    success: bool
    result: dict[str, Any] | None = None
    error: str | None = None


def _parse_pub_date(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        _log.warning("Ignoring unparseable pub_date from script: %r", value)
        return None
    return parsed


def apply_article_patch(article: Article, patch: dict[str, Any]) -> list[str]:
    """Copy patchable keys from patch onto article. Returns the fields changed."""
    changed: list[str] = []
    for name in PATCHABLE_FIELDS:
        if name not in patch:
            continue
        value = patch[name]
        if name == "pub_date":
            value = _parse_pub_date(value)
            if value is None:
                continue
        elif value is None:
            value = ""
        else:
            value = str(value)
        if isinstance(value, str) and name in FIELD_MAX_LENGTHS:
            value = value[: FIELD_MAX_LENGTHS[name]]
        if getattr(article, name) != value:
            setattr(article, name, value)
            changed.append(name)
    return changed


def _apply_verdict(session: Session, article: Article, verdict: Verdict, outcome: ScriptRunOutcome) -> None:
    if isinstance(verdict, FilterVerdict):
        title = article.title
        session.delete(article)
        session.commit()
        outcome.deleted = True
        _log.info("Article filtered by script: %s", title)
        return

    if isinstance(verdict, KeepVerdict):
        if verdict.article:
            outcome.updated_fields = apply_article_patch(article, verdict.article)
        article.is_processed = True
        article.updated_at = datetime.now(timezone.utc)
        session.add(article)
        session.commit()
        session.refresh(article)


async def run_feed_script(
    session: Session,
    feed: Feed,
    article: Article,
    raw_item: Any = None,
    *,
    engine: ScriptEngine | None = None,
) -> ScriptRunOutcome | None:
    """
    Run the feed's script on one stored article and apply the verdict.
    Returns None when the feed has no script.
    """
    if feed.script_id is None:
        return None
    script = session.get(Script, feed.script_id)
    if script is None or not script.content:
        return None

    eng = engine or get_script_engine()
    outcome = ScriptRunOutcome(article_id=article.id)
    try:
        verdict = await eng.execute_script(
            script.content,
            article,
            raw_item,
            log_extra={"feed_id": str(feed.id)},
        )
    except ScriptExecutionError as e:
        _log.warning("Script error (feed %s, article %s): %s", feed.id, article.id, e)
        log_execution(session, feed.id, script.content, None, str(e))
        outcome.error = str(e)
        return outcome

    outcome.verdict = verdict
    try:
        _apply_verdict(session, article, verdict, outcome)
    except SQLAlchemyError as e:
        session.rollback()
        _log.error(
            "Applying script verdict failed (feed %s, article %s): %s", feed.id, outcome.article_id, e
        )
        outcome.error = f"Failed to apply script verdict: {e}"
        outcome.deleted = False
        outcome.updated_fields = []
        log_execution(session, feed.id, script.content, verdict, outcome.error)
        return outcome
    log_execution(session, feed.id, script.content, verdict, None)
    return outcome


def _sample_title(article: Any) -> str:
    if isinstance(article, dict):
        return str(article.get("title") or "")
    return str(getattr(article, "title", "") or "")


def _sample_id(article: Any) -> str | None:
    ident = article.get("id") if isinstance(article, dict) else getattr(article, "id", None)
    return str(ident) if ident is not None else None


async def dry_run_script(
    script: str,
    articles: Iterable[Any],
    *,
    engine: ScriptEngine | None = None,
    concurrency: int | None = None,
) -> list[DryRunResult]:
    """
    Run script against each sample article; one result per article, in order.
    Samples are Article rows or dicts; a dict may carry its source entry under "raw_item".
    """
    eng = engine or get_script_engine()
    sem = asyncio.Semaphore(max(1, concurrency or settings.SCRIPT_TEST_CONCURRENCY))

    async def _one(article: Any) -> DryRunResult:
        raw_item = article.get("raw_item") if isinstance(article, dict) else None
        async with sem:
            try:
                verdict = await eng.execute_script(script, article, raw_item)
            except ScriptExecutionError as e:
                return DryRunResult(
                    article_id=_sample_id(article),
                    article_title=_sample_title(article),
                    success=False,
                    error=str(e),
                )
        return DryRunResult(
            article_id=_sample_id(article),
            article_title=_sample_title(article),
            success=True,
            result=verdict.to_dict(),
        )

    return list(await asyncio.gather(*(_one(a) for a in articles)))
