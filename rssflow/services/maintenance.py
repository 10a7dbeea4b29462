"""
Retention sweeps run by the nightly cleanup job.

The scheduler lives outside this package; it only calls run_cleanup().
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete
from sqlmodel import Session, col

from rssflow.core.config import settings
from rssflow.core.script_log import cleanup_old_logs
from rssflow.models import Article

_log = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    articles_deleted: int
    logs_deleted: int


def cleanup_old_articles(session: Session, days_to_keep: int = 30) -> int:
    """Delete articles stored more than days_to_keep days ago. Returns rows deleted."""
    cutoff = datetime.now(timezone.utc) - timedelta(days=days_to_keep)
    result = session.exec(delete(Article).where(col(Article.created_at) < cutoff))  # type: ignore[call-overload]
    session.commit()
    deleted = result.rowcount or 0
    _log.info("Article cleanup removed %d rows older than %d days", deleted, days_to_keep)
    return deleted


def run_cleanup(session: Session) -> CleanupResult:
    """Article and script-log retention with the configured windows."""
    articles = cleanup_old_articles(session, settings.ARTICLE_RETENTION_DAYS)
    logs = cleanup_old_logs(session, settings.SCRIPT_LOG_RETENTION_DAYS)
    return CleanupResult(articles_deleted=articles, logs_deleted=logs)
