"""
Feed, article, script and script-log tables.

Feed and Article are kept to the fields the script pipeline reads and writes;
subscription management and feed parsing live outside this package.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import Column, DateTime, Text
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    """Timezone-aware UTC now (replaces deprecated datetime.utcnow())."""
    return datetime.now(timezone.utc)


class FeedStatusEnum(str, Enum):
    """Outcome of the last fetch of a feed."""

    ACTIVE = "active"
    ERROR = "error"
    PAUSED = "paused"


# ---------------------------------------------------------------------------
# Script - user-authored article transformation
# ---------------------------------------------------------------------------


class Script(SQLModel, table=True):
    __tablename__ = "script"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID | None = Field(default=None, index=True)
    name: str = Field(max_length=255)
    description: str | None = Field(default=None, max_length=512)
    content: str = Field(sa_column=Column(Text, nullable=False))
    is_template: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


# ---------------------------------------------------------------------------
# Feed / Article
# ---------------------------------------------------------------------------


class Feed(SQLModel, table=True):
    __tablename__ = "feed"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID | None = Field(default=None, index=True)
    title: str = Field(max_length=255)
    url: str = Field(max_length=2048)
    script_id: uuid.UUID | None = Field(
        default=None,
        foreign_key="script.id",
        index=True,
        ondelete="SET NULL",
    )
    status: FeedStatusEnum = Field(default=FeedStatusEnum.ACTIVE, index=True)
    is_active: bool = Field(default=True)
    last_fetch_at: datetime | None = Field(default=None)
    error_message: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(default_factory=_utc_now)


class Article(SQLModel, table=True):
    __tablename__ = "article"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    feed_id: uuid.UUID = Field(
        foreign_key="feed.id", nullable=False, index=True, ondelete="CASCADE"
    )
    title: str = Field(default="", max_length=1024)
    link: str = Field(default="", max_length=2048)
    description: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    content: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    pub_date: datetime | None = Field(default=None)
    guid: str = Field(default="", max_length=2048, index=True)
    is_processed: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    updated_at: datetime = Field(default_factory=_utc_now)


# ---------------------------------------------------------------------------
# ScriptLog - one row per script invocation (success or failure)
# ---------------------------------------------------------------------------


class ScriptLog(SQLModel, table=True):
    __tablename__ = "script_log"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    feed_id: uuid.UUID = Field(index=True)
    script_content: str | None = Field(default=None, sa_column=Column(Text))
    execution_result: str | None = Field(
        default=None, sa_column=Column(Text), description="JSON-encoded verdict"
    )
    error_message: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(
        default_factory=_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )


class ScriptLogPublic(SQLModel):
    id: uuid.UUID
    feed_id: uuid.UUID
    script_content: str | None
    execution_result: dict[str, Any] | None
    error_message: str | None
    created_at: datetime
