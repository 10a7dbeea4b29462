"""
Per-invocation sandbox configuration and script namespace.

SandboxConfig is plain data: it is built fresh for every call by
build_sandbox_config() and shipped to the sandbox process, where
ScriptContext turns it into capability objects. Nothing here is shared
between invocations.
"""

import logging
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict

from rssflow.core.config import settings

from .modules import (
    HttpTransport,
    make_crypto_module,
    make_http_module,
    make_llm_module,
    make_log_module,
    make_webhook_function,
)

ARTICLE_VIEW_FIELDS = (
    "id",
    "title",
    "link",
    "description",
    "content",
    "pub_date",
    "guid",
    "feed_id",
)


class ArticleView(BaseModel):
    """Read-only projection of one article as seen by a script."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    title: str = ""
    link: str = ""
    description: str = ""
    content: str = ""
    pub_date: str | None = None
    guid: str = ""
    feed_id: str | None = None

    @classmethod
    def from_article(cls, article: Any) -> "ArticleView":
        """Project a stored Article row, an ArticleView, or a mapping with the same keys."""
        if isinstance(article, ArticleView):
            return article
        if isinstance(article, Mapping):
            get = article.get
        else:
            def get(key: str, default: Any = None) -> Any:
                return getattr(article, key, default)

        pub = get("pub_date")
        if isinstance(pub, datetime):
            pub = pub.isoformat()
        ident = get("id")
        feed_id = get("feed_id")
        return cls(
            id=str(ident) if ident is not None else None,
            title=get("title") or "",
            link=get("link") or "",
            description=get("description") or "",
            content=get("content") or "",
            pub_date=str(pub) if pub is not None else None,
            guid=get("guid") or "",
            feed_id=str(feed_id) if feed_id is not None else None,
        )


class SandboxConfig(BaseModel):
    """Everything the sandbox process needs to build its capability objects."""

    model_config = ConfigDict(frozen=True)

    timeout: float = 5.0
    http_timeout: float = 10.0
    http_allowed_hosts: frozenset[str] = frozenset({"*"})
    http_block_private: bool = True
    webhook_user_agent: str = "RSS-Service-Webhook/1.0"
    llm_base_url: str | None = None
    llm_timeout: float = 30.0
    llm_default_model: str = "gpt-3.5-turbo"
    llm_default_embedding_model: str = "text-embedding-ada-002"
    llm_default_temperature: float = 0.7
    llm_default_max_tokens: int = 1000
    llm_max_tokens: int = 2000
    log_extra: dict[str, str] = {}


def build_sandbox_config(**overrides: Any) -> SandboxConfig:
    """Fresh config from settings; keyword overrides win (e.g. timeout=1, log_extra={...})."""
    values: dict[str, Any] = {
        "timeout": settings.SCRIPT_EXEC_TIMEOUT,
        "http_timeout": settings.SCRIPT_HTTP_TIMEOUT,
        "http_allowed_hosts": settings.script_http_allowed_hosts,
        "http_block_private": settings.SCRIPT_HTTP_BLOCK_PRIVATE,
        "webhook_user_agent": settings.SCRIPT_WEBHOOK_USER_AGENT,
        "llm_base_url": settings.SCRIPT_LLM_BASE_URL,
        "llm_timeout": settings.SCRIPT_LLM_TIMEOUT,
        "llm_default_model": settings.SCRIPT_LLM_DEFAULT_MODEL,
        "llm_default_embedding_model": settings.SCRIPT_LLM_DEFAULT_EMBEDDING_MODEL,
        "llm_default_temperature": settings.SCRIPT_LLM_DEFAULT_TEMPERATURE,
        "llm_default_max_tokens": settings.SCRIPT_LLM_DEFAULT_MAX_TOKENS,
        "llm_max_tokens": settings.SCRIPT_LLM_MAX_TOKENS,
    }
    values.update(overrides)
    return SandboxConfig(**values)


class ScriptContext:
    """
    Injects article, raw_item, http, webhook, crypto, llm, log into the script namespace.
    Owns the HTTP client used by http/webhook; call close() when the script ends.
    """

    def __init__(
        self,
        *,
        article: ArticleView,
        raw_item: Any = None,
        config: SandboxConfig,
        logger: logging.Logger | None = None,
        http_transport: Any = None,
        llm_client_factory: Any = None,
    ) -> None:
        self.article = MappingProxyType(article.model_dump())
        self.raw_item = raw_item
        self._transport = HttpTransport(
            timeout=config.http_timeout,
            allowed_hosts=config.http_allowed_hosts,
            block_private=config.http_block_private,
            transport=http_transport,
        )
        self.http = make_http_module(self._transport)
        self.webhook = make_webhook_function(
            self._transport, user_agent=config.webhook_user_agent
        )
        self.crypto = make_crypto_module()
        self.llm = make_llm_module(
            base_url=config.llm_base_url,
            timeout=config.llm_timeout,
            default_model=config.llm_default_model,
            default_embedding_model=config.llm_default_embedding_model,
            default_temperature=config.llm_default_temperature,
            default_max_tokens=config.llm_default_max_tokens,
            max_tokens_ceiling=config.llm_max_tokens,
            client_factory=llm_client_factory,
        )
        self.log = make_log_module(logger_instance=logger, extra=config.log_extra)

    def close(self) -> None:
        self._transport.close()

    def to_dict(self) -> dict[str, Any]:
        """Namespace for exec(compiled, globals)."""
        return {
            "article": self.article,
            "raw_item": self.raw_item,
            "http": self.http,
            "webhook": self.webhook,
            "crypto": self.crypto,
            "llm": self.llm,
            "log": self.log,
        }
