"""
LLM module for script engine: llm.create_client(api_key) -> client with
chat.completions.create(**params) and embeddings.create(**params).

Scripts bring their own API key. max_tokens is always clamped to
SCRIPT_LLM_MAX_TOKENS, whatever the script asks for.
"""

import logging
from types import SimpleNamespace
from typing import Any, Callable

from ..errors import CapabilityContractError

_log = logging.getLogger(__name__)

DEFAULT_CHAT_MODEL = "gpt-3.5-turbo"
DEFAULT_EMBEDDING_MODEL = "text-embedding-ada-002"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1000
MAX_TOKENS_CEILING = 2000

# Client options a script may set; anything else (http_client, default_headers, ...) is dropped
_ALLOWED_CLIENT_OPTIONS = frozenset({"organization", "project", "max_retries"})


def _openai_client(**kwargs: Any) -> Any:
    # Imported on first use: the SDK is slow to import and most scripts never call it.
    from openai import OpenAI

    return OpenAI(**kwargs)


def _to_plain(response: Any) -> Any:
    """SDK response objects -> dicts so scripts can index them and results pickle."""
    dump = getattr(response, "model_dump", None)
    if callable(dump):
        return dump()
    return response


def _api_failure(e: Exception) -> dict[str, Any]:
    return {
        "success": False,
        "error": str(e) or type(e).__name__,
        "status": getattr(e, "status_code", None),
    }


def clamp_chat_params(
    params: dict[str, Any],
    *,
    default_model: str = DEFAULT_CHAT_MODEL,
    default_temperature: float = DEFAULT_TEMPERATURE,
    default_max_tokens: int = DEFAULT_MAX_TOKENS,
    max_tokens_ceiling: int = MAX_TOKENS_CEILING,
) -> dict[str, Any]:
    """Fill defaults for model/temperature and clamp max_tokens to the ceiling."""
    out = dict(params)
    if not out.get("model"):
        out["model"] = default_model
    if out.get("temperature") is None:
        out["temperature"] = default_temperature
    requested = out.get("max_tokens") or default_max_tokens
    out["max_tokens"] = max(1, min(int(requested), max_tokens_ceiling))
    return out


def make_llm_module(
    *,
    base_url: str | None = None,
    timeout: float = 30.0,
    default_model: str = DEFAULT_CHAT_MODEL,
    default_embedding_model: str = DEFAULT_EMBEDDING_MODEL,
    default_temperature: float = DEFAULT_TEMPERATURE,
    default_max_tokens: int = DEFAULT_MAX_TOKENS,
    max_tokens_ceiling: int = MAX_TOKENS_CEILING,
    client_factory: Callable[..., Any] | None = None,
) -> Any:
    """
    Build the `llm` object: create_client(api_key, **options).
    client_factory defaults to openai.OpenAI; it receives api_key, base_url,
    timeout and the allowed options.
    """
    factory = client_factory or _openai_client

    def create_client(api_key: str, **options: Any) -> Any:
        if not api_key or not str(api_key).strip():
            raise CapabilityContractError("LLM API key must not be empty")
        kwargs = {k: v for k, v in options.items() if k in _ALLOWED_CLIENT_OPTIONS}
        client = factory(api_key=api_key, base_url=base_url, timeout=timeout, **kwargs)

        def chat_create(**params: Any) -> Any:
            try:
                req = clamp_chat_params(
                    params,
                    default_model=default_model,
                    default_temperature=default_temperature,
                    default_max_tokens=default_max_tokens,
                    max_tokens_ceiling=max_tokens_ceiling,
                )
                return _to_plain(client.chat.completions.create(**req))
            except Exception as e:
                _log.info("script chat completion failed: %s", e)
                return _api_failure(e)

        def embeddings_create(**params: Any) -> Any:
            req = dict(params)
            if not req.get("model"):
                req["model"] = default_embedding_model
            try:
                return _to_plain(client.embeddings.create(**req))
            except Exception as e:
                _log.info("script embeddings call failed: %s", e)
                return _api_failure(e)

        return SimpleNamespace(
            chat=SimpleNamespace(completions=SimpleNamespace(create=chat_create)),
            embeddings=SimpleNamespace(create=embeddings_create),
        )

    return SimpleNamespace(create_client=create_client)
