"""
Webhook binding: ``webhook(url, data, options=None)``.

JSON POST by default. ``options`` may carry ``method``, ``headers`` and
``timeout``; caller headers override the defaults.
"""

from typing import Any, Callable

from .http import HttpTransport, failure

DEFAULT_WEBHOOK_USER_AGENT = "RSS-Service-Webhook/1.0"


def make_webhook_function(
    transport: HttpTransport,
    *,
    user_agent: str = DEFAULT_WEBHOOK_USER_AGENT,
) -> Callable[..., dict[str, Any]]:
    def webhook(url: str, data: Any = None, options: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            opts = dict(options or {})
            custom = dict(opts.get("headers") or {})
            overridden = {str(k).lower() for k in custom}
        except (TypeError, ValueError) as e:
            return failure(f"Invalid webhook options: {e}")
        headers = {
            k: v
            for k, v in (("Content-Type", "application/json"), ("User-Agent", user_agent))
            if k.lower() not in overridden
        }
        headers.update(custom)
        return transport.request(
            opts.get("method") or "POST",
            url,
            headers=headers,
            data=data,
            timeout=opts.get("timeout"),
        )

    return webhook
