"""
Log module for script engine: info, warn, error, debug.
"""

import logging
from types import SimpleNamespace
from typing import Any

logger = logging.getLogger("rssflow.script")


def make_log_module(
    *,
    logger_instance: logging.Logger | None = None,
    extra: dict[str, Any] | None = None,
) -> Any:
    """Build the `log` object: info, warn, error, debug. extra (e.g. feed_id) is passed to logger as context."""
    log = logger_instance or logger
    ext = extra or {}

    def _log(level: int, msg: Any, *args: Any) -> None:
        kwargs: dict[str, Any] = {}
        if ext:
            kwargs["extra"] = dict(ext)
        log.log(level, "[Script] " + str(msg), *args, **kwargs)

    def info(msg: Any, *args: Any) -> None:
        _log(logging.INFO, msg, *args)

    def warn(msg: Any, *args: Any) -> None:
        _log(logging.WARNING, msg, *args)

    def error(msg: Any, *args: Any) -> None:
        _log(logging.ERROR, msg, *args)

    def debug(msg: Any, *args: Any) -> None:
        _log(logging.DEBUG, msg, *args)

    return SimpleNamespace(info=info, warn=warn, error=error, debug=debug)
