"""
SandboxRuntime: run one script against one article in a fresh child process.

The child compiles the script with RestrictedPython, executes it with the
ScriptContext namespace and calls process_article(article, raw_item). The
parent waits at most config.timeout seconds (wall clock, including child
start-up and any HTTP/LLM calls the script makes), then kills the child.
An in-flight capability call dies with the child; its result is never seen.

Script log lines (log.info(...) etc.) are collected in the child and replayed
on the parent's loggers once the result arrives.
"""

import asyncio
import inspect
import json
import logging
import math
import multiprocessing
import traceback
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from rssflow.core.config import settings

from .context import ArticleView, SandboxConfig, ScriptContext, build_sandbox_config
from .errors import (
    ScriptContractError,
    ScriptExecutionError,
    ScriptRuntimeError,
    ScriptTimeoutError,
    error_from_child,
)
from .sandbox import ENTRY_POINT, build_restricted_globals, compile_script

try:
    import resource
except ImportError:  # not available on Windows
    resource = None  # type: ignore[assignment]

_log = logging.getLogger(__name__)

_KILL_GRACE_SECONDS = 1.0
_MAX_LOG_RECORDS = 200


def _json_default(o: Any) -> Any:
    if isinstance(o, Mapping):
        return dict(o)
    if isinstance(o, (set, frozenset)):
        return list(o)
    if isinstance(o, (datetime, date)):
        return o.isoformat()
    if isinstance(o, (bytes, bytearray)):
        return bytes(o).decode("utf-8", errors="replace")
    return str(o)


def normalize_result(value: Any) -> Any:
    """JSON round-trip so the result can cross the process boundary and be logged."""
    return json.loads(json.dumps(value, default=_json_default))


def _entry_args(fn: Any, article: Any, raw_item: Any) -> tuple[Any, ...]:
    """(article, raw_item) when the entry point takes two positional args, else (article,)."""
    try:
        params = inspect.signature(fn).parameters.values()
    except (TypeError, ValueError):
        return (article, raw_item)
    positional = 0
    for p in params:
        if p.kind is inspect.Parameter.VAR_POSITIONAL:
            return (article, raw_item)
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            positional += 1
    return (article, raw_item) if positional >= 2 else (article,)


def run_script(
    script: str,
    article: ArticleView,
    raw_item: Any,
    config: SandboxConfig,
    *,
    http_transport: Any = None,
    llm_client_factory: Any = None,
) -> Any:
    """
    Compile and run script in the current process; return the normalized result.

    This is the body of the sandbox process. It has no timeout of its own.
    """
    try:
        code = compile_script(script)
    except SyntaxError as e:
        raise ScriptRuntimeError(f"SyntaxError: {e}") from e

    ctx = ScriptContext(
        article=article,
        raw_item=raw_item,
        config=config,
        http_transport=http_transport,
        llm_client_factory=llm_client_factory,
    )
    try:
        g = build_restricted_globals(ctx.to_dict())
        exec(code, g)  # noqa: S102 - restricted environment
        fn = g.get(ENTRY_POINT)
        if not callable(fn):
            raise ScriptContractError(
                f"script must define a {ENTRY_POINT}(article, raw_item=None) function"
            )
        result = fn(*_entry_args(fn, ctx.article, ctx.raw_item))
        return normalize_result(result)
    except ScriptExecutionError:
        raise
    except Exception as e:
        raise ScriptRuntimeError(
            f"{type(e).__name__}: {e}", detail=traceback.format_exc()
        ) from e
    finally:
        ctx.close()


class _RecordCollector(logging.Handler):
    """Keeps log records emitted in the sandbox process so the parent can replay them."""

    def __init__(self) -> None:
        super().__init__(logging.DEBUG)
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        if len(self.records) >= _MAX_LOG_RECORDS:
            return
        # Render now: args and exc_info may not pickle.
        record.msg = record.getMessage()
        record.args = None
        record.exc_info = None
        self.records.append(record)


def _install_log_collector() -> _RecordCollector:
    collector = _RecordCollector()
    root = logging.getLogger("rssflow")
    root.handlers = [collector]
    root.setLevel(logging.DEBUG)
    root.propagate = False
    return collector


def _apply_cpu_limit(timeout: float) -> None:
    """RLIMIT_CPU backstop in case the parent is gone and cannot kill us."""
    if resource is None:
        return
    seconds = int(math.ceil(timeout)) + 1
    try:
        resource.setrlimit(resource.RLIMIT_CPU, (seconds, seconds + 1))
    except (ValueError, OSError) as e:
        _log.debug("could not set RLIMIT_CPU: %s", e)


def _child_main(
    conn: Any,
    script: str,
    article: ArticleView,
    raw_item: Any,
    config: SandboxConfig,
) -> None:
    collector = _install_log_collector()
    _apply_cpu_limit(config.timeout)
    try:
        payload: tuple[str, Any, Any] = ("ok", run_script(script, article, raw_item, config), None)
    except ScriptContractError as e:
        payload = ("contract", e.reason, e.detail)
    except ScriptExecutionError as e:
        payload = ("error", e.reason, e.detail)
    except BaseException as e:  # SystemExit etc. raised by the script
        payload = ("error", f"{type(e).__name__}: {e}", traceback.format_exc())
    try:
        conn.send((*payload, collector.records))
    finally:
        conn.close()


def _replay_records(records: list[logging.LogRecord]) -> None:
    for record in records:
        lg = logging.getLogger(record.name)
        if lg.isEnabledFor(record.levelno):
            lg.handle(record)


def _reap(proc: Any, *, wait: float) -> None:
    proc.join(wait)
    if proc.is_alive():
        proc.kill()
        proc.join(_KILL_GRACE_SECONDS)
    if proc.exitcode is not None:
        proc.close()


class SandboxRuntime:
    """
    Run a Python script in a RestrictedPython sandbox inside a throwaway process.

    One process per call; nothing is pooled or reused between invocations.
    """

    def __init__(self, *, start_method: str | None = None) -> None:
        self._start_method = start_method or settings.SCRIPT_PROCESS_START_METHOD

    async def run(
        self,
        script: str,
        article: Any,
        raw_item: Any = None,
        *,
        config: SandboxConfig | None = None,
    ) -> Any:
        """
        Run script against article and return the raw (normalized) result.
        Raises ScriptTimeoutError, ScriptContractError or ScriptRuntimeError.
        """
        cfg = config or build_sandbox_config()
        view = ArticleView.from_article(article)
        return await asyncio.to_thread(self._run_blocking, script, view, raw_item, cfg)

    def _run_blocking(
        self,
        script: str,
        view: ArticleView,
        raw_item: Any,
        cfg: SandboxConfig,
    ) -> Any:
        mp = multiprocessing.get_context(self._start_method)
        recv_conn, send_conn = mp.Pipe(duplex=False)
        proc = mp.Process(
            target=_child_main,
            args=(send_conn, script, view, raw_item, cfg),
            name="rssflow-script",
            daemon=True,
        )
        try:
            proc.start()
        except Exception:
            recv_conn.close()
            send_conn.close()
            raise
        # Parent keeps only the read end so a dead child shows up as EOF.
        send_conn.close()

        timed_out = False
        try:
            if not recv_conn.poll(cfg.timeout):
                timed_out = True
                raise ScriptTimeoutError(cfg.timeout)
            try:
                kind, value, detail, records = recv_conn.recv()
            except EOFError:
                proc.join(_KILL_GRACE_SECONDS)
                raise ScriptRuntimeError(
                    f"sandbox process exited unexpectedly (exit code {proc.exitcode})"
                ) from None
        finally:
            recv_conn.close()
            _reap(proc, wait=0 if timed_out else _KILL_GRACE_SECONDS)

        _replay_records(records)
        if kind == "ok":
            return value
        raise error_from_child(kind, value, detail)
