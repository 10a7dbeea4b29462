"""
ScriptEngine: the single entry point for running feed scripts.

execute_script(script, article, raw_item=None) -> Verdict
    Sandbox run (executor.SandboxRuntime) + verdict contract (contract.validate_verdict).
    Does not write execution logs; the caller records the outcome.

validate_script_syntax(script) -> {"valid": bool, "error"?: str}
    Restricted compile without running. Editor lint, not a security check.
"""

import logging
from typing import Any

from .context import build_sandbox_config
from .contract import Verdict, validate_verdict
from .errors import ScriptExecutionError
from .executor import SandboxRuntime
from .sandbox import ENTRY_POINT, compile_script

_log = logging.getLogger(__name__)


class ScriptEngine:
    def __init__(
        self,
        *,
        runtime: SandboxRuntime | None = None,
        timeout: float | None = None,
    ) -> None:
        self._runtime = runtime or SandboxRuntime()
        self._timeout = timeout

    async def execute_script(
        self,
        script: str,
        article: Any,
        raw_item: Any = None,
        *,
        log_extra: dict[str, str] | None = None,
    ) -> Verdict:
        """
        Run script against article and return the validated verdict.
        Every failure is raised as ScriptExecutionError (or a subclass).
        """
        overrides: dict[str, Any] = {}
        if self._timeout is not None:
            overrides["timeout"] = self._timeout
        if log_extra:
            overrides["log_extra"] = log_extra
        config = build_sandbox_config(**overrides)
        try:
            raw = await self._runtime.run(script, article, raw_item, config=config)
            return validate_verdict(raw)
        except ScriptExecutionError as e:
            _log.info("%s", e)
            raise
        except Exception as e:
            _log.error("Script sandbox failed: %s", e, exc_info=True)
            raise ScriptExecutionError(f"{type(e).__name__}: {e}") from e

    def validate_script_syntax(self, script: str) -> dict[str, Any]:
        """Compile without running and check that the entry point is defined."""
        if not script or not script.strip():
            return {"valid": False, "error": "Script is empty"}
        try:
            compile_script(script, filename="<validate>")
        except SyntaxError as e:
            return {"valid": False, "error": str(e)}
        if f"def {ENTRY_POINT}" not in script:
            return {
                "valid": False,
                "error": f"Script must define a {ENTRY_POINT}(article, raw_item=None) function",
            }
        return {"valid": True}


_default_engine: ScriptEngine | None = None


def get_script_engine() -> ScriptEngine:
    global _default_engine
    if _default_engine is None:
        _default_engine = ScriptEngine()
    return _default_engine


async def execute_script(script: str, article: Any, raw_item: Any = None) -> Verdict:
    return await get_script_engine().execute_script(script, article, raw_item)


def validate_script_syntax(script: str) -> dict[str, Any]:
    return get_script_engine().validate_script_syntax(script)
