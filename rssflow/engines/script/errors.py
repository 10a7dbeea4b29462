"""
Failures raised by the script engine.

Every engine-level failure is a ScriptExecutionError whose message starts with
"Script execution failed: " so callers can match the whole family at once.
Capability-level failures are values handed back into the script, except
CapabilityContractError, which a script may catch.
"""

from typing import Any

SCRIPT_FAILED_PREFIX = "Script execution failed: "


class ScriptExecutionError(Exception):
    """Base failure for one script invocation."""

    def __init__(self, reason: str, *, detail: str | None = None) -> None:
        super().__init__(f"{SCRIPT_FAILED_PREFIX}{reason}")
        self.reason = reason
        self.detail = detail


class ScriptContractError(ScriptExecutionError):
    """Entry point missing or result does not follow the verdict contract."""

    pass


class ScriptTimeoutError(ScriptExecutionError, TimeoutError):
    """Raised when script execution exceeds SCRIPT_EXEC_TIMEOUT."""

    def __init__(self, timeout: float, *, detail: str | None = None) -> None:
        super().__init__(f"timed out after {timeout:g}s", detail=detail)
        self.timeout = timeout


class ScriptRuntimeError(ScriptExecutionError):
    """Uncaught exception inside user code. detail holds the traceback text."""

    pass


class CapabilityContractError(ValueError):
    """A capability was called with a disallowed argument (algorithm, missing key)."""

    pass


def error_from_child(kind: str, message: str, detail: Any = None) -> ScriptExecutionError:
    """Rebuild the typed failure reported by a sandbox child process."""
    if kind == "contract":
        return ScriptContractError(message, detail=detail)
    return ScriptRuntimeError(message, detail=detail)
