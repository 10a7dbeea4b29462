"""
Script engine (Python, RestrictedPython) for per-article feed scripts.

Exports: ScriptEngine, execute_script, validate_script_syntax, verdict types
and the failure classes.
"""

from .context import ArticleView, SandboxConfig, ScriptContext, build_sandbox_config
from .contract import FilterVerdict, KeepVerdict, Verdict, validate_verdict
from .engine import ScriptEngine, execute_script, get_script_engine, validate_script_syntax
from .errors import (
    CapabilityContractError,
    ScriptContractError,
    ScriptExecutionError,
    ScriptRuntimeError,
    ScriptTimeoutError,
)
from .executor import SandboxRuntime

__all__ = [
    "ArticleView",
    "CapabilityContractError",
    "FilterVerdict",
    "KeepVerdict",
    "SandboxConfig",
    "SandboxRuntime",
    "ScriptContext",
    "ScriptContractError",
    "ScriptEngine",
    "ScriptExecutionError",
    "ScriptRuntimeError",
    "ScriptTimeoutError",
    "Verdict",
    "build_sandbox_config",
    "execute_script",
    "get_script_engine",
    "validate_script_syntax",
    "validate_verdict",
]
