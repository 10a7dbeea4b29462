"""
Engines: Script (RestrictedPython) for per-article feed scripts.
"""

from rssflow.engines.script import ScriptEngine, execute_script, validate_script_syntax

__all__ = [
    "ScriptEngine",
    "execute_script",
    "validate_script_syntax",
]
