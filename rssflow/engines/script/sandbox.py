"""
RestrictedPython sandbox for feed scripts.

Allowed: RestrictedPython safe_builtins, container/iteration helpers (dict,
list, set, min, max, sum, any, all, enumerate, sorted, ...), json, math and re
facades, datetime/date/time/timedelta, a restricted ``buffer`` (encode/decode only), a
``url`` helper, and the capability objects (http, webhook, crypto, llm, log).

Blocked: open, exec, eval, __import__, compile, os, subprocess, attribute
names starting with "_", and any attribute whose value is a module. Scripts
never hold a real module object, so they cannot walk to sys.modules.
"""

import builtins
import json
import math
import operator
import re
from datetime import date, datetime, time, timedelta
from types import ModuleType, SimpleNamespace
from typing import Any
from urllib.parse import parse_qs, quote, unquote, urlencode, urljoin, urlparse

from RestrictedPython import compile_restricted
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safe_builtins,
    safer_getattr,
)

ENTRY_POINT = "process_article"

# Python builtins not in safe_builtins that scripts commonly need
_EXTRA_BUILTIN_NAMES = (
    "list",
    "dict",
    "set",
    "frozenset",
    "tuple",
    "min",
    "max",
    "sum",
    "any",
    "all",
    "enumerate",
    "map",
    "filter",
    "reversed",
    "sorted",
    "isinstance",
)

_BUFFER_ENCODINGS = frozenset({"utf-8", "utf8", "ascii", "latin-1", "latin1"})

_INPLACE_OPS = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
    "|=": operator.ior,
    "&=": operator.iand,
    "^=": operator.ixor,
}


def _inplacevar(op: str, x: Any, y: Any) -> Any:
    fn = _INPLACE_OPS.get(op)
    if fn is None:
        raise SyntaxError(f"In-place operator {op!r} is not allowed")
    return fn(x, y)


def _make_safe_builtins() -> dict[str, Any]:
    """safe_builtins plus the container/iteration helpers scripts need."""
    safe = dict(safe_builtins)
    for name in _EXTRA_BUILTIN_NAMES:
        if name not in safe:
            safe[name] = getattr(builtins, name)
    return safe


def guarded_getattr(obj: Any, name: str, *args: Any) -> Any:
    """safer_getattr that also refuses to hand out module objects."""
    value = safer_getattr(obj, name, *args)
    if isinstance(value, ModuleType):
        raise AttributeError(f"access to module attribute {name!r} is not allowed")
    return value


def _make_guard_globals() -> dict[str, Any]:
    """Guards required by RestrictedPython's rewritten bytecode."""
    return {
        "_getattr_": guarded_getattr,
        "_getiter_": default_guarded_getiter,
        "_getitem_": default_guarded_getitem,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_inplacevar_": _inplacevar,
        "_write_": full_write_guard,
    }


def _check_encoding(encoding: str) -> str:
    enc = (encoding or "utf-8").lower()
    if enc not in _BUFFER_ENCODINGS:
        raise ValueError(f"Unsupported encoding: {encoding}")
    return enc


def make_buffer_module() -> Any:
    """``buffer``: text <-> bytes only. No file or memory views."""

    def encode(text: str, encoding: str = "utf-8") -> bytes:
        return str(text).encode(_check_encoding(encoding))

    def decode(data: bytes, encoding: str = "utf-8") -> str:
        if not isinstance(data, (bytes, bytearray)):
            raise TypeError("buffer.decode expects bytes")
        return bytes(data).decode(_check_encoding(encoding), errors="replace")

    def is_buffer(obj: Any) -> bool:
        return isinstance(obj, (bytes, bytearray))

    return SimpleNamespace(encode=encode, decode=decode, is_buffer=is_buffer)


def make_url_module() -> Any:
    """``url``: parse, join, quote/unquote, urlencode."""

    def parse(u: str) -> dict[str, Any]:
        p = urlparse(str(u))
        return {
            "scheme": p.scheme,
            "netloc": p.netloc,
            "hostname": p.hostname,
            "port": p.port,
            "path": p.path,
            "query": p.query,
            "fragment": p.fragment,
            "params": {k: v[0] if len(v) == 1 else v for k, v in parse_qs(p.query).items()},
        }

    return SimpleNamespace(
        parse=parse,
        join=urljoin,
        quote=quote,
        unquote=unquote,
        urlencode=urlencode,
    )


def make_json_module() -> Any:
    """``json``: loads and dumps only."""
    return SimpleNamespace(loads=json.loads, dumps=json.dumps, JSONDecodeError=json.JSONDecodeError)


def make_math_module() -> Any:
    """``math``: the public functions and constants of the math module."""
    return SimpleNamespace(
        **{
            name: getattr(math, name)
            for name in dir(math)
            if not name.startswith("_") and not isinstance(getattr(math, name), ModuleType)
        }
    )


_RE_FLAGS = ("IGNORECASE", "I", "MULTILINE", "M", "DOTALL", "S", "VERBOSE", "X", "ASCII", "A")


def make_re_module() -> Any:
    """``re``: matching helpers and flags. Patterns from compile() are ordinary re.Pattern objects."""
    return SimpleNamespace(
        search=re.search,
        match=re.match,
        fullmatch=re.fullmatch,
        findall=re.findall,
        finditer=re.finditer,
        sub=re.sub,
        subn=re.subn,
        split=re.split,
        compile=re.compile,
        escape=re.escape,
        error=re.error,
        **{flag: getattr(re, flag) for flag in _RE_FLAGS},
    )


def _make_extra_globals() -> dict[str, Any]:
    """Extra safe symbols: json, math, re, datetime family, buffer, url."""
    return {
        "json": make_json_module(),
        "math": make_math_module(),
        "re": make_re_module(),
        "datetime": datetime,
        "date": date,
        "time": time,
        "timedelta": timedelta,
        "buffer": make_buffer_module(),
        "url": make_url_module(),
    }


def compile_script(script: str, filename: str = "<script>") -> Any:
    """
    Compile script with RestrictedPython. Raises SyntaxError on failure.

    Returns a code object suitable for exec(bytecode, globals).
    """
    code = compile_restricted(script, filename, "exec")
    if code is None:
        raise SyntaxError("RestrictedPython: compile failed")
    return code


def build_restricted_globals(context_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Build the globals dict for exec(compiled, globals): safe builtins, guards,
    extra helpers, and context (article, raw_item, http, webhook, crypto, llm, log).
    """
    g: dict[str, Any] = {
        "__builtins__": _make_safe_builtins(),
        "__name__": "script",
    }
    g.update(_make_guard_globals())
    g.update(_make_extra_globals())
    g.update(context_dict)
    return g
