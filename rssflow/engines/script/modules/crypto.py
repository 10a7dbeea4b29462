"""
Crypto module for script engine: md5, sha256, base64_encode, base64_decode,
random_string, hmac.
"""

import base64
import hashlib
import hmac as _hmac
import secrets
from types import SimpleNamespace
from typing import Any

from ..errors import CapabilityContractError

HMAC_ALGORITHMS = frozenset({"sha1", "sha256", "sha512"})


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return str(value).encode("utf-8")


def make_crypto_module() -> Any:
    """Build the `crypto` object. Stateless; safe to build per invocation."""

    def md5(text: str) -> str:
        return hashlib.md5(_to_bytes(text)).hexdigest()

    def sha256(text: str) -> str:
        return hashlib.sha256(_to_bytes(text)).hexdigest()

    def base64_encode(text: str) -> str:
        return base64.b64encode(_to_bytes(text)).decode("ascii")

    def base64_decode(data: str) -> str:
        # binascii.Error is a ValueError subclass; scripts may catch either.
        return base64.b64decode(_to_bytes(data), validate=True).decode("utf-8")

    def random_string(length: int = 16) -> str:
        n = int(length)
        if n < 0:
            raise ValueError("length must be >= 0")
        return secrets.token_hex((n + 1) // 2)[:n]

    def hmac(algorithm: str, key: str, data: str) -> str:
        if algorithm not in HMAC_ALGORITHMS:
            raise CapabilityContractError(
                f"Unsupported HMAC algorithm: {algorithm!r}; "
                f"allowed: {', '.join(sorted(HMAC_ALGORITHMS))}"
            )
        return _hmac.new(_to_bytes(key), _to_bytes(data), algorithm).hexdigest()

    return SimpleNamespace(
        md5=md5,
        sha256=sha256,
        base64_encode=base64_encode,
        base64_decode=base64_decode,
        random_string=random_string,
        hmac=hmac,
    )
