"""
Capability bindings injected into the script sandbox: http, webhook, crypto, llm, log.
"""

from rssflow.engines.script.modules.crypto import make_crypto_module
from rssflow.engines.script.modules.http import HttpTransport, make_http_module
from rssflow.engines.script.modules.llm import make_llm_module
from rssflow.engines.script.modules.log import make_log_module
from rssflow.engines.script.modules.webhook import make_webhook_function

__all__ = [
    "HttpTransport",
    "make_http_module",
    "make_webhook_function",
    "make_crypto_module",
    "make_llm_module",
    "make_log_module",
]
