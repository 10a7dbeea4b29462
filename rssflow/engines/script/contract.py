"""
Verdict contract: the value a script's process_article() must return.

    {"action": "keep"}                              keep as stored
    {"action": "keep", "article": {"title": "X"}}   keep, overwrite title
    {"action": "filter", "reason": "off topic"}     drop the article

Any other keys are carried along as ``extras`` (e.g. ``{"webhook": True}``).
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .errors import ScriptContractError

VALID_ACTIONS = ("keep", "filter")


class KeepVerdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: Literal["keep"] = "keep"
    # Partial patch of Article View fields; None means "no changes"
    article: dict[str, Any] | None = None
    extras: dict[str, Any] = Field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"action": self.action}
        if self.article is not None:
            out["article"] = dict(self.article)
        out.update(self.extras)
        return out


class FilterVerdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: Literal["filter"] = "filter"
    reason: str | None = None
    extras: dict[str, Any] = Field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"action": self.action}
        if self.reason is not None:
            out["reason"] = self.reason
        out.update(self.extras)
        return out


Verdict = KeepVerdict | FilterVerdict


def validate_verdict(value: Any) -> Verdict:
    """
    Check a raw script result and return the typed verdict.

    Checks in order: result is an object; ``action`` is present; ``action`` is
    "keep" or "filter"; for keep, ``article`` is absent or an object.
    Raises ScriptContractError naming the failed check.
    """
    if not isinstance(value, dict):
        raise ScriptContractError(
            f"process_article must return an object, got {type(value).__name__}"
        )
    if "action" not in value or value["action"] is None:
        raise ScriptContractError("result is missing required field 'action'")
    action = value["action"]
    if action not in VALID_ACTIONS:
        raise ScriptContractError(
            f"result field 'action' must be \"keep\" or \"filter\", got {action!r}"
        )

    if action == "keep":
        extras = {k: v for k, v in value.items() if k not in ("action", "article")}
        if "article" not in value:
            return KeepVerdict(extras=extras)
        patch = value["article"]
        if not isinstance(patch, dict):
            raise ScriptContractError(
                f"result field 'article' must be an object, got {type(patch).__name__}"
            )
        return KeepVerdict(article=patch, extras=extras)

    reason = value.get("reason")
    extras = {k: v for k, v in value.items() if k not in ("action", "reason")}
    if reason is not None and not isinstance(reason, str):
        # Non-string reasons are informational only; keep them as extras.
        extras["reason"] = reason
        reason = None
    return FilterVerdict(reason=reason, extras=extras)
