"""Phone number normalisation."""

from __future__ import annotations

import re

_NON_DIGIT = re.compile(r"[^\d+]")
_E164 = re.compile(r"^\+\d{8,15}$")
_NG_LOCAL = re.compile(r"^0\d{10}$")
_NG_MOBILE = re.compile(r"^(70|80|81|90|91)\d{8}$")
_US_TEN = re.compile(r"^\d{10}$")


def to_e164(raw: str | None) -> str | None:
    """Normalise ``raw`` to E.164, or ``None`` when it cannot be trusted."""
    if not raw:
        return None
    value = _NON_DIGIT.sub("", str(raw).strip())
    if value.startswith("+"):
        return value if _E164.match(value) else None
    if _NG_LOCAL.match(value):
        return "+234" + value[1:]
    if _NG_MOBILE.match(value):
        return "+234" + value
    if _US_TEN.match(value):
        return "+1" + value
    return None
