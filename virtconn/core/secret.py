# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/core/secret.py
"""
Opaque wrapper for passwords.

A Secret never renders its value through str(), repr(), format() or logging,
refuses to be pickled or copied into JSON, and compares in constant time.
Code that genuinely needs the value (profile store, remote adapters) calls
reveal() explicitly.
"""
from __future__ import annotations

import hmac
from typing import Any, Optional

MASK = "********"


class Secret:
    __slots__ = ("_value",)

    def __init__(self, value: Optional[str]) -> None:
        if isinstance(value, Secret):
            value = value.reveal()
        object.__setattr__(self, "_value", "" if value is None else str(value))

    @classmethod
    def coerce(cls, value: Any) -> Optional["Secret"]:
        """Wrap str/None/Secret input; None stays None."""
        if value is None:
            return None
        if isinstance(value, Secret):
            return value
        return cls(value)

    def reveal(self) -> str:
        return self._value

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("Secret is immutable")

    def __str__(self) -> str:
        return MASK

    def __repr__(self) -> str:
        return f"Secret('{MASK}')"

    def __format__(self, spec: str) -> str:
        return MASK

    def __bool__(self) -> bool:
        return bool(self._value)

    def __len__(self) -> int:
        return len(self._value)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Secret):
            return NotImplemented
        return hmac.compare_digest(self._value.encode("utf-8"), other._value.encode("utf-8"))

    def __hash__(self) -> int:
        return hash(("Secret", self._value))

    def __reduce__(self) -> Any:
        raise TypeError("Secret values cannot be pickled")

    def __copy__(self) -> "Secret":
        return self

    def __deepcopy__(self, memo: Any) -> "Secret":
        return self
