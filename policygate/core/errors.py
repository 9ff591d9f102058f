from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class PolicyGateError(Exception):
    code: str
    message: str
    data: dict[str, Any] | None = None

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class MalformedURL(PolicyGateError):
    pass


class InvalidConfig(PolicyGateError):
    pass


class PolicyDenied(PolicyGateError):
    pass
