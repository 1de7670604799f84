from __future__ import annotations

from typing import Any

FROZEN_REASON_CODES: frozenset[str] = frozenset(
    {
        "unknown_node",
        "relation_unsortable",
        "data_unavailable",
        "invalid_travel_mode",
    }
)


class RouterError(RuntimeError):
    default_reason_code = "data_unavailable"

    def __init__(
        self,
        message: str,
        *,
        reason_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.reason_code = normalize_reason_code(
            reason_code or self.default_reason_code,
            default=self.default_reason_code,
        )
        self.details = details

    def __str__(self) -> str:
        return self.message


class UnknownNodeError(RouterError, KeyError):
    default_reason_code = "unknown_node"


class DataUnavailableError(RouterError):
    default_reason_code = "data_unavailable"


class InvalidTravelModeError(RouterError, ValueError):
    default_reason_code = "invalid_travel_mode"


def normalize_reason_code(reason_code: str, *, default: str = "data_unavailable") -> str:
    code = str(reason_code or "").strip()
    if code in FROZEN_REASON_CODES:
        return code
    return default
