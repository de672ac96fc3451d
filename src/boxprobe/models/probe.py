# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Probe result model."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..errors import ErrorCategory, error_category_to_reason


@dataclass
class ProbeResult:
    """
    Outcome of a single probe attempt.

    ``metrics`` holds the protocol-specific measurements keyed by their exported
    name. Probers fill it as they go, so an early failure still carries whatever
    was measured before it.
    """

    success: bool = False
    diagnostic: str = ""
    category: ErrorCategory = ErrorCategory.NONE
    metrics: dict[str, float] = field(default_factory=dict)
    duration_seconds: float = 0.0

    def fail(self, diagnostic: str, category: ErrorCategory) -> ProbeResult:
        self.success = False
        self.diagnostic = diagnostic
        self.category = category
        return self

    def succeed(self) -> ProbeResult:
        self.success = True
        self.diagnostic = ""
        self.category = ErrorCategory.NONE
        return self

    def set(self, name: str, value: float | int | bool) -> None:
        self.metrics[name] = float(value)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "diagnostic": self.diagnostic,
            "category": self.category.value,
            "reason": error_category_to_reason(self.category),
            "duration_seconds": self.duration_seconds,
            "metrics": dict(self.metrics),
        }


__all__ = ["ProbeResult"]
