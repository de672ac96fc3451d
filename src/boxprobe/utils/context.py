# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Per-probe deadline context.

Every prober receives a ``ProbeContext`` carrying the absolute monotonic deadline
derived from the module timeout. Blocking calls size their own timeouts from
``remaining()`` so a probe never outlives its budget.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from ..config import ProberSettings, load_settings


@dataclass(frozen=True)
class ProbeContext:
    deadline: float
    settings: ProberSettings = field(default_factory=load_settings)

    @classmethod
    def with_timeout(cls, timeout: float, settings: ProberSettings | None = None) -> ProbeContext:
        return cls(deadline=time.monotonic() + timeout, settings=settings or load_settings())

    def remaining(self) -> float:
        """Seconds left before the deadline, never negative."""
        return max(self.deadline - time.monotonic(), 0.0)

    def expired(self) -> bool:
        return time.monotonic() >= self.deadline


__all__ = ["ProbeContext"]
