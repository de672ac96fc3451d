# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Regexp match helpers shared by the HTTP, DNS and TCP validators."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from ..models.regexp import Regexp

logger = logging.getLogger(__name__)


def _first_forbidden(text: str, patterns: Iterable[Regexp]) -> Regexp | None:
    """Return the first pattern that matches ``text``, if any."""
    for pattern in patterns:
        if pattern.matches(text):
            return pattern
    return None


def _first_missing(text: str, patterns: Iterable[Regexp]) -> Regexp | None:
    """Return the first pattern that does not match ``text``, if any."""
    for pattern in patterns:
        if not pattern.matches(text):
            return pattern
    return None


def match_regexps(
    text: str,
    fail_if_matches: Iterable[Regexp],
    fail_if_not_matches: Iterable[Regexp],
) -> tuple[bool, str]:
    """
    Evaluate must-not-match then must-match lists against ``text``.

    Returns ``(ok, reason)``; stops at the first violated pattern.
    """
    hit = _first_forbidden(text, fail_if_matches)
    if hit is not None:
        logger.debug("Text matched forbidden regexp %r", hit.source)
        return False, f"matched forbidden regexp {hit.source!r}"
    miss = _first_missing(text, fail_if_not_matches)
    if miss is not None:
        logger.debug("Text did not match required regexp %r", miss.source)
        return False, f"did not match required regexp {miss.source!r}"
    return True, ""


__all__ = ["match_regexps"]
