# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Header utilities.

HTTP header field names are case-insensitive (RFC 9110). Module configuration keeps
headers as an ordered plain mapping in whatever casing the operator wrote, so lookups
here never assume a canonical form.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass


def find_header(headers: Mapping[str, str] | None, name: str) -> tuple[str, str] | None:
    """Return the first ``(key, value)`` whose key matches ``name`` case-insensitively."""
    if not headers or not name:
        return None
    lower = name.lower()
    for key, value in headers.items():
        if key is None:
            continue
        if str(key).strip().lower() == lower:
            return str(key), "" if value is None else str(value)
    return None


def is_host_header(name: str) -> bool:
    return name.strip().title() == "Host"


@dataclass(frozen=True)
class EncodingQuality:
    encoding: str
    quality: float


def _parse_quality(raw: str) -> float:
    raw = raw.strip()
    if raw.startswith("q="):
        raw = raw[2:]
    try:
        return round(float(raw), 3)
    except ValueError:
        return 0.0


def parse_accept_encoding(value: str) -> list[EncodingQuality]:
    """
    Parse an ``Accept-Encoding`` value into entries sorted by descending quality.

    Entries without a weight get ``q=1``; an unparsable weight counts as ``q=0``.
    The sort is stable, so equal weights keep the order they were written in.
    """
    entries: list[EncodingQuality] = []
    for part in value.split(","):
        idx = part.rfind(";")
        if idx == -1:
            entries.append(EncodingQuality(part.strip(), 1.0))
        else:
            entries.append(EncodingQuality(part[:idx].strip(), _parse_quality(part[idx + 1 :])))
    return sorted(entries, key=lambda entry: entry.quality, reverse=True)


def is_compression_accept_encoding_valid(encoding: str, accept_encoding: str) -> bool:
    """
    Check that a response compression expectation agrees with an ``Accept-Encoding`` header.

    The highest-weighted entry naming the encoding (or ``*``) decides; a zero weight is an
    explicit rejection. No expectation, or no header, is always consistent.
    """
    if not encoding or not accept_encoding:
        return True
    for entry in parse_accept_encoding(accept_encoding):
        if entry.encoding == encoding or entry.encoding == "*":
            return entry.quality > 0
    return False


__all__ = [
    "EncodingQuality",
    "find_header",
    "is_compression_accept_encoding_valid",
    "is_host_header",
    "parse_accept_encoding",
]
