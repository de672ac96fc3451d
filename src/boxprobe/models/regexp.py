# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Compiled regular expression that keeps its source text."""

from __future__ import annotations

import re
from typing import Any

from pydantic import GetCoreSchemaHandler
from pydantic_core import core_schema


class Regexp:
    """
    A compiled pattern that marshals back to the text it was built from.

    Equality and hashing use the source text so that two loads of the same
    document compare equal regardless of compiled state.
    """

    __slots__ = ("source", "_compiled")

    def __init__(self, source: str = ""):
        self.source = source
        try:
            self._compiled = re.compile(source)
        except re.error as exc:
            raise ValueError(f'"Could not compile regular expression" regexp="{source}"') from exc

    @property
    def pattern(self) -> re.Pattern[str]:
        return self._compiled

    def search(self, text: str) -> re.Match[str] | None:
        return self._compiled.search(text)

    def matches(self, text: str) -> bool:
        return self._compiled.search(text) is not None

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Regexp):
            return self.source == other.source
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.source)

    def __str__(self) -> str:
        return self.source

    def __repr__(self) -> str:
        return f"Regexp({self.source!r})"

    @classmethod
    def _validate(cls, value: Any) -> Regexp:
        if isinstance(value, Regexp):
            return value
        if not isinstance(value, str):
            raise ValueError(f"regexp must be a string, got {type(value).__name__}")
        return cls(value)

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: GetCoreSchemaHandler) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls._validate,
            serialization=core_schema.plain_serializer_function_ser_schema(str, when_used="always"),
        )


__all__ = ["Regexp"]
