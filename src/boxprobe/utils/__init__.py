# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Utility exports."""

from .context import ProbeContext
from .matching import match_regexps

__all__ = ["ProbeContext", "match_regexps"]
