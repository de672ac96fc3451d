# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
boxprobe package entrypoint.

boxprobe runs active reachability probes (HTTP, TCP, DNS, ICMP echo) against
remote endpoints using named, hot-reloadable modules. Probers return structured
``ProbeResult`` values; ``boxprobe.exporter`` turns them into metric samples.
"""

from .config import ProberSettings, load_settings
from .errors import ConfigError, ErrorCategory, UnknownProberError
from .exporter import TextExposition, export, render_text
from .log import setup_logging
from .models import Config, Module, ProbeResult, ProberKind, load_config, parse_config
from .prober import ProbeEngine, SequenceCounter
from .runtime import BoxProbe
from .store import SafeConfig
from .version import __version__

__all__ = [
    "BoxProbe",
    "Config",
    "ConfigError",
    "ErrorCategory",
    "Module",
    "ProbeEngine",
    "ProbeResult",
    "ProberKind",
    "ProberSettings",
    "SafeConfig",
    "SequenceCounter",
    "TextExposition",
    "UnknownProberError",
    "__version__",
    "load_config",
    "load_settings",
    "parse_config",
    "render_text",
    "export",
    "setup_logging",
]
