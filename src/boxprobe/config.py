# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Runtime settings for boxprobe."""

import os
from dataclasses import dataclass

from .version import __version__

DEFAULT_USER_AGENT = f"Blackbox Exporter/{__version__} (boxprobe)"
DEFAULT_ICMP_PAYLOAD = "Prometheus Blackbox Exporter"


def _float_env(name: str, default: float) -> float:
    try:
        value = os.getenv(name)
        return float(value) if value is not None else default
    except ValueError:
        return default


@dataclass
class ProberSettings:
    """Process-wide prober defaults."""

    config_file: str = "blackbox.yml"
    default_timeout: float = 10.0
    timeout_offset: float = 0.5
    user_agent: str = DEFAULT_USER_AGENT
    icmp_payload: str = DEFAULT_ICMP_PAYLOAD

    @classmethod
    def from_env(cls) -> "ProberSettings":
        """Create settings from environment variables (evaluated at call time)."""
        default_timeout = _float_env("BOXPROBE_DEFAULT_TIMEOUT", cls.default_timeout)
        if default_timeout <= 0:
            default_timeout = cls.default_timeout
        timeout_offset = _float_env("BOXPROBE_TIMEOUT_OFFSET", cls.timeout_offset)
        if timeout_offset < 0:
            timeout_offset = cls.timeout_offset
        return cls(
            config_file=os.getenv("BOXPROBE_CONFIG_FILE", cls.config_file),
            default_timeout=default_timeout,
            timeout_offset=timeout_offset,
            user_agent=os.getenv("BOXPROBE_USER_AGENT", cls.user_agent),
            icmp_payload=os.getenv("BOXPROBE_ICMP_PAYLOAD") or cls.icmp_payload,
        )

    def effective_timeout(self, module_timeout: float, scrape_timeout: float | None = None) -> float:
        """
        Resolve the deadline budget for one probe.

        The module timeout wins when set; a caller-supplied scrape timeout (minus the
        configured offset) caps it so results are returned before the caller gives up.
        """
        timeout = module_timeout if module_timeout > 0 else self.default_timeout
        if scrape_timeout is not None and scrape_timeout > 0:
            ceiling = max(scrape_timeout - self.timeout_offset, 0.0)
            if ceiling > 0:
                timeout = min(timeout, ceiling)
        return timeout


def load_settings() -> ProberSettings:
    """Load prober settings from environment with sensible defaults."""
    return ProberSettings.from_env()
