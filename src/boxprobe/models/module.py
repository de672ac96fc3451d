# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Typed probe configuration.

A configuration document maps module names to ``Module`` definitions. Every rule that
can be decided without touching the network is enforced here, at load time, so a
prober only ever sees a module that already passed validation.
"""

from __future__ import annotations

import json
import re
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal

import dns.rcode
import dns.rdataclass
import dns.rdatatype
import yaml
from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    SecretStr,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)

from ..errors import config_error, config_error_from_validation
from ..http.headers import find_header, is_compression_accept_encoding_valid
from .regexp import Regexp

SECRET_PLACEHOLDER = "<secret>"

_DURATION_RE = re.compile(
    r"^(?:(?P<y>\d+)y)?(?:(?P<w>\d+)w)?(?:(?P<d>\d+)d)?(?:(?P<h>\d+)h)?"
    r"(?:(?P<m>\d+)m)?(?:(?P<s>\d+)s)?(?:(?P<ms>\d+)ms)?$"
)
_DURATION_UNITS = (
    ("y", 365 * 24 * 3600.0),
    ("w", 7 * 24 * 3600.0),
    ("d", 24 * 3600.0),
    ("h", 3600.0),
    ("m", 60.0),
    ("s", 1.0),
    ("ms", 0.001),
)


def parse_duration(value: Any) -> float:
    """Parse a Prometheus-style duration (``1m30s``, ``500ms``) or a number of seconds."""
    if isinstance(value, bool):
        raise ValueError(f"not a valid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if text in {"", "0"}:
            return 0.0
        match = _DURATION_RE.match(text)
        if not match or not any(match.groupdict().values()):
            raise ValueError(f"not a valid duration string: {value!r}")
        seconds = sum(float(match.group(unit) or 0) * scale for unit, scale in _DURATION_UNITS)
    else:
        raise ValueError(f"not a valid duration: {value!r}")
    if seconds < 0:
        raise ValueError("duration cannot be negative")
    return seconds


def format_duration(seconds: float) -> str:
    """Render seconds back into the shortest duration string."""
    millis = int(round(seconds * 1000))
    if millis == 0:
        return "0s"
    parts: list[str] = []
    for unit, scale in _DURATION_UNITS:
        unit_ms = int(scale * 1000)
        count, millis = divmod(millis, unit_ms)
        if count:
            parts.append(f"{count}{unit}")
    return "".join(parts)


Duration = Annotated[float, BeforeValidator(parse_duration), PlainSerializer(format_duration, return_type=str)]
IPProtocol = Literal["ip4", "ip6"]


class ProberKind(str, Enum):
    HTTP = "http"
    TCP = "tcp"
    DNS = "dns"
    ICMP = "icmp"


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class TLSConfig(_Strict):
    """Client TLS options, turned into an ``ssl.SSLContext`` by ``boxprobe.http.tls``."""

    ca_file: str = ""
    cert_file: str = ""
    key_file: str = ""
    server_name: str = ""
    insecure_skip_verify: bool = False
    min_version: Literal["", "TLS10", "TLS11", "TLS12", "TLS13"] = ""

    @model_validator(mode="after")
    def _check_key_pair(self) -> TLSConfig:
        if bool(self.cert_file) != bool(self.key_file):
            raise ValueError("exactly one of key or cert file specified")
        return self


class BasicAuth(_Strict):
    username: str = ""
    password: SecretStr | None = None
    password_file: str = ""

    @field_serializer("password")
    def _hide_password(self, value: SecretStr | None) -> str | None:
        return SECRET_PLACEHOLDER if value is not None else None

    @model_validator(mode="after")
    def _check_password(self) -> BasicAuth:
        if self.password is not None and self.password_file:
            raise ValueError("at most one of basic_auth password & password_file must be configured")
        return self


class HTTPClientConfig(_Strict):
    basic_auth: BasicAuth | None = None
    bearer_token: SecretStr | None = None
    bearer_token_file: str = ""
    tls_config: TLSConfig = Field(default_factory=TLSConfig)
    proxy_url: str = ""
    follow_redirects: bool = True

    @field_serializer("bearer_token")
    def _hide_token(self, value: SecretStr | None) -> str | None:
        return SECRET_PLACEHOLDER if value is not None else None

    @model_validator(mode="after")
    def _check_auth(self) -> HTTPClientConfig:
        if self.bearer_token is not None and self.bearer_token_file:
            raise ValueError("at most one of bearer_token & bearer_token_file must be configured")
        if self.basic_auth is not None and (self.bearer_token is not None or self.bearer_token_file):
            raise ValueError("at most one of basic_auth, bearer_token & bearer_token_file must be configured")
        return self


class HeaderMatch(_Strict):
    header: str = ""
    regexp: Regexp | None = None
    allow_missing: bool = False

    @model_validator(mode="after")
    def _check_matcher(self) -> HeaderMatch:
        if not self.header:
            raise ValueError("header name must be set for HTTP header matchers")
        if self.regexp is None or not self.regexp.source:
            raise ValueError("regexp must be set for HTTP header matchers")
        return self


class HTTPProbe(_Strict):
    valid_status_codes: list[int] = Field(default_factory=list)
    valid_http_versions: list[str] = Field(default_factory=list)
    protocol: Literal["tcp", "icmp"] = "tcp"
    preferred_ip_protocol: IPProtocol = "ip6"
    ip_protocol_fallback: bool = True
    no_follow_redirects: bool = False
    fail_if_ssl: bool = False
    fail_if_not_ssl: bool = False
    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    fail_if_body_matches_regexp: list[Regexp] = Field(default_factory=list)
    fail_if_body_not_matches_regexp: list[Regexp] = Field(default_factory=list)
    fail_if_header_matches: list[HeaderMatch] = Field(default_factory=list)
    fail_if_header_not_matches: list[HeaderMatch] = Field(default_factory=list)
    body: str = ""
    body_file: str = ""
    compression: str = ""
    http_client_config: HTTPClientConfig = Field(default_factory=HTTPClientConfig)

    @field_validator("method")
    @classmethod
    def _default_method(cls, value: str) -> str:
        return value or "GET"

    @model_validator(mode="after")
    def _check_probe(self) -> HTTPProbe:
        if self.body and self.body_file:
            raise ValueError("setting body and body_file both are not allowed")
        found = find_header(self.headers, "Accept-Encoding")
        if found is not None and not is_compression_accept_encoding_valid(self.compression, found[1]):
            key, value = found
            raise ValueError(f'invalid configuration "{key}: {value}", "compression: {self.compression}"')
        return self

    @property
    def follow_redirects(self) -> bool:
        return self.http_client_config.follow_redirects and not self.no_follow_redirects

    @property
    def has_body_matchers(self) -> bool:
        return bool(self.fail_if_body_matches_regexp or self.fail_if_body_not_matches_regexp)


class QueryResponse(_Strict):
    expect: Regexp | None = None
    send: str = ""
    starttls: bool = False


class TCPProbe(_Strict):
    preferred_ip_protocol: IPProtocol = "ip6"
    ip_protocol_fallback: bool = True
    source_ip_address: str = ""
    query_response: list[QueryResponse] = Field(default_factory=list)
    tls: bool = False
    tls_config: TLSConfig = Field(default_factory=TLSConfig)


class DNSRRValidator(_Strict):
    fail_if_matches_regexp: list[Regexp] = Field(default_factory=list)
    fail_if_not_matches_regexp: list[Regexp] = Field(default_factory=list)


class DNSProbe(_Strict):
    preferred_ip_protocol: IPProtocol = "ip6"
    ip_protocol_fallback: bool = True
    transport_protocol: Literal["udp", "tcp"] = "udp"
    query_name: str = ""
    query_type: str = "ANY"
    query_class: str = "IN"
    recursion_desired: bool = True
    valid_rcodes: list[str] = Field(default_factory=list)
    validate_answer_rrs: DNSRRValidator = Field(default_factory=DNSRRValidator)
    validate_authority_rrs: DNSRRValidator = Field(default_factory=DNSRRValidator)
    validate_additional_rrs: DNSRRValidator = Field(default_factory=DNSRRValidator)

    @field_validator("query_type")
    @classmethod
    def _check_query_type(cls, value: str) -> str:
        value = value or "ANY"
        try:
            dns.rdatatype.from_text(value)
        except dns.rdatatype.UnknownRdatatype:
            raise ValueError(f"query type '{value}' is not valid") from None
        return value

    @field_validator("query_class")
    @classmethod
    def _check_query_class(cls, value: str) -> str:
        value = value or "IN"
        try:
            dns.rdataclass.from_text(value)
        except dns.rdataclass.UnknownRdataclass:
            raise ValueError(f"query class '{value}' is not valid") from None
        return value

    @field_validator("valid_rcodes")
    @classmethod
    def _check_rcodes(cls, value: list[str]) -> list[str]:
        for rcode in value:
            try:
                dns.rcode.from_text(rcode)
            except dns.rcode.UnknownRcode:
                raise ValueError(f"rcode '{rcode}' is not valid") from None
        return value

    @model_validator(mode="after")
    def _check_query_name(self) -> DNSProbe:
        if not self.query_name:
            raise ValueError("query name must be set for DNS module")
        return self


class ICMPProbe(_Strict):
    protocol: Literal["icmp", "icmp4", "icmp6"] = "icmp"
    preferred_ip_protocol: IPProtocol = "ip6"
    ip_protocol_fallback: bool = True
    ttl: int = 0

    @field_validator("ttl")
    @classmethod
    def _check_ttl(cls, value: int) -> int:
        if value < 0:
            raise ValueError('"ttl" cannot be negative')
        if value > 255:
            raise ValueError('"ttl" cannot exceed 255')
        return value


_SECTIONS = {
    ProberKind.HTTP: "http",
    ProberKind.TCP: "tcp",
    ProberKind.DNS: "dns",
    ProberKind.ICMP: "icmp",
}


class Module(_Strict):
    prober: ProberKind
    timeout: Duration = 0.0
    http: HTTPProbe = Field(default_factory=HTTPProbe)
    tcp: TCPProbe = Field(default_factory=TCPProbe)
    dns: DNSProbe | None = None
    icmp: ICMPProbe = Field(default_factory=ICMPProbe)

    @field_validator("prober", mode="before")
    @classmethod
    def _check_prober(cls, value: Any) -> Any:
        if isinstance(value, ProberKind):
            return value
        if not isinstance(value, str) or value not in {kind.value for kind in ProberKind}:
            raise ValueError(f"prober '{value}' is invalid")
        return value

    @model_validator(mode="after")
    def _check_sections(self) -> Module:
        expected = _SECTIONS[self.prober]
        for section in _SECTIONS.values():
            if section != expected and section in self.model_fields_set:
                raise ValueError(f"module configures {section} settings but prober is {self.prober.value}")
        if self.prober is ProberKind.DNS and self.dns is None:
            raise ValueError("query name must be set for DNS module")
        return self


class Config(_Strict):
    modules: dict[str, Module] = Field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Plain-data form with secrets replaced by a placeholder."""
        return self.model_dump(mode="json", exclude_unset=True)

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=False)


def parse_config(data: Any) -> Config:
    """Validate already-decoded document data, raising ConfigError on any problem."""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise config_error(f"expected a mapping at the top level, got {type(data).__name__}")
    try:
        return Config.model_validate(data)
    except ValidationError as exc:
        raise config_error_from_validation(exc) from exc


def load_config(path: str | Path) -> Config:
    """Read and validate a YAML or JSON configuration document."""
    file_path = Path(path)
    try:
        raw = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise config_error(f"error reading config file: {exc}") from exc

    try:
        if file_path.suffix.lower() == ".json":
            data = json.loads(raw)
        else:
            data = yaml.safe_load(raw)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise config_error(str(exc)) from exc
    return parse_config(data)


__all__ = [
    "BasicAuth",
    "Config",
    "DNSProbe",
    "DNSRRValidator",
    "Duration",
    "HTTPClientConfig",
    "HTTPProbe",
    "HeaderMatch",
    "ICMPProbe",
    "IPProtocol",
    "Module",
    "ProberKind",
    "QueryResponse",
    "SECRET_PLACEHOLDER",
    "TCPProbe",
    "TLSConfig",
    "format_duration",
    "load_config",
    "parse_config",
    "parse_duration",
]
