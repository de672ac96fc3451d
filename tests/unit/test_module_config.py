# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

import json
from pathlib import Path

import pytest
import yaml
from pydantic import BaseModel

from boxprobe.errors import CONFIG_ERROR_PREFIX, ConfigError
from boxprobe.models import Config, ProberKind, Regexp, load_config, parse_config
from boxprobe.models.module import format_duration, parse_duration
from boxprobe.utils import match_regexps

TESTDATA = Path(__file__).parent / "testdata"


def _as_json(tmp_path: Path, name: str) -> Path:
    data = yaml.safe_load((TESTDATA / f"{name}.yml").read_text(encoding="utf-8"))
    target = tmp_path / f"{name}.json"
    target.write_text(json.dumps(data), encoding="utf-8")
    return target


def test_load_good_config_yaml_and_json_are_equivalent(tmp_path):
    from_yaml = load_config(TESTDATA / "blackbox-good.yml")
    from_json = load_config(_as_json(tmp_path, "blackbox-good"))

    assert from_yaml == from_json
    assert from_yaml.to_dict() == from_json.to_dict()
    assert set(from_yaml.modules) == {
        "http_2xx",
        "http_post_2xx",
        "http_header_match",
        "http_gzip",
        "tcp_connect",
        "smtp_starttls",
        "dns_udp",
        "dns_tcp",
        "icmp",
    }


def test_good_config_field_values():
    config = load_config(TESTDATA / "blackbox-good.yml")

    http = config.modules["http_2xx"]
    assert http.prober is ProberKind.HTTP
    assert http.timeout == 5.0
    assert http.http.preferred_ip_protocol == "ip4"
    assert http.http.ip_protocol_fallback is False
    assert http.http.method == "GET"
    assert http.http.follow_redirects is True

    assert config.modules["tcp_connect"].timeout == 90.0
    assert config.modules["dns_udp"].timeout == 0.5

    smtp = config.modules["smtp_starttls"].tcp
    assert len(smtp.query_response) == 9
    assert smtp.query_response[0].expect == Regexp("^220 ([^ ]+) ESMTP (.+)$")
    assert smtp.query_response[5].starttls is True

    dns_udp = config.modules["dns_udp"].dns
    assert dns_udp.query_type == "A"
    assert dns_udp.query_class == "IN"
    assert dns_udp.recursion_desired is True
    assert dns_udp.validate_answer_rrs.fail_if_not_matches_regexp[0].matches(
        "www.prometheus.io.\t300\tIN\tA\t127.0.0.1"
    )

    dns_tcp = config.modules["dns_tcp"].dns
    assert dns_tcp.transport_protocol == "tcp"
    assert dns_tcp.query_class == "CH"
    assert dns_tcp.recursion_desired is False

    assert config.modules["icmp"].icmp.ttl == 36
    assert config.modules["http_2xx"].dns is None


def test_protocol_defaults():
    config = parse_config({"modules": {"tcp": {"prober": "tcp"}, "dns": {"prober": "dns", "dns": {"query_name": "a."}}}})

    tcp = config.modules["tcp"]
    assert tcp.timeout == 0.0
    assert tcp.tcp.preferred_ip_protocol == "ip6"
    assert tcp.tcp.ip_protocol_fallback is True
    assert tcp.tcp.query_response == []

    dns_probe = config.modules["dns"].dns
    assert dns_probe.query_type == "ANY"
    assert dns_probe.transport_protocol == "udp"
    assert dns_probe.valid_rcodes == []


@pytest.mark.parametrize(
    ("name", "want"),
    [
        ("blackbox-bad", "field invalid_extra_field not found"),
        ("blackbox-bad2", "at most one of bearer_token & bearer_token_file must be configured"),
        ("invalid-dns-module", "query name must be set for DNS module"),
        ("invalid-dns-class", "query class 'X' is not valid"),
        ("invalid-dns-type", "query type 'X' is not valid"),
        ("invalid-dns-rcode", "rcode 'NOTANRCODE' is not valid"),
        ("invalid-http-header-match", "regexp must be set for HTTP header matchers"),
        ("invalid-http-body-match-regexp", '"Could not compile regular expression" regexp=":["'),
        ("invalid-http-header-match-regexp", '"Could not compile regular expression" regexp=":["'),
        (
            "invalid-http-compression-mismatch",
            'invalid configuration "accEpt-enCoding: deflate", "compression: gzip"',
        ),
        ("invalid-http-body-and-file", "setting body and body_file both are not allowed"),
        ("invalid-icmp-ttl", '"ttl" cannot be negative'),
        ("invalid-icmp-ttl-overflow", '"ttl" cannot exceed 255'),
        ("invalid-prober", "prober 'HTTP' is invalid"),
        ("invalid-tls-key-pair", "exactly one of key or cert file specified"),
        ("invalid-section-mismatch", "module configures http settings but prober is tcp"),
    ],
)
@pytest.mark.parametrize("fmt", ["yml", "json"])
def test_load_bad_configs(tmp_path, name, want, fmt):
    path = TESTDATA / f"{name}.yml" if fmt == "yml" else _as_json(tmp_path, name)

    with pytest.raises(ConfigError) as excinfo:
        load_config(path)

    message = str(excinfo.value)
    assert message.startswith(f"{CONFIG_ERROR_PREFIX}: ")
    assert want in message


def test_bad_config_error_names_location():
    with pytest.raises(ConfigError) as excinfo:
        load_config(TESTDATA / "blackbox-bad.yml")
    assert "modules.http_2xx.http: field invalid_extra_field not found" in str(excinfo.value)
    assert excinfo.value.problems == ["modules.http_2xx.http: field invalid_extra_field not found"]


@pytest.mark.parametrize("ttl", [0, 1, 255])
def test_icmp_ttl_bounds_are_inclusive(ttl):
    config = parse_config({"modules": {"ping": {"prober": "icmp", "icmp": {"ttl": ttl}}}})
    assert config.modules["ping"].icmp.ttl == ttl


def test_multiple_problems_are_joined():
    with pytest.raises(ConfigError) as excinfo:
        parse_config({"modules": {"a": {"prober": "nope"}, "b": {"prober": "icmp", "icmp": {"ttl": 300}}}})
    assert len(excinfo.value.problems) == 2
    assert "; " in str(excinfo.value)


def test_missing_and_malformed_documents(tmp_path):
    with pytest.raises(ConfigError, match="error reading config file"):
        load_config(tmp_path / "missing.yml")

    broken = tmp_path / "broken.yml"
    broken.write_text("modules: [\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(broken)

    listing = tmp_path / "list.yml"
    listing.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="expected a mapping"):
        load_config(listing)

    empty = tmp_path / "empty.yml"
    empty.write_text("", encoding="utf-8")
    assert load_config(empty).modules == {}


def test_compression_accept_encoding_consistency():
    ok = parse_config(
        {
            "modules": {
                "m": {
                    "prober": "http",
                    "http": {"compression": "gzip", "headers": {"Accept-Encoding": "*;q=0.1, deflate"}},
                }
            }
        }
    )
    assert ok.modules["m"].http.compression == "gzip"

    with pytest.raises(ConfigError, match="compression: gzip"):
        parse_config(
            {
                "modules": {
                    "m": {
                        "prober": "http",
                        "http": {"compression": "gzip", "headers": {"Accept-Encoding": "gzip;q=0, deflate"}},
                    }
                }
            }
        )


def test_config_dump_hides_secrets():
    config = load_config(TESTDATA / "blackbox-good.yml")

    dumped = config.to_yaml()
    assert "mysecret" not in dumped
    assert "<secret>" in dumped
    assert "mysecret" not in config.to_json()

    data = config.to_dict()
    assert data["modules"]["http_2xx"]["timeout"] == "5s"
    assert data["modules"]["tcp_connect"]["timeout"] == "1m30s"
    assert data["modules"]["smtp_starttls"]["tcp"]["query_response"][0]["expect"] == "^220 ([^ ]+) ESMTP (.+)$"
    assert config.modules["http_post_2xx"].http.http_client_config.basic_auth.password.get_secret_value() == "mysecret"


def test_config_is_immutable():
    config = load_config(TESTDATA / "blackbox-good.yml")
    with pytest.raises(Exception):
        config.modules["http_2xx"].timeout = 1.0


class _Holder(BaseModel):
    test: Regexp


def test_regexp_round_trip():
    data = '{"test":"(\\\\w+.+)"}'
    holder = _Holder.model_validate_json(data)
    assert holder.test.source == "(\\w+.+)"
    assert holder.model_dump_json() == data

    yaml_text = "test: (\\w+.+)\n"
    from_yaml = _Holder.model_validate(yaml.safe_load(yaml_text))
    assert yaml.safe_dump(from_yaml.model_dump(mode="json")) == yaml_text

    assert _Holder(test=Regexp()).model_dump() == {"test": ""}


def test_regexp_compile_error():
    with pytest.raises(ValueError, match="Could not compile regular expression"):
        Regexp("(")


def test_match_regexps_checks_forbidden_before_required():
    forbidden = [Regexp("^5\\d\\d"), Regexp("maintenance")]
    required = [Regexp("OK"), Regexp("ready$")]

    assert match_regexps("200 OK ready", forbidden, required) == (True, "")
    assert match_regexps("503 maintenance", forbidden, required) == (False, "matched forbidden regexp '^5\\\\d\\\\d'")
    assert match_regexps("200 OK starting", forbidden, required) == (False, "did not match required regexp 'ready$'")
    assert match_regexps("anything", [], []) == (True, "")


@pytest.mark.parametrize(
    ("text", "seconds"),
    [("5s", 5.0), ("1m30s", 90.0), ("500ms", 0.5), ("2h", 7200.0), ("0", 0.0), (3, 3.0), (1.5, 1.5)],
)
def test_parse_duration(text, seconds):
    assert parse_duration(text) == seconds


@pytest.mark.parametrize("text", ["5", "abc", "1.5s", "-1s", True])
def test_parse_duration_rejects(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_format_duration():
    assert format_duration(0) == "0s"
    assert format_duration(90) == "1m30s"
    assert format_duration(0.25) == "250ms"
    assert format_duration(3600 * 24 + 1) == "1d1s"


def test_empty_config_round_trip():
    assert Config().to_dict() == {}
