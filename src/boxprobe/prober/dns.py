# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""DNS prober."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import dns.exception
import dns.flags
import dns.message
import dns.name
import dns.query
import dns.rcode
import dns.rdataclass
import dns.rdatatype
import dns.rrset

from ..errors import ErrorCategory, ResolutionError, categorize_exception
from ..models.module import DNSProbe, DNSRRValidator, Module
from ..models.probe import ProbeResult
from ..utils.context import ProbeContext
from ..utils.matching import match_regexps
from .keys import (
    PROBE_DNS_ADDITIONAL_RRS,
    PROBE_DNS_ANSWER_RRS,
    PROBE_DNS_AUTHORITY_RRS,
    PROBE_DNS_LOOKUP_TIME_SECONDS,
    PROBE_IP_PROTOCOL,
)
from .resolve import resolve_target, split_host_port

logger = logging.getLogger(__name__)

DEFAULT_DNS_PORT = 53


def rr_lines(rrsets: Sequence[dns.rrset.RRset]) -> list[str]:
    """Textual form of every individual record, one tab-separated ``name ttl class type rdata`` line each."""
    lines: list[str] = []
    for rrset in rrsets:
        prefix = "\t".join(
            (
                rrset.name.to_text(),
                str(rrset.ttl),
                dns.rdataclass.to_text(rrset.rdclass),
                dns.rdatatype.to_text(rrset.rdtype),
            )
        )
        lines.extend(f"{prefix}\t{rdata.to_text()}" for rdata in rrset)
    return lines


def valid_rrs(records: Sequence[str], validator: DNSRRValidator) -> bool:
    """
    Check one response section against its validator.

    An empty section only fails when something is required to match.
    """
    if not records:
        return not validator.fail_if_not_matches_regexp
    for record in records:
        logger.debug("Validating RR: %r", record)
        ok, reason = match_regexps(record, validator.fail_if_matches_regexp, validator.fail_if_not_matches_regexp)
        if not ok:
            logger.debug("RR %r %s", record, reason)
            return False
    return True


def valid_rcode(rcode: int, valid: Sequence[str]) -> bool:
    """With no list configured, only NOERROR is valid."""
    allowed = [dns.rcode.from_text(name) for name in valid] or [dns.rcode.NOERROR]
    if rcode in allowed:
        return True
    logger.info(
        "Rcode %s is not one of the valid rcodes %s",
        dns.rcode.to_text(rcode),
        [dns.rcode.to_text(code) for code in allowed],
    )
    return False


def build_query(probe: DNSProbe) -> dns.message.Message:
    qname = dns.name.from_text(probe.query_name)
    query = dns.message.make_query(
        qname,
        dns.rdatatype.from_text(probe.query_type),
        dns.rdataclass.from_text(probe.query_class),
    )
    if not probe.recursion_desired:
        query.flags &= ~dns.flags.RD
    return query


def probe_dns(ctx: ProbeContext, target: str, module: Module) -> ProbeResult:
    """Send one query to the server at ``target`` and validate the answer."""
    probe = module.dns
    result = ProbeResult()
    # Record counts are exported even when the exchange fails.
    result.set(PROBE_DNS_ANSWER_RRS, 0)
    result.set(PROBE_DNS_AUTHORITY_RRS, 0)
    result.set(PROBE_DNS_ADDITIONAL_RRS, 0)
    if probe is None:
        return result.fail("Module has no DNS settings", ErrorCategory.CONFIG_ERROR)

    try:
        host, port = split_host_port(target, DEFAULT_DNS_PORT)
    except ValueError as exc:
        logger.error("Could not parse target %s: %s", target, exc)
        return result.fail("Could not parse target", ErrorCategory.SETUP_ERROR)

    try:
        resolved = resolve_target(host, probe.preferred_ip_protocol, fallback=probe.ip_protocol_fallback)
    except ResolutionError as exc:
        result.set(PROBE_DNS_LOOKUP_TIME_SECONDS, exc.lookup_seconds)
        logger.warning("Error resolving address %s: %s", host, exc)
        return result.fail("Error resolving address", ErrorCategory.RESOLUTION_ERROR)
    result.set(PROBE_DNS_LOOKUP_TIME_SECONDS, resolved.lookup_seconds)
    result.set(PROBE_IP_PROTOCOL, resolved.ip_version)

    query = build_query(probe)
    network = resolved.dial_network(probe.transport_protocol)
    logger.debug("Sending %s query for %s to %s over %s", probe.query_type, probe.query_name, target, network)
    try:
        if probe.transport_protocol == "tcp":
            response = dns.query.tcp(query, resolved.address, timeout=ctx.remaining(), port=port or DEFAULT_DNS_PORT)
        else:
            response = dns.query.udp(query, resolved.address, timeout=ctx.remaining(), port=port or DEFAULT_DNS_PORT)
    except dns.exception.Timeout as exc:
        logger.warning("Timeout while sending a DNS query to %s: %s", target, exc)
        return result.fail("Timeout waiting for DNS response", ErrorCategory.TIMEOUT)
    except (OSError, dns.exception.DNSException) as exc:
        logger.warning("Error while sending a DNS query to %s: %s", target, exc)
        return result.fail("Error while sending a DNS query", categorize_exception(exc))
    logger.debug("Got response: %s", response)

    answer = rr_lines(response.answer)
    authority = rr_lines(response.authority)
    additional = rr_lines(response.additional)
    result.set(PROBE_DNS_ANSWER_RRS, len(answer))
    result.set(PROBE_DNS_AUTHORITY_RRS, len(authority))
    result.set(PROBE_DNS_ADDITIONAL_RRS, len(additional))

    if not valid_rcode(response.rcode(), probe.valid_rcodes):
        return result.fail(
            f"Rcode {dns.rcode.to_text(response.rcode())} is not one of the valid rcodes",
            ErrorCategory.VALIDATION_FAILED,
        )
    for section, records, validator in (
        ("Answer", answer, probe.validate_answer_rrs),
        ("Authority", authority, probe.validate_authority_rrs),
        ("Additional", additional, probe.validate_additional_rrs),
    ):
        if not valid_rrs(records, validator):
            logger.debug("%s RRs validation failed", section)
            return result.fail(f"{section} RRs validation failed", ErrorCategory.VALIDATION_FAILED)
    return result.succeed()


__all__ = ["DEFAULT_DNS_PORT", "build_query", "probe_dns", "rr_lines", "valid_rcode", "valid_rrs"]
