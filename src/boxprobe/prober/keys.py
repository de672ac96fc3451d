# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Stable metric names produced by the probers."""

# Common
PROBE_SUCCESS = "probe_success"
PROBE_DURATION_SECONDS = "probe_duration_seconds"
PROBE_IP_PROTOCOL = "probe_ip_protocol"
PROBE_DNS_LOOKUP_TIME_SECONDS = "probe_dns_lookup_time_seconds"
PROBE_FAILED_DUE_TO_REGEX = "probe_failed_due_to_regex"
PROBE_SSL_EARLIEST_CERT_EXPIRY = "probe_ssl_earliest_cert_expiry"

# HTTP
PROBE_HTTP_STATUS_CODE = "probe_http_status_code"
PROBE_HTTP_CONTENT_LENGTH = "probe_http_content_length"
PROBE_HTTP_REDIRECTS = "probe_http_redirects"
PROBE_HTTP_SSL = "probe_http_ssl"
PROBE_HTTP_VERSION = "probe_http_version"
PROBE_HTTP_DURATION_SECONDS = "probe_http_duration_seconds"

# DNS
PROBE_DNS_ANSWER_RRS = "probe_dns_answer_rrs"
PROBE_DNS_AUTHORITY_RRS = "probe_dns_authority_rrs"
PROBE_DNS_ADDITIONAL_RRS = "probe_dns_additional_rrs"

METRIC_HELP = {
    PROBE_SUCCESS: "Displays whether or not the probe was a success",
    PROBE_DURATION_SECONDS: "Returns how long the probe took to complete in seconds",
    PROBE_IP_PROTOCOL: "Specifies whether probe ip protocol is IP4 or IP6",
    PROBE_DNS_LOOKUP_TIME_SECONDS: "Returns the time taken for probe dns lookup in seconds",
    PROBE_FAILED_DUE_TO_REGEX: "Indicates if probe failed due to regex",
    PROBE_SSL_EARLIEST_CERT_EXPIRY: "Returns earliest SSL cert expiry in unixtime",
    PROBE_HTTP_STATUS_CODE: "Response HTTP status code",
    PROBE_HTTP_CONTENT_LENGTH: "Length of http content response",
    PROBE_HTTP_REDIRECTS: "The number of redirects",
    PROBE_HTTP_SSL: "Indicates if SSL was used for the final redirect",
    PROBE_HTTP_VERSION: "Returns the version of HTTP of the probe response",
    PROBE_HTTP_DURATION_SECONDS: "Duration of the http request in seconds",
    PROBE_DNS_ANSWER_RRS: "Returns number of entries in the answer resource record list",
    PROBE_DNS_AUTHORITY_RRS: "Returns number of entries in the authority resource record list",
    PROBE_DNS_ADDITIONAL_RRS: "Returns number of entries in the additional resource record list",
}
