import logging

import httpx
import pytest

from slotgate.domain.errors import RateLimitHeaderError, UpstreamHTTPError
from slotgate.domain.models.http import HttpOutcome
from slotgate.infrastructure.resilience.rate_limit_estimator import (
    RateLimitEstimator,
    delay_ms,
    normalize_outcome,
    parse_server_date,
    read_rate_limit,
)

# 2024-01-01T00:00:00Z
JAN_1_MS = 1704067200000
JAN_1_S = 1704067200


def headers(remaining, reset=JAN_1_S + 2, date="2024-01-01T00:00:00Z"):
    h = {"x-rate-limit-remaining": str(remaining)}
    if reset is not None:
        h["x-rate-limit-reset"] = str(reset)
    if date is not None:
        h["date"] = date
    return h


def test_scarce_window_waits_until_reset_plus_buffer():
    outcome = HttpOutcome(200, headers(5))
    assert delay_ms(outcome, 100) == 3000


@pytest.mark.parametrize("remaining", [111, 150, 10_000])
def test_ample_headroom_means_no_delay(remaining):
    assert delay_ms(HttpOutcome(200, headers(remaining)), 100) == 0


@pytest.mark.parametrize("remaining", [0, 1, 50, 110])
def test_delay_formula_at_or_below_threshold(remaining):
    reset = JAN_1_S + 37
    expected = reset * 1000 - JAN_1_MS + 1000
    assert delay_ms(HttpOutcome(200, headers(remaining, reset=reset)), 100) == expected


def test_headroom_threshold_scales_with_pool_size():
    outcome = HttpOutcome(200, headers(20))
    assert delay_ms(outcome, 5) == 0
    assert delay_ms(outcome, 10) == 3000


def test_ample_headroom_tolerates_missing_date_and_reset(caplog):
    outcome = HttpOutcome(200, {"X-Rate-Limit-Remaining": "500"})
    with caplog.at_level(logging.WARNING):
        assert delay_ms(outcome, 100) == 0
    assert caplog.records == []


def test_http_date_format_is_accepted():
    outcome = HttpOutcome(200, headers(3, date="Mon, 01 Jan 2024 00:00:00 GMT"))
    assert delay_ms(outcome, 100) == 3000


def test_headers_are_case_insensitive():
    outcome = HttpOutcome(200, {
        "Date": "Mon, 01 Jan 2024 00:00:00 GMT",
        "X-Rate-Limit-Remaining": "1",
        "X-Rate-Limit-Reset": str(JAN_1_S + 10),
    })
    assert delay_ms(outcome, 100) == 11000


def test_reset_in_the_past_is_clamped_to_zero(caplog):
    outcome = HttpOutcome(200, headers(2, reset=JAN_1_S - 60))
    with caplog.at_level(logging.WARNING):
        assert delay_ms(outcome, 100) == 0
    assert "clamping" in caplog.text


def test_custom_margin_and_buffer():
    outcome = HttpOutcome(200, headers(15))
    assert delay_ms(outcome, 10, headroom_margin=2, buffer_ms=0) == 0
    assert delay_ms(outcome, 10, headroom_margin=5, buffer_ms=250) == 2250


@pytest.mark.parametrize("bad", [
    {},
    {"x-rate-limit-remaining": "lots"},
    headers(5, reset=None),
    headers(5, date=None),
    headers(5, date="yesterday-ish"),
    headers(5, reset="soon"),
    headers(5, reset="nan"),
    headers(5, reset="inf"),
])
def test_missing_or_malformed_headers_degrade_to_zero(bad, caplog):
    with caplog.at_level(logging.WARNING):
        assert delay_ms(HttpOutcome(200, bad), 100) == 0
    assert "assuming no delay" in caplog.text


def test_error_without_response_does_not_crash(caplog):
    error = ConnectionResetError("connection reset by peer")
    with caplog.at_level(logging.WARNING):
        assert delay_ms(error, 100) == 0
    assert "No response" in caplog.text


def test_httpx_request_error_has_no_response():
    request = httpx.Request("GET", "https://tenant.example.com/api/v1/users")
    error = httpx.ConnectError("refused", request=request)
    assert normalize_outcome(error) is None
    assert delay_ms(error, 100) == 0


def test_upstream_error_exposes_embedded_outcome():
    outcome = HttpOutcome(429, headers(0, reset=JAN_1_S + 4), {"errorCode": "E0000047"})
    error = UpstreamHTTPError("GET", "/api/v1/users", outcome)
    assert normalize_outcome(error) is outcome
    assert delay_ms(error, 100) == 5000


def test_httpx_response_and_status_error_are_normalized():
    request = httpx.Request("GET", "https://tenant.example.com/api/v1/groups")
    response = httpx.Response(429, headers=headers(1), json={"errorSummary": "Too many"}, request=request)

    normalized = normalize_outcome(response)
    assert normalized.status == 429
    assert normalized.body == {"errorSummary": "Too many"}
    assert normalized.header("X-RATE-LIMIT-REMAINING") == "1"

    status_error = httpx.HTTPStatusError("429", request=request, response=response)
    assert delay_ms(status_error, 100) == 3000


def test_generic_object_with_response_attribute():
    class Wrapped(Exception):
        def __init__(self, response):
            super().__init__("wrapped")
            self.response = response

    inner = HttpOutcome(500, headers(4))
    assert normalize_outcome(Wrapped(inner)) is inner
    assert normalize_outcome(None) is None


def test_read_rate_limit_returns_reading():
    reading = read_rate_limit(HttpOutcome(200, headers(7)))
    assert reading.remaining == 7
    assert reading.reset_epoch_seconds == JAN_1_S + 2
    assert reading.server_date_ms == JAN_1_MS


def test_read_rate_limit_raises_distinguishable_error():
    with pytest.raises(RateLimitHeaderError) as exc_info:
        read_rate_limit(HttpOutcome(200, headers(7, date=None)))
    assert exc_info.value.header == "date"


def test_parse_server_date_naive_iso_is_utc():
    assert parse_server_date("2024-01-01T00:00:00") == JAN_1_MS
    with pytest.raises(RateLimitHeaderError):
        parse_server_date("not a date")


def test_warn_threshold_controls_log_severity(caplog):
    with caplog.at_level(logging.DEBUG, logger="slotgate.infrastructure.resilience.rate_limit_estimator"):
        delay_ms(HttpOutcome(200, headers(11)), 100, warn_remaining=11)
        delay_ms(HttpOutcome(200, headers(12)), 100, warn_remaining=11)

    levels = {r.getMessage().split("remaining=")[-1].rstrip(")"): r.levelno
              for r in caplog.records if "Rate limit reached" in r.getMessage()}
    assert levels == {"11": logging.WARNING, "12": logging.DEBUG}


def test_estimator_binds_tunables():
    estimator = RateLimitEstimator(pool_size=2, headroom_margin=0, buffer_ms=500)
    assert estimator.delay_ms(HttpOutcome(200, headers(3))) == 0
    assert estimator.delay_ms(HttpOutcome(200, headers(2))) == 2500


@pytest.mark.parametrize("reset, remaining", [
    (f"{JAN_1_S + 2}.0", "5"),
    (f"{JAN_1_S + 2}.7", "5.0"),
    (f" {JAN_1_S + 2} ", " 5 "),
])
def test_numeric_header_forms_keep_the_cooldown(reset, remaining):
    outcome = HttpOutcome(200, {
        "date": "2024-01-01T00:00:00Z",
        "x-rate-limit-remaining": remaining,
        "x-rate-limit-reset": reset,
    })
    assert delay_ms(outcome, 100) == 3000
