import json
import logging

from formguard.logging_config import JsonFormatter
from formguard.messages import email_template_key, render
from formguard.utils import get_client_ip
from formguard.verdict import LimitType, Verdict


def test_client_ip_header_precedence():
    headers = {
        "x-forwarded-for": "198.51.100.1, 10.0.0.1",
        "x-real-ip": "198.51.100.2",
        "true-client-ip": "198.51.100.3",
    }
    assert get_client_ip(headers) == "198.51.100.2"


def test_client_ip_takes_first_forwarded_value():
    assert get_client_ip({"x-forwarded-for": " 203.0.113.9 , 10.0.0.1"}) == "203.0.113.9"


def test_client_ip_cloudflare_header_wins():
    headers = {"cf-connecting-ip": "203.0.113.1", "x-real-ip": "203.0.113.2"}
    assert get_client_ip(headers) == "203.0.113.1"


def test_client_ip_skips_blank_values():
    assert get_client_ip({"x-real-ip": " ", "x-client-ip": "192.0.2.4"}) == "192.0.2.4"


def test_client_ip_header_names_are_case_insensitive():
    assert get_client_ip({"True-Client-IP": "192.0.2.8"}) == "192.0.2.8"


def test_client_ip_falls_back_to_sentinel():
    assert get_client_ip({}) == "unknown-ip"


def test_email_templates_by_magnitude():
    assert email_template_key(59) == "email_seconds"
    assert email_template_key(60) == "email_minutes"
    assert email_template_key(3599) == "email_minutes"
    assert email_template_key(3600) == "email_hours"
    assert render("{minutes}m/{hours}h", 61) == "2m/1h"


def test_verdict_wire_shape_omits_unset_fields():
    assert Verdict.allow().to_dict() == {"allowed": True}
    denied = Verdict.deny(
        retry_after_seconds=5,
        limit_type=LimitType.EMAIL,
        message="no",
        window_ms=1000,
        max_requests=1,
    )
    assert denied.to_dict() == {
        "allowed": False,
        "retryAfter": 5,
        "limitType": "email",
        "message": "no",
        "windowMs": 1000,
        "maxRequests": 1,
    }


def test_json_formatter_includes_rate_limit_extras():
    record = logging.LogRecord("formguard", logging.INFO, __file__, 1, "limited", None, None)
    record.identifier = "203.0.113.5"
    record.limit_type = "short"

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "limited"
    assert payload["identifier"] == "203.0.113.5"
    assert payload["limit_type"] == "short"
    assert "client_ip" not in payload


def test_json_formatter_includes_http_failure_details():
    record = logging.LogRecord("formguard", logging.WARNING, __file__, 1, "failed", None, None)
    record.detail = "connection refused"
    record.status = 503

    payload = json.loads(JsonFormatter().format(record))

    assert payload["detail"] == "connection refused"
    assert payload["status"] == 503
