from __future__ import annotations

from unittest import mock

import requests

from formguard.clients.recaptcha import RecaptchaVerifier


def make_verifier(payload=None, status=200, **kwargs):
    response = mock.Mock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.json.return_value = payload or {}
    session = mock.Mock()
    session.post.return_value = response
    return RecaptchaVerifier("secret", session=session, **kwargs), session


def test_successful_verification_posts_form_data():
    verifier, session = make_verifier({"success": True, "score": 0.9, "action": "submit"})

    result = verifier.verify("token", action="submit")

    assert result.success
    assert result.score == 0.9
    _, kwargs = session.post.call_args
    assert kwargs["data"] == {"secret": "secret", "response": "token"}


def test_low_score_fails():
    verifier, _ = make_verifier({"success": True, "score": 0.2}, min_score=0.5)

    result = verifier.verify("token")

    assert not result.success
    assert result.error == "Score 0.2 is below minimum threshold 0.5"


def test_action_mismatch_fails():
    verifier, _ = make_verifier({"success": True, "score": 0.9, "action": "login"})

    result = verifier.verify("token", action="submit")

    assert not result.success
    assert result.error == "Action mismatch: expected 'submit', got 'login'"


def test_unsuccessful_payload_reports_error_codes():
    verifier, _ = make_verifier({"success": False, "error-codes": ["timeout-or-duplicate"]})

    result = verifier.verify("token")

    assert not result.success
    assert result.error == "timeout-or-duplicate"


def test_http_error_status_is_reported():
    verifier, _ = make_verifier(status=503)

    result = verifier.verify("token")

    assert not result.success
    assert result.error == "reCAPTCHA API returned status 503"


def test_network_failure_is_reported_not_raised():
    verifier, session = make_verifier()
    session.post.side_effect = requests.ConnectionError("connection refused")

    assert not verifier.is_valid("token")


def test_missing_token_or_secret():
    verifier, session = make_verifier()
    assert verifier.verify("").error == "Missing reCAPTCHA token"

    no_secret = RecaptchaVerifier(None, session=session)
    assert no_secret.verify("token").error == "Missing reCAPTCHA secret key"
    session.post.assert_not_called()


def test_development_bypass():
    verifier, session = make_verifier(allow_in_development=True, environment="development")

    result = verifier.verify("", action="submit")

    assert result.success
    assert result.action == "submit"
    session.post.assert_not_called()
