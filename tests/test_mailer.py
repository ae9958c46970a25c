"""
tests/test_mailer.py -- Mailer transports.

The Resend transport is exercised against a patched requests session; no
test touches the network.
"""

from __future__ import annotations

import logging

import pytest
import requests

import core.mailer as mailer_module
from core.mailer import RESEND_API_URL, Mailer


class _Response:
    def __init__(self, status: int = 200) -> None:
        self.status_code = status

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


def test_console_mode_logs_code(caplog) -> None:
    with caplog.at_level(logging.INFO, logger="hostgate.mailer"):
        assert Mailer().send_otp_mail("a@x.com", "Ada", "123456") is True
    assert "123456" in caplog.text
    assert "a@x.com" in caplog.text


def test_resend_requires_api_key() -> None:
    with pytest.raises(ValueError):
        Mailer(mode="resend")


def test_resend_posts_message(monkeypatch) -> None:
    calls = []

    def fake_post(url, headers, json, timeout):
        calls.append({"url": url, "headers": headers, "json": json})
        return _Response()

    monkeypatch.setattr(mailer_module._session, "post", fake_post)
    mailer = Mailer(mode="resend", mail_from="HostGate <no-reply@stay.io>", resend_api_key="re_test")
    assert mailer.send_password_reset_mail("a@x.com", "<Ada>", "https://app/reset-password?code=1&email=a") is True

    (call,) = calls
    assert call["url"] == RESEND_API_URL
    assert call["headers"]["Authorization"] == "Bearer re_test"
    assert call["json"]["to"] == ["a@x.com"]
    assert "&lt;Ada&gt;" in call["json"]["html"]
    assert "code=1&amp;email=a" in call["json"]["html"]


@pytest.mark.parametrize(
    "failure",
    [requests.ConnectionError("down"), requests.Timeout("slow")],
    ids=["connection", "timeout"],
)
def test_resend_transport_failure_returns_false(monkeypatch, failure) -> None:
    def fake_post(*args, **kwargs):
        raise failure

    monkeypatch.setattr(mailer_module._session, "post", fake_post)
    mailer = Mailer(mode="resend", resend_api_key="re_test")
    assert mailer.send_otp_mail("a@x.com", "Ada", "123456") is False


def test_resend_http_error_returns_false(monkeypatch) -> None:
    monkeypatch.setattr(mailer_module._session, "post", lambda *a, **kw: _Response(422))
    mailer = Mailer(mode="resend", resend_api_key="re_test")
    assert mailer.send_otp_mail("a@x.com", "Ada", "123456") is False
