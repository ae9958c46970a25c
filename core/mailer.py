"""
core/mailer.py -- Outbound transactional mail (sign-in codes, reset links).

Modes:
  console -- log the message (development; the default). The code is only
             ever logged in this mode.
  resend  -- POST to the Resend HTTP API with requests.

Delivery is fire-and-forget from the caller's point of view: send_* return
False on failure and never raise. A lost mail must not roll back the stored
one-time code -- the user can always ask for a resend.
"""

from __future__ import annotations

import html
import logging

import requests

from core.config import Settings

logger = logging.getLogger("hostgate.mailer")

RESEND_API_URL = "https://api.resend.com/emails"

# Module-level session shared across sends for connection pooling.
_session = requests.Session()
_session.max_redirects = 3


class Mailer:
    def __init__(self, mode: str = "console", mail_from: str = "", resend_api_key: str = "") -> None:
        if mode == "resend" and not resend_api_key:
            raise ValueError("Resend mode requires an API key.")
        self.mode = mode
        self._from = mail_from
        self._api_key = resend_api_key

    @classmethod
    def from_settings(cls, settings: Settings) -> Mailer:
        return cls(mode=settings.mail_mode, mail_from=settings.mail_from, resend_api_key=settings.resend_api_key)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def send_otp_mail(self, email: str, name: str, otp: str) -> bool:
        subject = "Your sign-in code"
        text = f"Hi {name},\n\nYour verification code is {otp}. It expires in a few minutes.\n"
        body = (
            f"<p>Hi {html.escape(name)},</p>"
            f"<p>Your verification code is <strong>{html.escape(otp)}</strong>.</p>"
            "<p>It expires in a few minutes. If you did not try to sign in, ignore this email.</p>"
        )
        return self._send(email, subject, body, text)

    def send_password_reset_mail(self, email: str, name: str, reset_link: str) -> bool:
        subject = "Reset your password"
        text = f"Hi {name},\n\nReset your password here: {reset_link}\n"
        body = (
            f"<p>Hi {html.escape(name)},</p>"
            f'<p><a href="{html.escape(reset_link, quote=True)}">Reset your password</a></p>'
            "<p>If you did not ask for a reset, ignore this email.</p>"
        )
        return self._send(email, subject, body, text)

    # ------------------------------------------------------------------
    # Transports
    # ------------------------------------------------------------------

    def _send(self, to: str, subject: str, body_html: str, body_text: str) -> bool:
        if self.mode == "resend":
            return self._send_resend(to, subject, body_html, body_text)
        logger.info("EMAIL (console mode) to=%s subject=%r\n%s", to, subject, body_text)
        return True

    def _send_resend(self, to: str, subject: str, body_html: str, body_text: str) -> bool:
        try:
            resp = _session.post(
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {self._api_key}"},
                json={"from": self._from, "to": [to], "subject": subject, "html": body_html, "text": body_text},
                timeout=10,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.warning("Mail delivery to %s failed: %s", to, e)
            return False
        logger.info("Mail %r sent to %s", subject, to)
        return True
