from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any

from flask import current_app
from markupsafe import escape

from app.meyden.utils import mask_pii

logger = logging.getLogger(__name__)


class EmailError(RuntimeError):
    pass


@dataclass(frozen=True)
class EmailService:
    api_key: str
    from_address: str
    from_name: str
    frontend_url: str
    base_url: str = "https://api.resend.com"
    timeout_seconds: int = 15

    @property
    def sender(self) -> str:
        return f"{self.from_name} <{self.from_address}>"

    def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        req = urllib.request.Request(
            self.base_url.rstrip("/") + "/emails",
            data=json.dumps(payload).encode("utf-8"),
            method="POST",
        )
        req.add_header("Authorization", f"Bearer {self.api_key}")
        req.add_header("Content-Type", "application/json")
        req.add_header("Accept", "application/json")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            try:
                body = e.read().decode("utf-8", errors="ignore")
            except Exception:
                body = ""
            raise EmailError(f"HTTP {e.code} from email provider: {body[:300]}") from e
        except urllib.error.URLError as e:
            raise EmailError(f"Email provider unreachable: {e.reason}") from e
        try:
            return json.loads(raw.decode("utf-8")) if raw else {}
        except ValueError as e:
            raise EmailError("Invalid JSON from email provider") from e

    def send(self, *, to: str, subject: str, html: str, reply_to: str | None = None) -> bool:
        """Send one email. Returns False (and logs) instead of raising on delivery failure."""
        if not self.api_key:
            logger.info("Email delivery disabled; would send %r to %s", subject, mask_pii({"email": to})["email"])
            return True
        payload: dict[str, Any] = {"from": self.sender, "to": [to], "subject": subject, "html": html}
        if reply_to:
            payload["reply_to"] = reply_to
        try:
            result = self._post(payload)
        except EmailError as e:
            logger.error("Failed to send %r: %s", subject, e)
            return False
        logger.info("Sent %r (id=%s)", subject, result.get("id"))
        return True

    # ---------- Templates ----------
    def send_verification_email(self, email: str, first_name: str | None, token: str) -> bool:
        link = f"{self.frontend_url}/verify-email?token={token}"
        html = _layout(
            f"Hi {escape(first_name or 'there')},",
            "Please confirm your email address to activate your Meyden account.",
            link,
            "Verify email",
            "This link expires in 24 hours.",
        )
        return self.send(to=email, subject="Verify your Meyden account", html=html)

    def send_password_reset_email(self, email: str, first_name: str | None, token: str) -> bool:
        link = f"{self.frontend_url}/reset-password?token={token}"
        html = _layout(
            f"Hi {escape(first_name or 'there')},",
            "We received a request to reset your password.",
            link,
            "Reset password",
            "This link expires in 1 hour. If you did not ask for a reset, you can ignore this email.",
        )
        return self.send(to=email, subject="Reset your Meyden password", html=html)

    def send_welcome_email(self, email: str, first_name: str | None) -> bool:
        html = _layout(
            f"Welcome to Meyden, {escape(first_name or 'there')}!",
            "Your account is ready. Explore vendors, join the community and take the AI readiness assessment.",
            f"{self.frontend_url}/dashboard",
            "Go to dashboard",
            None,
        )
        return self.send(to=email, subject="Welcome to Meyden", html=html)

    def send_vendor_contact_email(
        self,
        vendor_email: str,
        vendor_name: str,
        *,
        sender_name: str,
        sender_email: str,
        subject: str | None,
        message: str,
    ) -> bool:
        body = (
            f"<p><strong>{escape(sender_name)}</strong> ({escape(sender_email)}) sent an inquiry "
            f"to {escape(vendor_name)} through Meyden:</p>"
            f"<blockquote>{escape(message)}</blockquote>"
        )
        html = _layout(f"New inquiry for {escape(vendor_name)}", body, None, None, "Reply to this email to respond.")
        return self.send(
            to=vendor_email,
            subject=subject or f"New inquiry from {sender_name}",
            html=html,
            reply_to=sender_email,
        )


def _layout(heading: str, body: str, link: str | None, link_label: str | None, footer: str | None) -> str:
    parts = [f"<h2>{heading}</h2>", f"<p>{body}</p>" if not body.startswith("<") else body]
    if link and link_label:
        parts.append(f'<p><a href="{escape(link)}">{escape(link_label)}</a></p>')
    if footer:
        parts.append(f"<p><small>{escape(footer)}</small></p>")
    return "\n".join(parts)


def email_service_from_config(config: dict) -> EmailService:
    return EmailService(
        api_key=(config.get("RESEND_API_KEY") or "").strip(),
        from_address=(config.get("EMAIL_FROM_ADDRESS") or "noreply@meyden.com").strip(),
        from_name=(config.get("EMAIL_FROM_NAME") or "Meyden").strip(),
        frontend_url=(config.get("FRONTEND_URL") or "").rstrip("/"),
    )


def get_email_service() -> EmailService:
    return email_service_from_config(current_app.config)
