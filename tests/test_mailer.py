import json

import pytest

from app.meyden.mailer import EmailError, EmailService


def _service(api_key=""):
    return EmailService(
        api_key=api_key, from_address="noreply@meyden.com", from_name="Meyden", frontend_url="http://localhost:3000"
    )


def test_disabled_delivery_is_a_successful_noop(monkeypatch):
    svc = _service()

    def no_network(self, payload):
        raise AssertionError("should not send")

    monkeypatch.setattr(EmailService, "_post", no_network)
    assert svc.send_welcome_email("jane@example.com", "Jane") is True


def test_delivery_failure_returns_false(monkeypatch):
    def fail(self, payload):
        raise EmailError("HTTP 500 from email provider")

    monkeypatch.setattr(EmailService, "_post", fail)
    assert _service("re_test").send_welcome_email("jane@example.com", "Jane") is False


def test_templates_escape_user_values(monkeypatch):
    sent = []
    monkeypatch.setattr(EmailService, "_post", lambda self, payload: sent.append(payload) or {"id": "em_1"})

    ok = _service("re_test").send_vendor_contact_email(
        "sales@vendor.example",
        "Vendor & Co",
        sender_name="<script>x</script>",
        sender_email="sara@example.com",
        subject=None,
        message="Hello <b>there</b>",
    )
    assert ok is True
    payload = sent[0]
    assert payload["to"] == ["sales@vendor.example"]
    assert payload["reply_to"] == "sara@example.com"
    assert payload["from"] == "Meyden <noreply@meyden.com>"
    assert "<script>" not in payload["html"]
    assert "&lt;b&gt;there&lt;/b&gt;" in payload["html"]
    assert "Vendor &amp; Co" in payload["html"]
    json.dumps(payload)


@pytest.mark.parametrize(
    "method, args, path",
    [
        ("send_verification_email", ("jane@example.com", "Jane", "tok123"), "/verify-email?token=tok123"),
        ("send_password_reset_email", ("jane@example.com", None, "tok456"), "/reset-password?token=tok456"),
    ],
)
def test_token_links_point_at_frontend(monkeypatch, method, args, path):
    sent = []
    monkeypatch.setattr(EmailService, "_post", lambda self, payload: sent.append(payload) or {})
    assert getattr(_service("re_test"), method)(*args) is True
    assert f"http://localhost:3000{path}" in sent[0]["html"]
