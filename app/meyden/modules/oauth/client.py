from __future__ import annotations

import json
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any


class OAuthError(RuntimeError):
    pass


# Microsoft authorities that accept accounts from any directory.
MULTI_TENANT_AUTHORITIES = ("common", "organizations", "consumers")


@dataclass(frozen=True)
class OAuthProfile:
    provider: str
    provider_id: str
    email: str
    first_name: str | None
    last_name: str | None
    avatar: str | None
    email_verified: bool


@dataclass(frozen=True)
class OAuthProvider:
    name: str
    client_id: str
    client_secret: str
    callback_url: str
    authorize_url: str
    token_url: str
    userinfo_url: str
    scope: str
    tenant: str | None = None
    timeout_seconds: int = 15

    @property
    def configured(self) -> bool:
        return bool(self.client_id)

    @property
    def enabled(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.callback_url,
            "response_type": "code",
            "scope": self.scope,
            "state": state,
        }
        if self.name == "google":
            params["access_type"] = "offline"
            params["prompt"] = "select_account"
        else:
            params["response_mode"] = "query"
        return self.authorize_url + "?" + urllib.parse.urlencode(params)

    def _request_json(self, url: str, *, form: dict[str, str] | None = None, bearer: str | None = None) -> dict[str, Any]:
        data = urllib.parse.urlencode(form).encode("utf-8") if form is not None else None
        req = urllib.request.Request(url, data=data, method="POST" if data is not None else "GET")
        req.add_header("Accept", "application/json")
        if data is not None:
            req.add_header("Content-Type", "application/x-www-form-urlencoded")
        if bearer:
            req.add_header("Authorization", f"Bearer {bearer}")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            try:
                body = e.read().decode("utf-8", errors="ignore")
            except Exception:
                body = ""
            raise OAuthError(f"HTTP {e.code} from {self.name}: {body[:300]}") from e
        except urllib.error.URLError as e:
            raise OAuthError(f"{self.name} unreachable: {e.reason}") from e
        try:
            parsed = json.loads(raw.decode("utf-8"))
        except ValueError as e:
            raise OAuthError(f"Invalid JSON from {self.name}") from e
        if not isinstance(parsed, dict):
            raise OAuthError(f"Unexpected response from {self.name}")
        return parsed

    def exchange_code(self, code: str) -> str:
        """Trade the authorization code for an access token."""
        j = self._request_json(
            self.token_url,
            form={
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.callback_url,
                "grant_type": "authorization_code",
            },
        )
        token = j.get("access_token")
        if not token:
            raise OAuthError(f"No access token from {self.name}: {j.get('error_description') or j.get('error')}")
        return str(token)

    def fetch_profile(self, access_token: str) -> OAuthProfile:
        j = self._request_json(self.userinfo_url, bearer=access_token)
        if self.name == "google":
            profile = OAuthProfile(
                provider="google",
                provider_id=str(j.get("sub") or ""),
                email=(j.get("email") or "").strip().lower(),
                first_name=j.get("given_name"),
                last_name=j.get("family_name"),
                avatar=j.get("picture"),
                email_verified=j.get("email_verified") is True,
            )
        else:
            profile = OAuthProfile(
                provider="microsoft",
                provider_id=str(j.get("id") or ""),
                email=(j.get("mail") or j.get("userPrincipalName") or "").strip().lower(),
                first_name=j.get("givenName"),
                last_name=j.get("surname"),
                avatar=None,
                # Only a single-tenant app can trust the directory that owns the mailbox.
                email_verified=(self.tenant or "common").lower() not in MULTI_TENANT_AUTHORITIES,
            )
        if not profile.provider_id or not profile.email:
            raise OAuthError(f"{self.name} profile is missing id or email")
        return profile


def provider_from_config(name: str, config: dict) -> OAuthProvider:
    if name == "google":
        return OAuthProvider(
            name="google",
            client_id=(config.get("GOOGLE_CLIENT_ID") or "").strip(),
            client_secret=(config.get("GOOGLE_CLIENT_SECRET") or "").strip(),
            callback_url=(config.get("GOOGLE_CALLBACK_URL") or "").strip(),
            authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
            token_url="https://oauth2.googleapis.com/token",
            userinfo_url="https://www.googleapis.com/oauth2/v3/userinfo",
            scope="openid email profile",
        )
    if name == "microsoft":
        tenant = (config.get("MICROSOFT_TENANT") or "common").strip()
        base = f"https://login.microsoftonline.com/{tenant}/oauth2/v2.0"
        return OAuthProvider(
            name="microsoft",
            client_id=(config.get("MICROSOFT_CLIENT_ID") or "").strip(),
            client_secret=(config.get("MICROSOFT_CLIENT_SECRET") or "").strip(),
            callback_url=(config.get("MICROSOFT_CALLBACK_URL") or "").strip(),
            authorize_url=f"{base}/authorize",
            token_url=f"{base}/token",
            userinfo_url="https://graph.microsoft.com/v1.0/me",
            scope="openid email profile User.Read",
            tenant=tenant,
        )
    raise ValueError(f"Unknown OAuth provider: {name}")
