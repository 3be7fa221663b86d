"""
Federated identity verifiers for Google and Facebook sign-in.

Each verifier turns a token obtained by the browser into a VerifiedIdentity,
or raises IdentityVerificationError. Network failures, provider rejections,
audience mismatches and unverified emails all raise the same error so the
caller can answer with a single "invalid token" response.

Email verification is mandatory: an email the provider has not confirmed
could belong to someone else, and email is the key accounts are merged on.
"""

import logging
from dataclasses import dataclass

import requests

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 10

GOOGLE_TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"
GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")

FACEBOOK_GRAPH_URL = "https://graph.facebook.com"


class IdentityVerificationError(Exception):
    """Provider token could not be verified."""


@dataclass(frozen=True)
class VerifiedIdentity:
    """Identity asserted by a federated provider."""

    provider: str
    provider_id: str
    email: str
    given_name: str | None = None
    family_name: str | None = None


def _get_json(url: str, params: dict) -> dict:
    try:
        response = requests.get(url, params=params, timeout=REQUEST_TIMEOUT_SECONDS)
    except requests.exceptions.RequestException as e:
        logger.error(f"Identity provider unreachable: {e}")
        raise IdentityVerificationError("Identity provider unreachable")

    try:
        data = response.json()
    except ValueError:
        raise IdentityVerificationError("Invalid response from identity provider")

    if response.status_code != 200:
        raise IdentityVerificationError(f"Identity provider rejected token ({response.status_code})")
    return data


class GoogleIdentityVerifier:
    """Verify Google ID tokens via the tokeninfo endpoint."""

    provider = "google"

    def __init__(self, client_id: str):
        if not client_id:
            raise ValueError("client_id is required")
        self._client_id = client_id

    def verify_id_token(self, id_token: str) -> VerifiedIdentity:
        """
        Raises:
            IdentityVerificationError: token invalid, issued for another
                client, or carrying an unverified email.
        """
        claims = _get_json(GOOGLE_TOKENINFO_URL, {"id_token": id_token})

        if claims.get("aud") != self._client_id:
            raise IdentityVerificationError("Google token audience mismatch")
        if claims.get("iss") not in GOOGLE_ISSUERS:
            raise IdentityVerificationError("Google token issuer mismatch")
        # tokeninfo returns booleans as strings
        if str(claims.get("email_verified", "")).lower() != "true":
            raise IdentityVerificationError("Google email is not verified")

        email = claims.get("email")
        subject = claims.get("sub")
        if not email or not subject:
            raise IdentityVerificationError("Google token missing email or sub claim")

        return VerifiedIdentity(
            provider=self.provider,
            provider_id=subject,
            email=email.lower(),
            given_name=claims.get("given_name"),
            family_name=claims.get("family_name"),
        )


class FacebookIdentityVerifier:
    """Verify Facebook user access tokens via the Graph API."""

    provider = "facebook"

    def __init__(self, app_id: str, app_secret: str):
        if not app_id:
            raise ValueError("app_id is required")
        if not app_secret:
            raise ValueError("app_secret is required")
        self._app_id = app_id
        self._app_secret = app_secret

    def verify_id_token(self, access_token: str) -> VerifiedIdentity:
        """
        Two calls: debug_token proves the token was minted for this app,
        then /me reads the profile.

        Raises:
            IdentityVerificationError: token invalid, for another app, or
                the profile exposes no email.
        """
        debug = _get_json(
            f"{FACEBOOK_GRAPH_URL}/debug_token",
            {
                "input_token": access_token,
                "access_token": f"{self._app_id}|{self._app_secret}",
            },
        ).get("data", {})

        if not debug.get("is_valid"):
            raise IdentityVerificationError("Facebook token is not valid")
        if str(debug.get("app_id")) != self._app_id:
            raise IdentityVerificationError("Facebook token issued for another app")

        profile = _get_json(
            f"{FACEBOOK_GRAPH_URL}/me",
            {"fields": "id,email,first_name,last_name", "access_token": access_token},
        )

        email = profile.get("email")
        subject = profile.get("id")
        if not email or not subject:
            raise IdentityVerificationError("Facebook profile missing email or id")

        return VerifiedIdentity(
            provider=self.provider,
            provider_id=str(subject),
            email=email.lower(),
            given_name=profile.get("first_name"),
            family_name=profile.get("last_name"),
        )
