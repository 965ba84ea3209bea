"""
Google service-account authentication.

Signs a JWT assertion with the service account's private key and exchanges it
for a short-lived access token using the OAuth2 JWT-bearer grant.
"""

from __future__ import annotations

import base64
import json
import logging
import time
from typing import Any, Callable, Dict, Iterable

import httpx
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from app.models.warehouse import BearerToken, ServiceAccountCredential

logger = logging.getLogger(__name__)

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"


class WarehouseError(Exception):
    """Base error for failures talking to the warehouse or its token endpoint."""


class ServiceAccountTokenError(WarehouseError):
    """Raised when signing the assertion or exchanging it for a token fails."""


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_json(payload: Dict[str, Any]) -> str:
    return _b64url(json.dumps(payload, separators=(",", ":")).encode("utf-8"))


class ServiceAccountTokenSigner:
    """Issue access tokens for a service account without a platform SDK."""

    TOKEN_URL = "https://oauth2.googleapis.com/token"
    ASSERTION_LIFETIME_SECONDS = 3600

    def __init__(
        self,
        credential: ServiceAccountCredential,
        scopes: Iterable[str],
        *,
        token_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._credential = credential
        self._scopes = tuple(scopes)
        self._token_url = token_url or self.TOKEN_URL
        self._http = http_client
        self._clock = clock
        self._private_key: rsa.RSAPrivateKey | None = None

    @property
    def token_url(self) -> str:
        return self._token_url

    def _load_private_key(self) -> rsa.RSAPrivateKey:
        if self._private_key is None:
            try:
                key = serialization.load_pem_private_key(
                    self._credential.private_key.encode("utf-8"), password=None
                )
            except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
                raise ServiceAccountTokenError(
                    f"Unable to load service account private key: {exc}"
                ) from exc
            if not isinstance(key, rsa.RSAPrivateKey):
                raise ServiceAccountTokenError("Service account key is not an RSA key.")
            self._private_key = key
        return self._private_key

    def build_assertion(self, now: int | None = None) -> str:
        """Return a compact RS256 JWT asserting the service account identity."""
        issued_at = int(self._clock()) if now is None else int(now)
        header = {"alg": "RS256", "typ": "JWT"}
        claims = {
            "iss": self._credential.client_email,
            "sub": self._credential.client_email,
            "aud": self._token_url,
            "scope": " ".join(self._scopes),
            "iat": issued_at,
            "exp": issued_at + self.ASSERTION_LIFETIME_SECONDS,
        }
        signing_input = f"{_b64url_json(header)}.{_b64url_json(claims)}"
        signature = self._load_private_key().sign(
            signing_input.encode("ascii"),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
        return f"{signing_input}.{_b64url(signature)}"

    async def _post_form(self, payload: Dict[str, str]) -> httpx.Response:
        try:
            if self._http is not None:
                return await self._http.post(self._token_url, data=payload)
            async with httpx.AsyncClient(timeout=None) as client:
                return await client.post(self._token_url, data=payload)
        except httpx.HTTPError as exc:
            raise ServiceAccountTokenError(
                f"Token endpoint request failed: {exc!r}"
            ) from exc

    async def fetch_token(self) -> BearerToken:
        """Exchange a freshly signed assertion for an access token."""
        requested_at = self._clock()
        payload = {
            "grant_type": JWT_BEARER_GRANT,
            "assertion": self.build_assertion(int(requested_at)),
        }

        response = await self._post_form(payload)

        if not response.is_success:
            logger.warning(
                "Token exchange for %s failed with status %s",
                self._credential.client_email,
                response.status_code,
            )
            raise ServiceAccountTokenError(
                f"Failed to get access token: {response.text}"
            )

        try:
            token_payload = response.json()
        except ValueError as exc:
            raise ServiceAccountTokenError(
                f"Token response is not valid JSON: {response.text}"
            ) from exc
        if not isinstance(token_payload, dict):
            raise ServiceAccountTokenError(
                f"Token response is not a JSON object: {response.text}"
            )

        access_token = token_payload.get("access_token")
        expires_in = token_payload.get("expires_in")
        if not isinstance(access_token, str) or not access_token or expires_in is None:
            raise ServiceAccountTokenError(
                f"Incomplete token payload returned from Google: {response.text}"
            )
        try:
            lifetime = float(expires_in)
        except (TypeError, ValueError) as exc:
            raise ServiceAccountTokenError(
                f"Token response has an invalid expires_in: {response.text}"
            ) from exc

        logger.debug("Issued access token for %s", self._credential.client_email)
        return BearerToken(access_token=access_token, expires_at=requested_at + lifetime)


__all__ = [
    "JWT_BEARER_GRANT",
    "ServiceAccountTokenError",
    "ServiceAccountTokenSigner",
    "WarehouseError",
]
