"""
Domain models for warehouse authentication and query requests.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ServiceAccountCredential(BaseModel):
    """Service-account identity used to sign token assertions."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    client_email: str = Field(..., description="Subject identity of the service account.")
    private_key: str = Field(..., description="PEM encoded PKCS#8 RSA private key.")
    project_id: Optional[str] = None
    token_uri: Optional[str] = None

    @classmethod
    def from_json(cls, raw: str) -> "ServiceAccountCredential":
        """Parse a service-account key document."""
        return cls.model_validate(json.loads(raw))

    def __repr__(self) -> str:
        return f"ServiceAccountCredential(client_email={self.client_email!r})"

    __str__ = __repr__


class BearerToken(BaseModel):
    """Access token issued by the identity provider."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    expires_at: float = Field(..., description="Expiry as epoch seconds.")

    def is_usable(self, now: float, leeway: float = 60.0) -> bool:
        return now < self.expires_at - leeway


class QueryRequest(BaseModel):
    """A named-parameter SQL query sent to the warehouse."""

    query: str
    params: Dict[str, Any] = Field(default_factory=dict)
    types: Dict[str, str] = Field(default_factory=dict)
    location: Optional[str] = None


__all__ = ["BearerToken", "QueryRequest", "ServiceAccountCredential"]
