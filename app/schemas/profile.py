"""Schemas for user profile and credit endpoints."""

from __future__ import annotations

from pydantic import BaseModel


class ProfileInitRequest(BaseModel):
    name: str = ""
    email: str = ""


class CreditDeductionResponse(BaseModel):
    success: bool = True
    remainingCredits: int
    message: str


__all__ = ["CreditDeductionResponse", "ProfileInitRequest"]
