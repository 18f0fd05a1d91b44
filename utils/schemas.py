"""
Pydantic schemas shared by the server, the connectors and the client.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ═══════════════════════════════════════════════════════════════════════════════
# Geolocation
# ═══════════════════════════════════════════════════════════════════════════════


class LocationData(BaseModel):
    ip: str
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None


# ═══════════════════════════════════════════════════════════════════════════════
# Sign-in protocol
# ═══════════════════════════════════════════════════════════════════════════════


class PollStatus(str, Enum):
    """Status strings reported by the upstream ``check_signin`` tool."""

    PENDING = "PENDING"
    SUCCESS = "SUCCESS"


class SigninHandle(BaseModel):
    """Hand-off URL (already rewritten to our origin) + correlation id."""

    url: str
    signin_id: Optional[str] = None


class GetBookListRequest(BaseModel):
    keywords: List[str] = Field(default_factory=list)


class PollSigninRequest(BaseModel):
    # Optional on purpose: a missing id is answered with 400, not a 422.
    signin_id: Optional[str] = None


# ═══════════════════════════════════════════════════════════════════════════════
# Brand / data-transform configuration
# ═══════════════════════════════════════════════════════════════════════════════


class DataTransformConfig(BaseModel):
    data_path: str
    result_field: str = "result"
    fields: Dict[str, str] = Field(default_factory=dict)
    dedupe_keys: List[str] = Field(default_factory=list)


class BrandConfig(BaseModel):
    brand_id: str
    brand_name: str
    logo_url: str = ""
    signin_tool: str
    poll_tool: str = "check_signin"
    data_transform: DataTransformConfig


class AccountRecord(BaseModel):
    """Canonical shape of one item of retrieved account data."""

    title: Optional[str] = None
    subtitle: Optional[str] = None
    date: Optional[str] = None
    image: Optional[str] = None
    url: Optional[str] = None
    rating: Optional[Any] = None
    category: Optional[str] = None
