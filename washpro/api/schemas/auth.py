"""
Pydantic v2 schemas for authentication API endpoints: staff login and
registration, token refresh and the phone-based customer login.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from washpro.models import UserRole

from .common import CamelModel


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class LoginRequest(CamelModel):
    """Request body for POST /auth/login."""

    email: str = Field(..., description="User email address")
    password: str = Field(..., description="Password")


class RefreshRequest(CamelModel):
    """Request body for POST /auth/refresh."""

    refresh_token: str = Field(..., description="Refresh token")


class RegisterAdminRequest(CamelModel):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=8, max_length=128)
    display_name: str = Field(..., min_length=1, max_length=200)


class RegisterCompanyRequest(CamelModel):
    """Request body for POST /auth/register/company.

    Creates the company admin account and the (inactive) company.
    """

    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=8, max_length=128)
    display_name: str = Field(..., min_length=1, max_length=200)
    phone: Optional[str] = Field(None, max_length=30)
    company_name: str = Field(..., min_length=1, max_length=255)
    company_description: Optional[str] = None
    price_per_wash: Decimal = Field(..., gt=0, description="Wash price in AED")
    trade_license_number: Optional[str] = Field(None, max_length=100)
    trade_license_document_url: Optional[str] = None


class RegisterCleanerRequest(CamelModel):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=8, max_length=128)
    display_name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., min_length=3, max_length=30)
    company_id: uuid.UUID


class CustomerLoginRequest(CamelModel):
    """Request body for POST /customer/login."""

    phone_number: str = Field(..., min_length=3, max_length=30)
    display_name: Optional[str] = Field(None, max_length=200)
    email: Optional[str] = Field(None, max_length=320)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class UserOut(CamelModel):
    """Public staff user representation returned to clients."""

    id: uuid.UUID
    email: str
    display_name: str
    phone: Optional[str] = None
    role: UserRole = Field(description="cleaner, company_admin or admin")
    company_id: Optional[uuid.UUID] = None
    is_active: bool
    created_at: datetime


class CustomerOut(CamelModel):
    id: uuid.UUID
    phone: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    created_at: datetime


class TokensOut(CamelModel):
    """JWT token pair returned after authentication."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: datetime


class AuthResponse(CamelModel):
    user: UserOut
    tokens: TokensOut


class CustomerAuthResponse(CamelModel):
    customer: CustomerOut
    tokens: TokensOut


class ValidatePhoneOut(CamelModel):
    valid: bool
    company_id: Optional[uuid.UUID] = None
    company_name: Optional[str] = None
    message: str
