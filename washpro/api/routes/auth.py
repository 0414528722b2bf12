"""
Authentication API routes
=========================

Staff accounts (platform admin, company admin, cleaner) log in with email
and password; customers use the phone login under ``/customer``.

Routes:
  POST /api/auth/login                    -- authenticate with email & password
  POST /api/auth/logout                   -- log out (client-side token discard)
  GET  /api/auth/me                       -- the currently authenticated user
  POST /api/auth/refresh                  -- exchange a refresh token for new tokens
  POST /api/auth/register/admin           -- first admin, or by an existing admin
  POST /api/auth/register/company         -- company admin + inactive company
  POST /api/auth/register/cleaner         -- cleaner under a company
  GET  /api/auth/validate-cleaner-phone   -- does the phone have an invitation
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from washpro.api.deps import CurrentUser, DBSession, OptionalUser
from washpro.api.schemas.auth import (
    AuthResponse,
    LoginRequest,
    RefreshRequest,
    RegisterAdminRequest,
    RegisterCleanerRequest,
    RegisterCompanyRequest,
    TokensOut,
    UserOut,
    ValidatePhoneOut,
)
from washpro.api.schemas.common import MessageOut
from washpro.services import auth_service, cleanerService

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _auth_response(user, tokens: dict) -> AuthResponse:
    return AuthResponse(user=UserOut.model_validate(user), tokens=TokensOut(**tokens))


# ---------------------------------------------------------------------------
# POST /auth/login
# ---------------------------------------------------------------------------

@router.post(
    "/login",
    response_model=AuthResponse,
    response_model_by_alias=True,
    summary="Log in with email and password",
)
async def login(db: DBSession, body: LoginRequest) -> AuthResponse:
    try:
        user, tokens = await auth_service.login(db, body.email, body.password)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        )
    return _auth_response(user, tokens)


# ---------------------------------------------------------------------------
# POST /auth/logout
# ---------------------------------------------------------------------------

@router.post(
    "/logout",
    response_model=MessageOut,
    summary="Log out",
    description="Tokens are stateless; the client discards them.",
)
async def logout(user: CurrentUser) -> MessageOut:
    return MessageOut(message="Logged out")


# ---------------------------------------------------------------------------
# GET /auth/me
# ---------------------------------------------------------------------------

@router.get(
    "/me",
    response_model=UserOut,
    response_model_by_alias=True,
    summary="Get the current user",
)
async def me(user: CurrentUser) -> UserOut:
    return UserOut.model_validate(user)


# ---------------------------------------------------------------------------
# POST /auth/refresh
# ---------------------------------------------------------------------------

@router.post(
    "/refresh",
    response_model=TokensOut,
    response_model_by_alias=True,
    summary="Refresh the token pair",
)
async def refresh(db: DBSession, body: RefreshRequest) -> TokensOut:
    try:
        tokens = await auth_service.refresh_token(db, body.refresh_token)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        )
    return TokensOut(**tokens)


# ---------------------------------------------------------------------------
# POST /auth/register/*
# ---------------------------------------------------------------------------

@router.post(
    "/register/admin",
    response_model=AuthResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    summary="Register a platform admin",
)
async def register_admin(
    db: DBSession,
    body: RegisterAdminRequest,
    user: OptionalUser,
) -> AuthResponse:
    try:
        admin, tokens = await auth_service.register_admin(
            db,
            body.email,
            body.password,
            body.display_name,
            requested_by=user,
        )
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return _auth_response(admin, tokens)


@router.post(
    "/register/company",
    response_model=AuthResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    summary="Register a company",
    description="The company stays inactive until a platform admin approves it.",
)
async def register_company(db: DBSession, body: RegisterCompanyRequest) -> AuthResponse:
    try:
        user, _company, tokens = await auth_service.register_company(
            db,
            email=body.email,
            password=body.password,
            display_name=body.display_name,
            phone=body.phone,
            company_name=body.company_name,
            company_description=body.company_description,
            price_per_wash=body.price_per_wash,
            trade_license_number=body.trade_license_number,
            trade_license_document_url=body.trade_license_document_url,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return _auth_response(user, tokens)


@router.post(
    "/register/cleaner",
    response_model=AuthResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    summary="Register a cleaner",
)
async def register_cleaner(db: DBSession, body: RegisterCleanerRequest) -> AuthResponse:
    try:
        user, _cleaner, tokens = await auth_service.register_cleaner(
            db,
            email=body.email,
            password=body.password,
            display_name=body.display_name,
            phone=body.phone,
            company_id=body.company_id,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return _auth_response(user, tokens)


# ---------------------------------------------------------------------------
# GET /auth/validate-cleaner-phone
# ---------------------------------------------------------------------------

@router.get(
    "/validate-cleaner-phone",
    response_model=ValidatePhoneOut,
    response_model_by_alias=True,
    summary="Check a phone number for a pending cleaner invitation",
)
async def validate_cleaner_phone(
    db: DBSession,
    phone: str = Query(..., min_length=3),
) -> ValidatePhoneOut:
    return ValidatePhoneOut(**await cleanerService.validate_cleaner_phone(db, phone))
