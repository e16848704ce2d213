"""Authentication API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from gatekeeper.api.deps import get_auth_service, get_current_identity
from gatekeeper.core.i18n import request_locale, translate
from gatekeeper.core.request_utils import get_client_ip
from gatekeeper.schemas.auth import (
    DeviceResponse,
    LoginRequest,
    LogoutRequest,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from gatekeeper.schemas.common import MessageResponse
from gatekeeper.services.auth import AuthService
from gatekeeper.services.rate_limit import get_rate_limiter
from gatekeeper.services.request_auth import Identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/register",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register(
    body: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """Create an account with the default role and sign in the registering device."""
    _, pair = await auth_service.register(
        body.email,
        body.password,
        body.device_meta(),
        first_name=body.first_name,
        last_name=body.last_name,
    )
    return TokenResponse(**pair.as_response())


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """Authenticate and get a token pair for the calling device.

    Attempts are limited per client address and e-mail.
    """
    decision = await get_rate_limiter().check_login(get_client_ip(request), body.email)
    decision.raise_if_denied("rateLimit.loginExceeded")
    response.headers.update(decision.headers)

    _, pair = await auth_service.login(body.email, body.password, body.device_meta())
    return TokenResponse(**pair.as_response())


@router.post("/refresh", response_model=TokenResponse)
async def refresh_tokens(
    body: RefreshRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """Exchange a refresh token for a new pair (rotation).

    The presented refresh token is invalidated; presenting it again fails.
    """
    _, pair = await auth_service.refresh(
        body.refresh_token,
        device_type=body.device_type.value if body.device_type else None,
        device_id=body.device_id,
    )
    return TokenResponse(**pair.as_response())


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    body: LogoutRequest | None = None,
    identity: Identity = Depends(get_current_identity),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Revoke the current access token.

    When a refresh token is supplied it is revoked too and its device
    signed out.
    """
    await auth_service.logout(identity.claims, body.refresh_token if body else None)
    logger.info(f"User logged out: {identity.email}", extra={"subject_id": identity.subject_id})
    return MessageResponse(message=translate("auth.logout.success", request_locale(request)))


@router.post("/logout-all", response_model=MessageResponse)
async def logout_all(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Revoke every token of the current user and sign out all devices."""
    count = await auth_service.logout_all(identity.user.id)
    logger.info(
        f"User logged out everywhere: {identity.email} ({count} devices)",
        extra={"subject_id": identity.subject_id},
    )
    return MessageResponse(message=translate("auth.logout.allSuccess", request_locale(request)))


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    identity: Identity = Depends(get_current_identity),
) -> UserResponse:
    """Get the current user's information."""
    return UserResponse.from_user(identity.user)


@router.get("/devices", response_model=list[DeviceResponse])
async def list_devices(
    identity: Identity = Depends(get_current_identity),
    auth_service: AuthService = Depends(get_auth_service),
) -> list[DeviceResponse]:
    """List the current user's signed-in devices."""
    devices = await auth_service.devices.list_devices(identity.user.id)
    return [DeviceResponse.model_validate(device) for device in devices]


@router.delete("/devices/{device_id}", response_model=MessageResponse)
async def revoke_device(
    device_id: str,
    request: Request,
    identity: Identity = Depends(get_current_identity),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Sign out one of the current user's devices."""
    locale = request_locale(request)
    if not await auth_service.devices.deactivate(identity.user.id, device_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=translate("auth.device.notFound", locale),
        )
    return MessageResponse(message=translate("auth.device.revoked", locale))
