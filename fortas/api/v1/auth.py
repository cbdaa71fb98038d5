"""
Authentication endpoints.
"""

from fastapi import APIRouter, HTTPException, Request, status

from fortas.api.deps import BearerToken, ClientId, CurrentUser, Identity, raise_for_outcome
from fortas.kernel.identity.profile import ProfileUpdate, UserProfile
from fortas.schemas.auth import (
    ActivityRequest,
    OTPConfirm,
    OTPRequest,
    OTPResponse,
    PasswordResetRequest,
    SessionResponse,
    SessionStatus,
    UserCreate,
    UserLogin,
)
from fortas.schemas.common import SuccessResponse

router = APIRouter()


@router.post("/register", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def register(data: UserCreate, identity: Identity, client_id: ClientId):
    """
    Register a new account.

    Logs the new user in for this client on success.
    """
    raise_for_outcome(await identity.register(
        full_name=data.full_name,
        email=data.email,
        mobile=data.mobile,
        password=data.password,
    ))

    outcome = await identity.login(
        identifier=data.email,
        password=data.password,
        remember_me=data.remember_me,
        client_id=client_id,
        remember_client=client_id is not None,
    )
    if not outcome.ok:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to authenticate after registration",
        )

    return SessionResponse(session_token=outcome.value.token, user=outcome.value.user)


@router.post("/login", response_model=SessionResponse)
async def login(data: UserLogin, identity: Identity, client_id: ClientId):
    """Authenticate by email or mobile and return a session token."""
    session = raise_for_outcome(await identity.login(
        identifier=data.email_or_mobile,
        password=data.password,
        remember_me=data.remember_me,
        client_id=client_id,
        remember_client=client_id is not None,
    ))
    return SessionResponse(session_token=session.token, user=session.user)


@router.post("/logout", response_model=SuccessResponse)
async def logout(user: CurrentUser, token: BearerToken, identity: Identity, client_id: ClientId):
    """Revoke the presented session token."""
    raise_for_outcome(await identity.end_session(token, client_id=client_id))
    return SuccessResponse(message="Logged out successfully")


@router.get("/session", response_model=SessionStatus)
async def session_status(identity: Identity, client_id: ClientId, token: BearerToken):
    """
    Report whether a session is live.

    A bearer token is checked directly; otherwise the X-Client-ID context's
    remembered session is used. With neither there is no session.
    """
    if token:
        outcome = await identity.authenticate_token(token)
        return SessionStatus(valid=outcome.ok, user=outcome.value)
    if client_id is None:
        return SessionStatus(valid=False)
    user = raise_for_outcome(await identity.current_user(client_id=client_id))
    return SessionStatus(valid=user is not None, user=user)


@router.post("/otp/request", response_model=OTPResponse)
async def request_otp(data: OTPRequest, identity: Identity, request: Request):
    """Send a one-time password (simulated delivery)."""
    settings = request.app.state.kernel.settings
    dispatch = raise_for_outcome(await identity.request_otp(data.target, data.purpose))
    return OTPResponse(
        success=dispatch.success,
        message=dispatch.message,
        otp=dispatch.code if settings.expose_otp_in_response else None,
    )


@router.post("/otp/confirm", response_model=SuccessResponse)
async def confirm_otp(data: OTPConfirm, identity: Identity):
    """Verify and consume a one-time password."""
    raise_for_outcome(await identity.confirm_otp(data.target, data.otp, data.purpose))
    return SuccessResponse(message="OTP verified")


@router.post("/password/reset", response_model=SuccessResponse)
async def reset_password(data: PasswordResetRequest, identity: Identity):
    """Set a new password using a `reset` OTP."""
    raise_for_outcome(await identity.reset_password(data.email, data.otp, data.new_password))
    return SuccessResponse(message="Password reset successfully")


@router.get("/me", response_model=UserProfile)
async def get_current_user_profile(user: CurrentUser):
    """Get current user's profile."""
    return user


@router.patch("/me", response_model=UserProfile)
async def update_profile(data: ProfileUpdate, user: CurrentUser, identity: Identity):
    """Update current user's profile."""
    return raise_for_outcome(await identity.update_profile(user.id, data))


@router.post("/me/upgrade", response_model=UserProfile)
async def upgrade_to_premium(user: CurrentUser, identity: Identity):
    """Upgrade current user to Premium."""
    return raise_for_outcome(await identity.upgrade_to_premium(user.id))


@router.post("/me/activity", status_code=status.HTTP_202_ACCEPTED, response_model=SuccessResponse)
async def record_activity(data: ActivityRequest, user: CurrentUser, identity: Identity):
    """Count a chat, file upload or report. Never fails."""
    await identity.record_activity(user.id, data.kind)
    return SuccessResponse(message="Activity recorded")
