"""Authentication endpoints."""

from fastapi import APIRouter

from otpflow.api.deps import AuthFlowDep, ClientOrigin, CurrentUser
from otpflow.models import UserRead
from otpflow.schemas import (
    CodeIssuedData,
    IdentifierRequest,
    OtpValidationRequest,
    RefreshRequest,
    SessionData,
    SuccessResponse,
    TokenData,
    UserData,
    VerifyData,
    VerifyRequest,
)
from otpflow.services.auth_flow import AuthResult, CodeIssued

router = APIRouter()


def _code_issued_data(issued: CodeIssued, include_user_id: bool = False) -> CodeIssuedData:
    return CodeIssuedData(
        expires_at=issued.expires_at,
        identifier=issued.identifier,
        type=issued.type,
        user_id=issued.user_id if include_user_id else None,
        verification_code=issued.verification_code,
    )


def _delivery_phrase(issued: CodeIssued) -> str:
    return "sent to" if issued.delivered else "generated for"


def _session_data(result: AuthResult) -> SessionData:
    return SessionData(
        user=UserRead.model_validate(result.user),
        token=result.access_token,
        refresh_token=result.refresh_token,
    )


@router.post(
    "/register",
    response_model=SuccessResponse[CodeIssuedData],
    response_model_exclude_none=True,
)
async def register(request: IdentifierRequest, flow: AuthFlowDep, origin: ClientOrigin):
    """
    Register a new identity by email or phone.

    Creates an unverified user and issues a verification code.
    """
    issued = await flow.register(request.identifier, origin, request.type)
    return SuccessResponse(
        message=(
            "User registered successfully. "
            f"Verification code {_delivery_phrase(issued)} {issued.identifier}"
        ),
        data=_code_issued_data(issued, include_user_id=True),
    )


@router.post(
    "/signin",
    response_model=SuccessResponse[CodeIssuedData],
    response_model_exclude_none=True,
)
async def signin(request: IdentifierRequest, flow: AuthFlowDep, origin: ClientOrigin):
    """Issue a verification code to an existing identity."""
    issued = await flow.signin(request.identifier, origin, request.type)
    return SuccessResponse(
        message=f"Verification code {_delivery_phrase(issued)} {issued.identifier}",
        data=_code_issued_data(issued),
    )


@router.post(
    "/resend",
    response_model=SuccessResponse[CodeIssuedData],
    response_model_exclude_none=True,
)
async def resend(request: IdentifierRequest, flow: AuthFlowDep, origin: ClientOrigin):
    """Replace the outstanding verification code with a new one."""
    issued = await flow.resend(request.identifier, origin)
    return SuccessResponse(
        message=f"New verification code {_delivery_phrase(issued)} {issued.identifier}",
        data=_code_issued_data(issued),
    )


@router.post("/validate-otp", response_model=SuccessResponse[SessionData])
async def validate_otp(request: OtpValidationRequest, flow: AuthFlowDep, origin: ClientOrigin):
    """
    Redeem a verification code.

    Returns an access token and a refresh token.
    """
    result = await flow.validate_otp(request.identifier, request.code, origin, request.type)
    return SuccessResponse(message="OTP validated successfully", data=_session_data(result))


@router.post("/verify", response_model=SuccessResponse[VerifyData])
async def verify(request: VerifyRequest, flow: AuthFlowDep, origin: ClientOrigin):
    """
    Redeem a verification code for an access token only.
    """
    result = await flow.verify(request.identifier, request.code, origin)
    return SuccessResponse(
        message="Verification successful",
        data=VerifyData(user=UserRead.model_validate(result.user), token=result.access_token),
    )


@router.get("/me", response_model=SuccessResponse[UserData])
async def get_current_user_info(user: CurrentUser):
    """Get current authenticated user info."""
    return SuccessResponse(
        message="User profile retrieved successfully",
        data=UserData(user=UserRead.model_validate(user)),
    )


@router.post("/refresh", response_model=SuccessResponse[TokenData])
async def refresh(request: RefreshRequest, flow: AuthFlowDep, origin: ClientOrigin):
    """Exchange a refresh token for a new access token."""
    result = await flow.refresh(request.refresh_token, origin)
    return SuccessResponse(message="Token refreshed successfully", data=TokenData(token=result.access_token))
