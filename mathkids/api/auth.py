import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse

from mathkids.api.deps import get_services
from mathkids.config import Settings
from mathkids.schemas.auth import (
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PrincipalRead,
    RegisteredUser,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    VerifyTokenResponse,
)
from mathkids.services.container import AuthServices
from mathkids.services.password_reset import RESET_SUCCESS_MESSAGE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])


def _set_auth_cookie(
    response: Response, settings: Settings, token: str, name: str | None = None
) -> None:
    response.set_cookie(
        name or settings.auth_cookie_name,
        token,
        max_age=settings.remember_me_ttl_days * 24 * 60 * 60,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


def _clear_auth_cookie(
    response: Response, settings: Settings, name: str | None = None
) -> None:
    response.delete_cookie(
        name or settings.auth_cookie_name,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


def _clear_all_auth_cookies(response: Response, settings: Settings) -> None:
    _clear_auth_cookie(response, settings)
    _clear_auth_cookie(response, settings, settings.admin_cookie_name)


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
)
def register(
    payload: RegisterRequest, services: AuthServices = Depends(get_services)
) -> RegisterResponse:
    user = services.registrations.register(
        payload.name,
        payload.email,
        payload.password,
        payload.birth_date,
        payload.terms_accepted,
    )
    return RegisterResponse(
        message="User registered successfully",
        user=RegisteredUser(id=user.id, email=user.email, name=user.display_name),
    )


@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    services: AuthServices = Depends(get_services),
) -> LoginResponse:
    result = services.login.login(
        payload.email,
        payload.password,
        remember_me=payload.remember_me,
        user_agent=request.headers.get("user-agent"),
        ip_address=_client_ip(request),
    )
    if result.persistent_token:
        _set_auth_cookie(response, services.settings, result.persistent_token)
    if result.admin_remember_token:
        _set_auth_cookie(
            response,
            services.settings,
            result.admin_remember_token,
            name=services.settings.admin_cookie_name,
        )
    return LoginResponse(
        message="Login successful",
        user=PrincipalRead(**result.principal.as_dict()),
        session_token=result.session_token,
        remember_me=payload.remember_me,
        persistent_token_set=result.remembered,
    )


@router.get("/verify-token", response_model=VerifyTokenResponse)
def verify_token(request: Request, services: AuthServices = Depends(get_services)):
    settings = services.settings
    raw = request.cookies.get(settings.auth_cookie_name)
    admin_raw = request.cookies.get(settings.admin_cookie_name)
    try:
        principal = services.login.resolve(raw, admin_token=admin_raw)
    except HTTPException as exc:
        error = JSONResponse(status_code=exc.status_code, content=exc.detail)
        if raw or admin_raw:
            _clear_all_auth_cookies(error, settings)
        return error
    return VerifyTokenResponse(
        message="Valid token", user=PrincipalRead(**principal.as_dict())
    )


@router.post("/logout", response_model=MessageResponse)
def logout(
    request: Request,
    response: Response,
    services: AuthServices = Depends(get_services),
) -> MessageResponse:
    services.login.logout(request.cookies.get(services.settings.auth_cookie_name))
    _clear_all_auth_cookies(response, services.settings)
    return MessageResponse(message="Logged out successfully")


@router.post(
    "/forgot-password",
    response_model=ForgotPasswordResponse,
    response_model_exclude_none=True,
)
def forgot_password(
    payload: ForgotPasswordRequest, services: AuthServices = Depends(get_services)
) -> ForgotPasswordResponse:
    result = services.password_reset.request_reset(payload.email)
    return ForgotPasswordResponse(message=result.message, dev_info=result.dev_info)


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(
    payload: ResetPasswordRequest, services: AuthServices = Depends(get_services)
) -> MessageResponse:
    services.password_reset.redeem_reset(
        payload.token, payload.email, payload.new_password
    )
    return MessageResponse(message=RESET_SUCCESS_MESSAGE)
