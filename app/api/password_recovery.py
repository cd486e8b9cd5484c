from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from ..config.database import get_db
from ..config.redis_config import get_token_store
from ..middleware.rate_limiter import (
    forgot_password_limiter,
    reset_password_limiter,
    verify_code_limiter,
)
from ..service.email_service import EmailService
from ..service.password_recovery_service import PasswordRecoveryService
from ..service.sms_service import SmsVerificationService
from ..service.token_store import TokenStore
from ..schema.password_recovery import (
    ForgotPasswordLinkRequest,
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    MessageResponse,
    ResetPasswordRequest,
    ResetPasswordTokenRequest,
    VerifyResetCodeRequest,
    VerifyResetCodeResponse,
    VerifyResetTokenResponse,
)

router = APIRouter(prefix="/auth", tags=["Password Recovery"])


def get_email_service() -> EmailService:
    return EmailService()


def get_sms_service() -> SmsVerificationService:
    return SmsVerificationService()


def get_recovery_service(
        db: Session = Depends(get_db),
        store: TokenStore = Depends(get_token_store),
        email_service: EmailService = Depends(get_email_service),
        sms_service: SmsVerificationService = Depends(get_sms_service)
) -> PasswordRecoveryService:
    return PasswordRecoveryService(db, store, email_service=email_service, sms_service=sms_service)


def _client_ip(req: Request):
    return req.client.host if req.client else None


@router.post(
    "/forgot-password",
    response_model=ForgotPasswordResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(forgot_password_limiter)]
)
async def forgot_password(
        request: ForgotPasswordRequest,
        req: Request,
        service: PasswordRecoveryService = Depends(get_recovery_service)
):
    """
    Solicita recuperação de senha.
    Email: envia código de 6 dígitos. Phone: pede OTP ao provedor.
    O código nunca volta na resposta.
    """
    return await service.request_reset(
        method=request.method,
        contact=request.contact,
        country_code=request.country_code,
        ip_address=_client_ip(req)
    )


@router.post(
    "/verify-reset-code",
    response_model=VerifyResetCodeResponse,
    dependencies=[Depends(verify_code_limiter)]
)
async def verify_reset_code(
        request: VerifyResetCodeRequest,
        req: Request,
        service: PasswordRecoveryService = Depends(get_recovery_service)
):
    return await service.verify_code(
        method=request.method,
        contact=request.contact,
        code=request.code,
        country_code=request.country_code,
        ip_address=_client_ip(req)
    )


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    dependencies=[Depends(reset_password_limiter)]
)
async def reset_password(
        request: ResetPasswordRequest,
        req: Request,
        service: PasswordRecoveryService = Depends(get_recovery_service)
):
    """
    Efetua o reset da senha.
    O código (ou o grant do telefone) é revalidado e consumido.
    """
    return await service.commit_password(
        method=request.method,
        contact=request.contact,
        code=request.code,
        new_password=request.new_password,
        country_code=request.country_code,
        ip_address=_client_ip(req)
    )


# ==================== FLUXO LEGADO (LINK) ====================

@router.post(
    "/forgot-password-link",
    response_model=MessageResponse,
    dependencies=[Depends(forgot_password_limiter)]
)
async def forgot_password_link(
        request: ForgotPasswordLinkRequest,
        req: Request,
        service: PasswordRecoveryService = Depends(get_recovery_service)
):
    return await service.request_reset_link(request.email, ip_address=_client_ip(req))


@router.get("/verify-reset-token/{token}", response_model=VerifyResetTokenResponse)
async def verify_reset_token(
        token: str,
        service: PasswordRecoveryService = Depends(get_recovery_service)
):
    return await service.verify_reset_token(token)


@router.post(
    "/reset-password-token",
    response_model=MessageResponse,
    dependencies=[Depends(reset_password_limiter)]
)
async def reset_password_with_token(
        request: ResetPasswordTokenRequest,
        req: Request,
        service: PasswordRecoveryService = Depends(get_recovery_service)
):
    return await service.commit_password_with_token(
        request.token,
        request.new_password,
        ip_address=_client_ip(req)
    )
