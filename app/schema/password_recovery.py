from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..model.reset_artifact import ResetMethod


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ForgotPasswordRequest(CamelModel):
    """Inicia recuperação por email ou telefone"""
    method: ResetMethod = Field(..., description="email ou phone")
    contact: str = Field(..., min_length=1, description="Email ou telefone da conta")
    country_code: Optional[str] = Field(None, alias="countryCode", description="DDI explícito para o telefone")


class VerifyResetCodeRequest(ForgotPasswordRequest):
    code: str = Field(..., min_length=1, description="Código recebido")


class ResetPasswordRequest(ForgotPasswordRequest):
    # Opcional no caminho phone: vale o grant criado na verificação
    code: Optional[str] = Field(None, description="Código recebido")
    new_password: str = Field(..., alias="newPassword", description="Nova senha")


class ForgotPasswordLinkRequest(CamelModel):
    email: str = Field(..., min_length=1)


class ResetPasswordTokenRequest(CamelModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., alias="newPassword")


class MessageResponse(CamelModel):
    message: str


class ForgotPasswordResponse(MessageResponse):
    method: ResetMethod
    user_id: Optional[str] = Field(None, alias="userId")
    phone: Optional[str] = None


class VerifyResetCodeResponse(MessageResponse):
    user_id: str = Field(..., alias="userId")


class VerifyResetTokenResponse(CamelModel):
    valid: bool
    email: str
