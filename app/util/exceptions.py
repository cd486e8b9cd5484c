# app/util/exceptions.py
from fastapi import HTTPException, status
from typing import Any, Dict, Optional


class AuthException(HTTPException):
    """Exceção customizada para autenticação"""

    def __init__(
            self,
            detail: str = "Invalid credentials",
            status_code: int = status.HTTP_401_UNAUTHORIZED,
            headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            status_code=status_code,
            detail=detail,
            headers=headers or {"WWW-Authenticate": "Bearer"}
        )


class ValidationException(HTTPException):
    """Campos ausentes, método inválido ou senha curta"""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail
        )


class NotFoundException(HTTPException):
    """Contato não corresponde a nenhuma conta"""

    def __init__(self, detail: str = "User not found"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail
        )


class InvalidOrExpiredException(HTTPException):
    """
    Código/grant ausente, divergente ou expirado.
    Não distingue "código errado" de "código expirado".
    """

    def __init__(self, detail: str = "Invalid or expired code"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail
        )


class DeliveryFailureException(HTTPException):
    """Falha no provedor de email ou SMS/OTP"""

    def __init__(self, detail: str = "Failed to send verification code"):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail
        )


class RateLimitException(HTTPException):
    """Exceção para rate limiting"""

    def __init__(self, retry_after: int):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Too many requests. Try again in {retry_after} seconds",
            headers={"Retry-After": str(retry_after)}
        )
