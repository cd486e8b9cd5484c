"""
Registros efêmeros do fluxo de recuperação de senha.

Não são tabelas: vivem no token store (Redis ou mapa em memória)
serializados em JSON, com os nomes de campo em camelCase usados pelo app.
"""
import enum
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..util.logger import logger


class ResetMethod(str, enum.Enum):
    EMAIL = "email"
    PHONE = "phone"


class StoredRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    expires_at: datetime = Field(..., alias="expiresAt")

    def is_expired(self, now: datetime) -> bool:
        # Válido até expiresAt inclusive
        return now > self.expires_at

    def to_store(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_store(cls, data: Optional[dict]):
        if data is None:
            return None
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            # Registro malformado conta como inexistente
            logger.warning(f"Discarding malformed {cls.__name__} record: {e.error_count()} errors")
            return None


class ResetArtifact(StoredRecord):
    """Uma tentativa de recuperação pelo caminho de email (chave `reset:<code>`)"""
    identifier_kind: ResetMethod = Field(ResetMethod.EMAIL, alias="identifierKind")
    user_id: str = Field(..., alias="userId")
    email: Optional[str] = None
    phone: Optional[str] = None
    code: str
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    def contact_for(self, method: ResetMethod) -> Optional[str]:
        return self.email if method == ResetMethod.EMAIL else self.phone


class PhoneResetGrant(StoredRecord):
    """Telefone já aprovado pelo provedor de OTP (chave `reset-allowed:<phone>`)"""
    phone: str


class ResetLinkToken(StoredRecord):
    """Fluxo legado por link (chave `reset-link:<token>`)"""
    user_id: str = Field(..., alias="userId")
    email: str
    created_at: datetime = Field(..., alias="createdAt")


def reset_code_key(code: str) -> str:
    return f"reset:{code}"


def phone_grant_key(phone: str) -> str:
    return f"reset-allowed:{phone}"


def reset_link_key(token: str) -> str:
    return f"reset-link:{token}"


def latest_code_key(email: str) -> str:
    return f"reset-latest:{email}"
