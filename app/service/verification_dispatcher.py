import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from ..config.settings import settings
from ..model.reset_artifact import (
    PhoneResetGrant,
    ResetArtifact,
    ResetMethod,
    latest_code_key,
    phone_grant_key,
    reset_code_key,
)
from ..model.user import User
from ..service.email_service import EmailService, generate_reset_code_email_template
from ..service.sms_service import SmsProviderError, SmsVerificationService
from ..service.token_store import TokenStore
from ..util.contact import normalize_email
from ..util.exceptions import DeliveryFailureException, InvalidOrExpiredException
from ..util.logger import logger


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_reset_code() -> str:
    """Gera código numérico de 6 dígitos"""
    return str(secrets.randbelow(10 ** settings.RESET_CODE_LENGTH)).zfill(settings.RESET_CODE_LENGTH)


class VerificationDispatcher:
    """
    Roteia cada etapa para o canal certo:

    - email: código próprio de 6 dígitos, guardado em `reset:<code>`
      e enviado por email;
    - phone: o provedor de OTP emite e confere o código; só após
      aprovação explícita criamos um `reset-allowed:<phone>`.

    Os dois caminhos nunca se cruzam: um código de email jamais valida
    um telefone e vice-versa.
    """

    def __init__(
            self,
            store: TokenStore,
            email_service: Optional[EmailService] = None,
            sms_service: Optional[SmsVerificationService] = None,
            clock: Callable[[], datetime] = utc_now
    ):
        self.store = store
        self.email_service = email_service or EmailService()
        self.sms_service = sms_service or SmsVerificationService()
        self.clock = clock

    # ==================== EMAIL ====================

    async def _new_unused_code(self) -> str:
        for _ in range(5):
            code = generate_reset_code()
            if await self.store.get(reset_code_key(code)) is None:
                return code

        logger.error("Could not find a free reset code after 5 attempts")
        raise DeliveryFailureException("Failed to send reset email")

    async def issue_email_code(self, user: User) -> None:
        now = self.clock()
        code = await self._new_unused_code()

        artifact = ResetArtifact(
            identifier_kind=ResetMethod.EMAIL,
            user_id=user.id,
            email=user.email,
            phone=user.phone,
            code=code,
            created_at=now,
            expires_at=now + timedelta(minutes=settings.RESET_CODE_EXPIRE_MINUTES)
        )

        if settings.RESET_CODE_SUPERSEDES_PREVIOUS:
            await self._supersede_previous_code(user.email, code)

        await self.store.store(reset_code_key(code), artifact.to_store(), settings.RESET_STORE_TTL_SECONDS)

        templates = generate_reset_code_email_template(
            code,
            user.name,
            settings.RESET_CODE_EXPIRE_MINUTES
        )

        sent = await self.email_service.send_email(
            to_email=user.email,
            subject="Your password reset code",
            body_html=templates["html"],
            body_text=templates["text"]
        )

        if not sent:
            await self.store.delete(reset_code_key(code))
            raise DeliveryFailureException("Failed to send reset email")

    async def _supersede_previous_code(self, email: str, code: str) -> None:
        pointer_key = latest_code_key(normalize_email(email))
        previous = await self.store.get(pointer_key)

        if previous and previous.get("code"):
            await self.store.delete(reset_code_key(previous["code"]))

        await self.store.store(pointer_key, {"code": code}, settings.RESET_STORE_TTL_SECONDS)

    async def validate_email_code(self, contact: str, code: str) -> ResetArtifact:
        """Carrega o artefato pelo código e exige contato igual e não expirado"""
        artifact = ResetArtifact.from_store(await self.store.get(reset_code_key(code)))

        if artifact is None or artifact.identifier_kind != ResetMethod.EMAIL:
            raise InvalidOrExpiredException()

        stored_contact = artifact.contact_for(ResetMethod.EMAIL)
        if not stored_contact or normalize_email(stored_contact) != normalize_email(contact):
            raise InvalidOrExpiredException()

        if artifact.is_expired(self.clock()):
            await self.store.delete(reset_code_key(code))
            raise InvalidOrExpiredException()

        return artifact

    async def consume_email_code(self, artifact: ResetArtifact) -> None:
        await self.store.delete(reset_code_key(artifact.code))

        if settings.RESET_CODE_SUPERSEDES_PREVIOUS and artifact.email:
            pointer_key = latest_code_key(normalize_email(artifact.email))
            latest = await self.store.get(pointer_key)
            if latest and latest.get("code") == artifact.code:
                await self.store.delete(pointer_key)

    # ==================== PHONE ====================

    async def issue_phone_otp(self, phone: str) -> None:
        sent = await self.sms_service.send_verification(phone)
        if not sent:
            raise DeliveryFailureException("Failed to send verification code")

    async def check_phone_otp(self, phone: str, code: str) -> PhoneResetGrant:
        """Confere com o provedor e, só com status "approved", cria o grant"""
        try:
            status = await self.sms_service.check_verification(phone, code)
        except SmsProviderError as e:
            logger.error(f"OTP check failed: {e}")
            raise DeliveryFailureException("Failed to verify code")

        if status != "approved":
            raise InvalidOrExpiredException()

        grant = PhoneResetGrant(
            phone=phone,
            expires_at=self.clock() + timedelta(minutes=settings.PHONE_GRANT_EXPIRE_MINUTES)
        )
        await self.store.store(
            phone_grant_key(phone),
            grant.to_store(),
            settings.PHONE_GRANT_EXPIRE_MINUTES * 60
        )
        return grant

    async def validate_phone_grant(self, phone: str) -> PhoneResetGrant:
        grant = PhoneResetGrant.from_store(await self.store.get(phone_grant_key(phone)))

        if grant is None or grant.phone != phone:
            raise InvalidOrExpiredException()

        if grant.is_expired(self.clock()):
            await self.store.delete(phone_grant_key(phone))
            raise InvalidOrExpiredException()

        return grant

    async def consume_phone_grant(self, phone: str) -> None:
        await self.store.delete(phone_grant_key(phone))
