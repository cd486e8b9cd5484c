import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional, Union
from sqlalchemy.orm import Session
from ..model.user import User
from ..model.reset_artifact import ResetLinkToken, ResetMethod, reset_link_key
from ..service.email_service import (
    EmailService,
    generate_password_changed_template,
    generate_reset_link_email_template,
)
from ..service.sms_service import SmsVerificationService
from ..service.token_store import TokenStore
from ..service.verification_dispatcher import VerificationDispatcher, utc_now
from ..config.settings import settings
from ..util.contact import mask_contact, normalize_contact, normalize_email
from ..util.exceptions import (
    DeliveryFailureException,
    InvalidOrExpiredException,
    NotFoundException,
    ValidationException,
)
from ..util.logger import AuditLogger, logger
from ..util.security import hash_password
from ..util.validators import PasswordValidator

RESET_CODE_SENT_EMAIL = "Password reset code sent to your email!"
RESET_CODE_SENT_PHONE = "Verification code sent to your phone!"
RESET_LINK_SENT = "Password reset link sent to your email!"
CODE_VERIFIED = "Code verified"
PASSWORD_UPDATED = "Password updated successfully!"


def generate_reset_token() -> str:
    """Gera token único para o link de reset"""
    return secrets.token_urlsafe(32)


def parse_method(method: Union[str, ResetMethod, None]) -> ResetMethod:
    try:
        return ResetMethod(method)
    except ValueError:
        raise ValidationException("Method must be either 'email' or 'phone'")


class PasswordRecoveryService:
    """
    Máquina de estados da recuperação de senha:
    request -> verify -> commit.

    Cada etapa revalida expiração e correspondência do contato. Não há
    sessão entre verify e commit no caminho de email: o cliente reenvia
    o código, que é checado de novo.
    """

    def __init__(
            self,
            db: Session,
            store: TokenStore,
            email_service: Optional[EmailService] = None,
            sms_service: Optional[SmsVerificationService] = None,
            clock: Callable[[], datetime] = utc_now
    ):
        self.db = db
        self.store = store
        self.email_service = email_service or EmailService()
        self.clock = clock
        self.dispatcher = VerificationDispatcher(
            store,
            email_service=self.email_service,
            sms_service=sms_service,
            clock=clock
        )

    def _find_user(self, method: ResetMethod, contact: str) -> Optional[User]:
        if method == ResetMethod.PHONE:
            return self.db.query(User).filter(User.phone == contact).first()
        return self.db.query(User).filter(User.email == contact).first()

    def _require_user(self, method: ResetMethod, contact: str) -> User:
        user = self._find_user(method, contact)
        if not user:
            raise NotFoundException()
        return user

    @staticmethod
    def _require_contact(contact: Optional[str]) -> str:
        if not contact or not contact.strip():
            raise ValidationException("Method and contact are required")
        return contact

    async def request_reset(
            self,
            method: Union[str, ResetMethod],
            contact: str,
            country_code: Optional[str] = None,
            ip_address: Optional[str] = None
    ) -> dict:
        """Emite código (email) ou pede OTP ao provedor (phone)"""
        method = parse_method(method)
        normalized = normalize_contact(method.value, self._require_contact(contact), country_code)

        user = self._find_user(method, normalized)
        if not user:
            AuditLogger.log_recovery_event(
                "forgot_password", contact=mask_contact(normalized), method=method.value,
                ip_address=ip_address, success=False, details={"reason": "not_found"}
            )
            raise NotFoundException()

        if method == ResetMethod.EMAIL:
            await self.dispatcher.issue_email_code(user)
            response = {"message": RESET_CODE_SENT_EMAIL, "method": method.value}
        else:
            await self.dispatcher.issue_phone_otp(normalized)
            response = {
                "message": RESET_CODE_SENT_PHONE,
                "method": method.value,
                "userId": user.id,
                "phone": normalized
            }

        AuditLogger.log_recovery_event(
            "forgot_password", user_id=user.id, contact=mask_contact(normalized),
            method=method.value, ip_address=ip_address
        )
        return response

    async def verify_code(
            self,
            method: Union[str, ResetMethod],
            contact: str,
            code: str,
            country_code: Optional[str] = None,
            ip_address: Optional[str] = None
    ) -> dict:
        """Confere o código sem consumi-lo; o commit ainda pode usá-lo"""
        method = parse_method(method)
        normalized = normalize_contact(method.value, self._require_contact(contact), country_code)
        if not code:
            raise ValidationException("Method, contact, and code are required")

        try:
            if method == ResetMethod.PHONE:
                user = self._require_user(method, normalized)
                await self.dispatcher.check_phone_otp(normalized, code)
            else:
                artifact = await self.dispatcher.validate_email_code(normalized, code)
                user = self.db.query(User).filter(User.id == artifact.user_id).first()
                if not user:
                    raise NotFoundException()
        except (InvalidOrExpiredException, NotFoundException) as e:
            AuditLogger.log_recovery_event(
                "verify_reset_code", contact=mask_contact(normalized), method=method.value,
                ip_address=ip_address, success=False, details={"reason": e.detail}
            )
            raise

        AuditLogger.log_recovery_event(
            "verify_reset_code", user_id=user.id, contact=mask_contact(normalized),
            method=method.value, ip_address=ip_address
        )
        return {"message": CODE_VERIFIED, "userId": user.id}

    async def commit_password(
            self,
            method: Union[str, ResetMethod],
            contact: str,
            code: Optional[str],
            new_password: str,
            country_code: Optional[str] = None,
            ip_address: Optional[str] = None
    ) -> dict:
        """
        Revalida como verify_code, grava o hash da nova senha e apaga o
        artefato/grant para impedir replay.
        """
        method = parse_method(method)
        normalized = normalize_contact(method.value, self._require_contact(contact), country_code)

        if method == ResetMethod.EMAIL and not code:
            raise ValidationException("Method, contact, code, and new password are required")

        is_valid, error_message = PasswordValidator.validate(new_password)
        if not is_valid:
            raise ValidationException(error_message)

        if method == ResetMethod.PHONE:
            # O código é custodiado pelo provedor; aqui vale o grant
            await self.dispatcher.validate_phone_grant(normalized)
            user = self._require_user(method, normalized)
        else:
            artifact = await self.dispatcher.validate_email_code(normalized, code)
            user = self.db.query(User).filter(User.id == artifact.user_id).first()
            if not user:
                raise NotFoundException()

        self._update_password(user, new_password)

        if method == ResetMethod.PHONE:
            await self.dispatcher.consume_phone_grant(normalized)
        else:
            await self.dispatcher.consume_email_code(artifact)

        AuditLogger.log_recovery_event(
            "reset_password", user_id=user.id, contact=mask_contact(normalized),
            method=method.value, ip_address=ip_address
        )
        await self._send_confirmation_email(user)

        return {"message": PASSWORD_UPDATED}

    # ==================== FLUXO LEGADO (LINK) ====================

    async def request_reset_link(self, email: str, ip_address: Optional[str] = None) -> dict:
        normalized = normalize_email(self._require_contact(email))
        user = self._require_user(ResetMethod.EMAIL, normalized)

        now = self.clock()
        token = generate_reset_token()
        record = ResetLinkToken(
            user_id=user.id,
            email=user.email,
            created_at=now,
            expires_at=now + timedelta(minutes=settings.RESET_LINK_EXPIRE_MINUTES)
        )
        await self.store.store(reset_link_key(token), record.to_store(), settings.RESET_LINK_EXPIRE_MINUTES * 60)

        templates = generate_reset_link_email_template(
            f"{settings.RESET_LINK_BASE_URL}?token={token}",
            user.name,
            settings.RESET_LINK_EXPIRE_MINUTES
        )
        sent = await self.email_service.send_email(
            to_email=user.email,
            subject="Reset your password",
            body_html=templates["html"],
            body_text=templates["text"]
        )
        if not sent:
            await self.store.delete(reset_link_key(token))
            raise DeliveryFailureException("Failed to send reset email")

        AuditLogger.log_recovery_event(
            "forgot_password_link", user_id=user.id, contact=mask_contact(normalized),
            method="link", ip_address=ip_address
        )
        return {"message": RESET_LINK_SENT}

    async def _load_link_token(self, token: str) -> ResetLinkToken:
        record = ResetLinkToken.from_store(await self.store.get(reset_link_key(token)))

        if record is None or record.is_expired(self.clock()):
            raise InvalidOrExpiredException("Invalid or expired reset token")

        return record

    async def verify_reset_token(self, token: str) -> dict:
        record = await self._load_link_token(token)
        return {"valid": True, "email": record.email}

    async def commit_password_with_token(
            self,
            token: str,
            new_password: str,
            ip_address: Optional[str] = None
    ) -> dict:
        is_valid, error_message = PasswordValidator.validate(new_password)
        if not is_valid:
            raise ValidationException(error_message)

        record = await self._load_link_token(token)
        user = self.db.query(User).filter(User.id == record.user_id).first()
        if not user:
            raise NotFoundException()

        self._update_password(user, new_password)
        await self.store.delete(reset_link_key(token))

        AuditLogger.log_recovery_event(
            "reset_password", user_id=user.id, contact=mask_contact(user.email),
            method="link", ip_address=ip_address
        )
        await self._send_confirmation_email(user)

        return {"message": PASSWORD_UPDATED}

    # ==================== AUXILIARES ====================

    def _update_password(self, user: User, new_password: str) -> None:
        user.password_hash = hash_password(new_password)
        self.db.commit()

    async def _send_confirmation_email(self, user: User) -> None:
        """Aviso de senha alterada; falha aqui não desfaz o reset"""
        templates = generate_password_changed_template(user.name)
        sent = await self.email_service.send_email(
            to_email=user.email,
            subject="Your password was changed",
            body_html=templates["html"],
            body_text=templates["text"]
        )
        if not sent:
            logger.warning(f"Password change notice not delivered to {mask_contact(user.email)}")
