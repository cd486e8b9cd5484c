from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from ..auth.jwt_handler import create_user_token
from ..model.user import User
from ..schema.auth import RegisterRequest
from ..util.contact import mask_contact, normalize_email, normalize_phone, normalize_username
from ..util.exceptions import AuthException, ValidationException
from ..util.logger import AuditLogger
from ..util.security import hash_password, verify_password
from ..util.validators import PasswordValidator


class AuthService:
    """Serviço para cadastro e login"""

    def __init__(self, db: Session):
        self.db = db

    def register(self, data: RegisterRequest) -> dict:
        is_valid, error_message = PasswordValidator.validate(data.password)
        if not is_valid:
            raise ValidationException(error_message)

        email = normalize_email(data.email)
        phone = normalize_phone(data.phone)
        conditions = [User.email == email, User.phone == phone]
        if data.username:
            conditions.append(User.username == normalize_username(data.username))

        existing_user = self.db.query(User).filter(or_(*conditions)).first()
        if existing_user:
            raise ValidationException("User with this email, phone or username already exists")

        user = User(
            email=email,
            phone=phone,
            username=data.username,
            name=data.name,
            password_hash=hash_password(data.password)
        )

        try:
            self.db.add(user)
            self.db.commit()
            self.db.refresh(user)
        except IntegrityError:
            self.db.rollback()
            raise ValidationException("User with this email, phone or username already exists")

        AuditLogger.log_recovery_event("register", user_id=user.id, contact=mask_contact(email))

        return {
            "message": "User created successfully",
            "user": user.to_public_dict(),
            "token": create_user_token(user.id, user.email)
        }

    def login(self, email: str, password: str, ip_address: str = None) -> dict:
        normalized = normalize_email(email)
        user = self.db.query(User).filter(User.email == normalized).first()

        if not user or not verify_password(password, user.password_hash):
            AuditLogger.log_recovery_event(
                "login", contact=mask_contact(normalized), ip_address=ip_address, success=False
            )
            raise AuthException()

        AuditLogger.log_recovery_event(
            "login", user_id=user.id, contact=mask_contact(normalized), ip_address=ip_address
        )

        return {
            "message": "Login successful",
            "user": user.to_public_dict(),
            "token": create_user_token(user.id, user.email)
        }

    def update_profile(self, user: User, name: str = None, avatar: str = None) -> dict:
        if not name or not name.strip():
            raise ValidationException("Name is required")

        user.name = name.strip()
        if avatar:
            user.avatar = avatar

        self.db.commit()
        self.db.refresh(user)

        return {"user": user.to_public_dict()}

    def change_password(self, user: User, current_password: str, new_password: str) -> dict:
        """Troca de senha autenticada; exige a senha atual"""
        if not current_password or not new_password:
            raise ValidationException("Current password and new password are required")

        is_valid, error_message = PasswordValidator.validate(new_password)
        if not is_valid:
            raise ValidationException(error_message)

        if not verify_password(current_password, user.password_hash):
            AuditLogger.log_recovery_event(
                "change_password", user_id=user.id, contact=mask_contact(user.email), success=False
            )
            raise AuthException(detail="Current password is incorrect")

        user.password_hash = hash_password(new_password)
        self.db.commit()

        AuditLogger.log_recovery_event("change_password", user_id=user.id, contact=mask_contact(user.email))

        return {"message": "Password updated successfully"}
