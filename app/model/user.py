from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import validates
from sqlalchemy.sql import func
from ..config.database import Base
from ..util.contact import normalize_email, normalize_phone, normalize_username
import uuid


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, unique=True, nullable=False, index=True)
    # Telefone e username já gravados na forma canônica
    phone = Column(String, unique=True, nullable=True, index=True)
    username = Column(String, unique=True, nullable=True, index=True)
    name = Column(String, nullable=False)
    password_hash = Column(String, nullable=False)
    avatar = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    @validates("email")
    def _normalize_email(self, key, value):
        return normalize_email(value)

    @validates("phone")
    def _normalize_phone(self, key, value):
        return normalize_phone(value) if value else None

    @validates("username")
    def _normalize_username(self, key, value):
        return normalize_username(value) if value else None

    def to_public_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "phone": self.phone,
            "username": self.username,
            "avatar": self.avatar
        }
