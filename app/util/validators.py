from typing import Optional

from ..config.settings import settings


class PasswordValidator:
    @staticmethod
    def validate(password: Optional[str]) -> tuple[bool, Optional[str]]:
        """Comprimento mínimo é a única regra de conteúdo"""
        if not password or len(password) < settings.PASSWORD_MIN_LENGTH:
            return False, f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters long"

        return True, None
