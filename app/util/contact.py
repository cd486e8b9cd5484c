import re
from typing import Optional

from ..config.settings import settings


def normalize_email(email: str) -> str:
    """Email canônico para comparações (sem espaços, minúsculo)"""
    return (email or "").strip().lower()


def normalize_username(username: str) -> str:
    """Usernames são sempre comparados e gravados em minúsculo"""
    return (username or "").strip().lower()


def normalize_phone(phone: str, country_code: Optional[str] = None) -> str:
    """
    Normaliza telefone para formato internacional (+<ddi><número>).

    Nunca falha: entradas malformadas viram um palpite que simplesmente
    não vai bater com nenhuma conta.
    """
    raw = (phone or "").strip()
    if raw.startswith("+"):
        return raw

    digits = re.sub(r"\D", "", raw)
    code = re.sub(r"\D", "", country_code or "") or settings.DEFAULT_COUNTRY_CODE

    if len(digits) == 10:
        return f"+{code}{digits}"

    if len(digits) == 11 and digits.startswith(settings.TRUNK_PREFIX):
        return f"+{settings.DEFAULT_COUNTRY_CODE}{digits[len(settings.TRUNK_PREFIX):]}"

    return f"+{digits}"


def normalize_contact(method: str, contact: str, country_code: Optional[str] = None) -> str:
    if method == "phone":
        return normalize_phone(contact, country_code)
    return normalize_email(contact)


def mask_contact(contact: Optional[str]) -> Optional[str]:
    """Mascara email/telefone para logs"""
    if not contact:
        return contact

    if "@" in contact:
        local, domain = contact.split("@", 1)
        return f"{local[:1]}***@{domain}"

    visible = contact[-4:]
    prefix = contact[:2] if contact.startswith("+") else ""
    hidden = "*" * max(0, len(contact) - len(prefix) - len(visible))
    return f"{prefix}{hidden}{visible}"
