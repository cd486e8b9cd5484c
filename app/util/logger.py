import logging
import json
import os
from datetime import datetime
from typing import Any, Dict
from ..config.settings import settings, fuso_local

handlers = [logging.StreamHandler()]

if settings.LOG_DIR:
    os.makedirs(settings.LOG_DIR, exist_ok=True)
    handlers.append(logging.FileHandler(os.path.join(settings.LOG_DIR, "app.log")))

# Configurar logger
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=handlers
)

logger = logging.getLogger("app")


class AuditLogger:
    @staticmethod
    def log_recovery_event(
            event_type: str,
            user_id: str = None,
            contact: str = None,
            method: str = None,
            ip_address: str = None,
            success: bool = True,
            details: Dict[str, Any] = None
    ):
        """Log de eventos de recuperação/autenticação para auditoria.

        `contact` deve chegar já mascarado; códigos e senhas nunca passam por aqui.
        """
        log_entry = {
            "timestamp": datetime.now(fuso_local).isoformat(),
            "event_type": event_type,
            "user_id": user_id,
            "contact": contact,
            "method": method,
            "ip_address": ip_address,
            "success": success,
            "details": details or {}
        }

        # Arquivo específico de auditoria
        if settings.LOG_DIR:
            with open(os.path.join(settings.LOG_DIR, "audit.log"), "a") as f:
                f.write(json.dumps(log_entry) + "\n")

        if success:
            logger.info(f"Audit: {event_type} - Contact: {contact} - Method: {method} - IP: {ip_address}")
        else:
            logger.warning(f"Audit failed: {event_type} - Contact: {contact} - Method: {method} - IP: {ip_address}")
