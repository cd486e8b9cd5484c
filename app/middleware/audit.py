from fastapi import Request, Response
from typing import Callable
import time
from ..util.logger import AuditLogger

# Paths que queremos auditar
AUDIT_PATHS = (
    "/auth/forgot-password",
    "/auth/verify-reset-code",
    "/auth/reset-password",
    "/auth/verify-reset-token",
    "/auth/login",
    "/auth/register",
)


class AuditMiddleware:
    """Middleware para auditar as requisições de autenticação e recuperação"""

    async def __call__(
            self,
            request: Request,
            call_next: Callable,
    ) -> Response:
        start_time = time.time()

        response = await call_next(request)

        path = str(request.url.path)
        if path.startswith(AUDIT_PATHS):
            process_time = time.time() - start_time

            AuditLogger.log_recovery_event(
                event_type="http_request",
                ip_address=request.client.host if request.client else "unknown",
                success=200 <= response.status_code < 300,
                details={
                    "method": request.method,
                    # O token do fluxo legado vai na URL; não registrar
                    "path": "/auth/verify-reset-token" if path.startswith("/auth/verify-reset-token") else path,
                    "status_code": response.status_code,
                    "process_time": f"{process_time:.3f}s",
                    "user_agent": request.headers.get("user-agent", "unknown")
                }
            )

        return response
