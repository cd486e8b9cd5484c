from typing import Optional

import httpx

from ..config.settings import settings
from ..util.logger import logger


class SmsProviderError(Exception):
    """Falha de transporte/configuração ao falar com o provedor de OTP"""


class SmsVerificationService:
    """
    Cliente da API Twilio Verify.

    O provedor emite e guarda o código; aqui só pedimos o envio e,
    depois, a checagem. Nenhum código passa pelo nosso armazenamento.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self.account_sid = settings.TWILIO_ACCOUNT_SID
        self.auth_token = settings.TWILIO_AUTH_TOKEN
        self.service_sid = settings.TWILIO_VERIFY_SERVICE_SID
        self.base_url = settings.TWILIO_VERIFY_BASE_URL.rstrip("/")
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.service_sid)

    async def _post(self, path: str, data: dict) -> httpx.Response:
        if not self.is_configured:
            raise SmsProviderError("Twilio Verify is not configured")

        url = f"{self.base_url}/Services/{self.service_sid}/{path}"
        auth = (self.account_sid, self.auth_token)

        try:
            if self._client is not None:
                return await self._client.post(url, data=data, auth=auth)

            async with httpx.AsyncClient(timeout=settings.SMS_TIMEOUT_SECONDS) as client:
                return await client.post(url, data=data, auth=auth)
        except httpx.HTTPError as e:
            raise SmsProviderError(f"Twilio Verify request failed: {e}") from e

    async def send_verification(self, phone: str) -> bool:
        """Pede ao provedor para enviar um OTP por SMS"""
        try:
            response = await self._post("Verifications", {"To": phone, "Channel": "sms"})
        except SmsProviderError as e:
            logger.error(f"SMS delivery failed: {e}")
            return False

        if response.status_code >= 400:
            logger.error(f"Twilio Verify send failed ({response.status_code}): {response.text}")
            return False

        status = str(response.json().get("status") or "").lower()
        return status in {"pending", "sent"}

    async def check_verification(self, phone: str, code: str) -> Optional[str]:
        """
        Retorna o status informado pelo provedor ("approved", "pending", ...)
        ou None quando a checagem não aprovou: sem verificação ativa (404),
        código malformado (400) ou tentativas esgotadas (429).
        """
        response = await self._post("VerificationCheck", {"To": phone, "Code": code})

        if response.status_code == 404:
            return None

        if response.status_code in (400, 429):
            logger.warning(f"Twilio Verify rejected check ({response.status_code}): {response.text}")
            return None

        if response.status_code >= 400:
            raise SmsProviderError(
                f"Twilio Verify check failed ({response.status_code}): {response.text}"
            )

        return str(response.json().get("status") or "").lower()
