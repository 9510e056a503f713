"""
SMS transport (Twilio Programmable Messaging REST API)

Sends one text message per call. Delivery failures are returned, not raised,
so the dispatcher can record a result per entry and move on.
Configuration: credentials resolved via config.py only (STAGE_TWILIO_* / PROD_TWILIO_*).
"""
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

import config
from app.utils.logging_helpers import mask_phone

logger = logging.getLogger(__name__)

TWILIO_API_VERSION = "2010-04-01"


class SmsTransportError(Exception):
    """Base class for SMS API errors"""
    pass


class SmsAuthError(SmsTransportError):
    """Authentication error (401, 403)"""
    pass


class SmsRejectedError(SmsTransportError):
    """Message rejected by the provider (4xx): bad number, unsubscribed recipient, ..."""
    pass


class SmsProviderUnavailableError(SmsTransportError):
    """Provider-side failure (5xx), timeout or network error"""
    pass


@dataclass(frozen=True)
class SmsSendResult:
    """Outcome of one send attempt"""
    ok: bool
    message_sid: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def failed(cls, exc: SmsTransportError) -> "SmsSendResult":
        return cls(ok=False, error=str(exc), error_type=type(exc).__name__)


def _error_reason(response: httpx.Response) -> str:
    """Human readable reason from a Twilio error body"""
    try:
        data = response.json()
    except ValueError:
        return f"status={response.status_code}, response={response.text[:200]}"
    message = data.get("message") or "unknown error"
    code = data.get("code")
    if code:
        return f"status={response.status_code}, code={code}, message={message}"
    return f"status={response.status_code}, message={message}"


class TwilioSmsTransport:
    """
    Message transport over the Twilio REST API.

    The httpx.AsyncClient is injected and owned by the caller.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        account_sid: str,
        auth_token: str,
        from_number: str,
        api_base_url: str = "https://api.twilio.com",
    ):
        self._client = client
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._from_number = from_number
        self._api_base_url = api_base_url.rstrip("/")

    @classmethod
    def from_config(cls, client: httpx.AsyncClient) -> "TwilioSmsTransport":
        return cls(
            client,
            account_sid=config.TWILIO_ACCOUNT_SID,
            auth_token=config.TWILIO_AUTH_TOKEN,
            from_number=config.TWILIO_PHONE_NUMBER,
            api_base_url=config.TWILIO_API_URL,
        )

    def is_configured(self) -> bool:
        """Check if credentials are complete"""
        return bool(self._account_sid and self._auth_token and self._from_number)

    @property
    def messages_url(self) -> str:
        return f"{self._api_base_url}/{TWILIO_API_VERSION}/Accounts/{self._account_sid}/Messages.json"

    async def _post_message(self, to: str, body: str) -> str:
        """
        Create a message via the API.

        Returns:
            Message SID

        Raises:
            SmsTransportError subclasses
        """
        if not self.is_configured():
            raise SmsAuthError("SMS transport not configured")
        if not to:
            raise SmsRejectedError("Missing destination phone number")

        try:
            response = await self._client.post(
                self.messages_url,
                auth=(self._account_sid, self._auth_token),
                data={"To": to, "From": self._from_number, "Body": body},
            )
        except httpx.TimeoutException as e:
            raise SmsProviderUnavailableError(f"Timeout: {type(e).__name__}") from e
        except httpx.HTTPError as e:
            raise SmsProviderUnavailableError(f"Network error: {type(e).__name__}: {e}") from e

        if response.status_code in (401, 403):
            raise SmsAuthError(f"Authentication error: {_error_reason(response)}")

        if 400 <= response.status_code < 500:
            raise SmsRejectedError(f"Client error: {_error_reason(response)}")

        if not 200 <= response.status_code < 300:
            raise SmsProviderUnavailableError(f"Provider error: {_error_reason(response)}")

        try:
            data = response.json()
        except ValueError as e:
            raise SmsProviderUnavailableError("Invalid response from SMS API: not JSON") from e

        sid = data.get("sid")
        if not sid:
            raise SmsProviderUnavailableError("Invalid response from SMS API: missing sid")
        return sid

    async def send(self, to: str, body: str) -> SmsSendResult:
        """
        Send a text message.

        Args:
            to: Destination phone number (E.164)
            body: Message text

        Returns:
            SmsSendResult; ok=False carries a human readable error. Never raises
            for delivery failures.
        """
        try:
            sid = await self._post_message(to, body)
        except SmsTransportError as e:
            logger.error("SMS_SEND_FAILED to=%s error_type=%s error=%s", mask_phone(to), type(e).__name__, e)
            return SmsSendResult.failed(e)

        logger.info("SMS_SENT to=%s sid=%s", mask_phone(to), sid)
        return SmsSendResult(ok=True, message_sid=sid)
