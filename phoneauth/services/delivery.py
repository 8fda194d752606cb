"""OTP delivery gateways and the detached dispatcher that drives them.

Delivery is best-effort: a code stays verifiable whether or not the SMS
went out, so every failure here is logged and swallowed. Sends run as
detached tasks after the OTP record is committed and are bounded by a
timeout so a slow provider never holds a request or a transaction.
"""

import asyncio
import logging
import threading
from typing import Protocol

import httpx

from phoneauth.core.config import Settings, settings
from phoneauth.core.logging import mask_phone

logger = logging.getLogger(__name__)


class DeliveryGateway(Protocol):
    """Anything that can push a text message to a phone number."""

    async def send(self, phone: str, message: str) -> bool: ...


class ConsoleDeliveryGateway:
    """Writes the message to the log instead of sending it.

    Used in SMS dev mode and as the fallback when the provider fails, so an
    operator can still read the code off the server log.
    """

    async def send(self, phone: str, message: str) -> bool:
        logger.warning(f"[DEV MODE] SMS to {mask_phone(phone)}: {message}")
        return True


class DisabledDeliveryGateway:
    """Drops every message (SMS_ENABLED=false)."""

    async def send(self, phone: str, message: str) -> bool:
        logger.warning(f"SMS is disabled. Message not sent to {mask_phone(phone)}")
        return False


class HttpSmsGateway:
    """Generic JSON-over-HTTP SMS provider client."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        api_secret: str = "",
        sender_id: str = "PHAUTH",
        timeout: float = 5.0,
        fallback: DeliveryGateway | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_url = api_url
        self.sender_id = sender_id
        self._api_key = api_key
        self._api_secret = api_secret
        self._timeout = timeout
        self._fallback = fallback or ConsoleDeliveryGateway()
        self._transport = transport

    async def send(self, phone: str, message: str) -> bool:
        payload = {
            "to": phone,
            "message": message,
            "sender_id": self.sender_id,
            "api_key": self._api_key,
            "api_secret": self._api_secret,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(self.api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"SMS provider request failed for {mask_phone(phone)}: {e}")
            await self._fallback.send(phone, message)
            return False

        if response.is_success:
            logger.info(f"SMS sent to {mask_phone(phone)}")
            return True

        logger.error(f"SMS provider rejected message: HTTP {response.status_code}")
        await self._fallback.send(phone, message)
        return False


def build_delivery_gateway(config: Settings) -> DeliveryGateway:
    """Pick the gateway the current configuration asks for."""
    if not config.sms_enabled:
        return DisabledDeliveryGateway()
    if config.sms_dev_mode or not config.sms_api_key or not config.sms_api_url:
        return ConsoleDeliveryGateway()
    return HttpSmsGateway(
        api_url=config.sms_api_url,
        api_key=config.sms_api_key,
        api_secret=config.sms_api_secret,
        sender_id=config.sms_sender_id,
        timeout=config.sms_timeout_seconds,
    )


def format_otp_message(app_name: str, code: str, validity_minutes: int) -> str:
    return f"Your {app_name} OTP is: {code}. Valid for {validity_minutes} minutes."


class DeliveryDispatcher:
    """Runs gateway sends as detached, timeout-bounded tasks."""

    def __init__(self, gateway: DeliveryGateway, timeout: float = 5.0):
        self.gateway = gateway
        self.timeout = timeout
        # Strong references; the event loop only keeps weak ones
        self._tasks: set[asyncio.Task[bool]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(self, phone: str, message: str) -> asyncio.Task[bool]:
        """Schedule a send and return immediately."""
        task = asyncio.create_task(
            self._deliver(phone, message), name=f"otp-delivery-{mask_phone(phone)}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _deliver(self, phone: str, message: str) -> bool:
        try:
            delivered = await asyncio.wait_for(
                self.gateway.send(phone, message), timeout=self.timeout
            )
        except TimeoutError:
            logger.warning(f"OTP delivery to {mask_phone(phone)} timed out after {self.timeout}s")
            return False
        except Exception:
            logger.exception(f"OTP delivery to {mask_phone(phone)} failed")
            return False
        if not delivered:
            logger.warning(f"OTP delivery to {mask_phone(phone)} was not confirmed by the gateway")
        return delivered

    async def wait_idle(self, timeout: float | None = None) -> None:
        """Wait for in-flight deliveries (shutdown and tests)."""
        if not self._tasks:
            return
        await asyncio.wait(set(self._tasks), timeout=timeout)


_dispatcher: DeliveryDispatcher | None = None
_dispatcher_lock = threading.Lock()


def get_delivery_dispatcher() -> DeliveryDispatcher:
    """Process-wide dispatcher built from settings (thread-safe)."""
    global _dispatcher
    if _dispatcher is None:
        with _dispatcher_lock:
            if _dispatcher is None:
                _dispatcher = DeliveryDispatcher(
                    build_delivery_gateway(settings),
                    timeout=settings.sms_timeout_seconds,
                )
    return _dispatcher
