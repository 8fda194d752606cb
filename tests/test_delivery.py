"""Tests for SMS gateways and the detached delivery dispatcher."""

import asyncio
import json

import httpx
import pytest

from phoneauth.core.config import Settings
from phoneauth.core.logging import mask_phone
from phoneauth.services.delivery import (
    ConsoleDeliveryGateway,
    DeliveryDispatcher,
    DisabledDeliveryGateway,
    HttpSmsGateway,
    build_delivery_gateway,
    format_otp_message,
)
from phoneauth.services.otp import OtpEngine
from tests.conftest import TEST_PHONE, RecordingGateway

SMS_URL = "https://sms.example.com/send"


def _settings(**overrides) -> Settings:
    return Settings(jwt_secret_key="k" * 32, **overrides)


class TestBuildGateway:
    def test_disabled(self):
        assert isinstance(
            build_delivery_gateway(_settings(sms_enabled=False)), DisabledDeliveryGateway
        )

    def test_dev_mode_logs_only(self):
        gateway = build_delivery_gateway(
            _settings(sms_enabled=True, sms_dev_mode=True, sms_api_url=SMS_URL, sms_api_key="k")
        )
        assert isinstance(gateway, ConsoleDeliveryGateway)

    def test_missing_api_key_logs_only(self):
        gateway = build_delivery_gateway(
            _settings(sms_enabled=True, sms_dev_mode=False, sms_api_url=SMS_URL)
        )
        assert isinstance(gateway, ConsoleDeliveryGateway)

    def test_http_provider(self):
        gateway = build_delivery_gateway(
            _settings(
                sms_enabled=True,
                sms_dev_mode=False,
                sms_api_url=SMS_URL,
                sms_api_key="key",
                sms_sender_id="SHOPAPP",
            )
        )
        assert isinstance(gateway, HttpSmsGateway)
        assert gateway.api_url == SMS_URL
        assert gateway.sender_id == "SHOPAPP"


def test_message_text():
    assert (
        format_otp_message("Shop", "012345", 5)
        == "Your Shop OTP is: 012345. Valid for 5 minutes."
    )


class TestHttpSmsGateway:
    @pytest.mark.asyncio
    async def test_posts_payload_with_bearer_key(self):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"status": "queued"})

        gateway = HttpSmsGateway(
            SMS_URL, "key", "secret", sender_id="SHOP", transport=httpx.MockTransport(handler)
        )

        assert await gateway.send(TEST_PHONE, "hello") is True

        assert len(requests) == 1
        assert requests[0].headers["Authorization"] == "Bearer key"
        assert json.loads(requests[0].content) == {
            "to": TEST_PHONE,
            "message": "hello",
            "sender_id": "SHOP",
            "api_key": "key",
            "api_secret": "secret",
        }

    @pytest.mark.asyncio
    async def test_provider_error_falls_back(self):
        fallback = RecordingGateway()
        gateway = HttpSmsGateway(
            SMS_URL,
            "key",
            fallback=fallback,
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )

        assert await gateway.send(TEST_PHONE, "hello") is False
        assert fallback.sent == [(TEST_PHONE, "hello")]

    @pytest.mark.asyncio
    async def test_transport_error_falls_back(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        fallback = RecordingGateway()
        gateway = HttpSmsGateway(
            SMS_URL, "key", fallback=fallback, transport=httpx.MockTransport(handler)
        )

        assert await gateway.send(TEST_PHONE, "hello") is False
        assert fallback.sent == [(TEST_PHONE, "hello")]


class SlowGateway:
    def __init__(self, delay: float):
        self.delay = delay

    async def send(self, phone: str, message: str) -> bool:
        await asyncio.sleep(self.delay)
        return True


class BrokenGateway:
    async def send(self, phone: str, message: str) -> bool:
        raise RuntimeError("provider exploded")


class TestDeliveryDispatcher:
    @pytest.mark.asyncio
    async def test_dispatch_is_detached(self):
        dispatcher = DeliveryDispatcher(SlowGateway(0.2), timeout=1.0)

        task = dispatcher.dispatch(TEST_PHONE, "hello")

        assert not task.done()
        assert dispatcher.pending == 1
        assert await task is True
        await asyncio.sleep(0)
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_timeout_is_not_fatal(self):
        dispatcher = DeliveryDispatcher(SlowGateway(5), timeout=0.05)

        assert await dispatcher.dispatch(TEST_PHONE, "hello") is False

    @pytest.mark.asyncio
    async def test_gateway_exception_is_not_fatal(self):
        dispatcher = DeliveryDispatcher(BrokenGateway(), timeout=1.0)

        assert await dispatcher.dispatch(TEST_PHONE, "hello") is False

    @pytest.mark.asyncio
    async def test_unconfirmed_delivery(self):
        dispatcher = DeliveryDispatcher(RecordingGateway(succeed=False), timeout=1.0)
        assert await dispatcher.dispatch(TEST_PHONE, "hello") is False

    @pytest.mark.asyncio
    async def test_wait_idle(self):
        gateway = RecordingGateway()
        dispatcher = DeliveryDispatcher(gateway, timeout=1.0)
        for i in range(3):
            dispatcher.dispatch(f"555000111{i}", "hello")

        await dispatcher.wait_idle()

        assert len(gateway.sent) == 3

    @pytest.mark.asyncio
    async def test_wait_idle_with_nothing_pending(self):
        await DeliveryDispatcher(RecordingGateway()).wait_idle()

    @pytest.mark.asyncio
    async def test_disabled_gateway(self):
        assert await DisabledDeliveryGateway().send(TEST_PHONE, "hello") is False

    @pytest.mark.asyncio
    async def test_console_gateway(self, caplog):
        with caplog.at_level("WARNING"):
            assert await ConsoleDeliveryGateway().send(TEST_PHONE, "code 123456") is True
        assert "code 123456" in caplog.text
        assert TEST_PHONE not in caplog.text
        assert mask_phone(TEST_PHONE) in caplog.text


class TestFailedDeliveryKeepsCodeUsable:
    @pytest.mark.asyncio
    async def test_gateway_error(self, db_session, clock):
        dispatcher = DeliveryDispatcher(BrokenGateway(), timeout=1.0)
        engine = OtpEngine(db_session, dispatcher=dispatcher, clock=clock)

        issued = await engine.issue(TEST_PHONE)
        await dispatcher.wait_idle()

        assert (await engine.verify(TEST_PHONE, issued.code)).ok

    @pytest.mark.asyncio
    async def test_gateway_refusal(self, db_session, clock):
        gateway = RecordingGateway(succeed=False)
        dispatcher = DeliveryDispatcher(gateway, timeout=1.0)
        engine = OtpEngine(db_session, dispatcher=dispatcher, clock=clock)

        issued = await engine.issue(TEST_PHONE)
        await dispatcher.wait_idle()

        assert len(gateway.sent) == 1
        assert (await engine.verify(TEST_PHONE, issued.code)).ok

    @pytest.mark.asyncio
    async def test_gateway_timeout(self, db_session, clock):
        dispatcher = DeliveryDispatcher(SlowGateway(1.0), timeout=0.05)
        engine = OtpEngine(db_session, dispatcher=dispatcher, clock=clock)

        issued = await engine.issue(TEST_PHONE)
        await dispatcher.wait_idle()

        assert (await engine.verify(TEST_PHONE, issued.code)).ok
