"""
Cobros CRM - Messaging bot client tests (httpx MockTransport, no network)
Run: cd backend && pytest tests/test_messaging_client.py -v
"""

import json

import httpx
import pytest

import config
from services.messaging_client import send_message


@pytest.fixture
def bot_url(monkeypatch):
    monkeypatch.setattr(config, "BOT_WEBHOOK_URL", "http://bot.local/")
    return "http://bot.local"


class TestSendMessage:
    async def test_posts_phone_and_message(self, bot_url):
        seen = []

        def handler(request: httpx.Request):
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        ok = await send_message("+50688887777", "Hola", transport=httpx.MockTransport(handler))

        assert ok is True
        assert len(seen) == 1
        assert str(seen[0].url) == "http://bot.local/webhook/send_message"
        assert json.loads(seen[0].content) == {"phone": "+50688887777", "message": "Hola"}

    async def test_bot_error_returns_false(self, bot_url):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
        assert await send_message("+50688887777", "Hola", transport=transport) is False

    async def test_connection_error_is_not_raised(self, bot_url):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        assert await send_message("+50688887777", "Hola", transport=httpx.MockTransport(handler)) is False

    async def test_timeout_is_not_raised(self, bot_url):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        assert await send_message("+50688887777", "Hola", transport=httpx.MockTransport(handler)) is False

    async def test_disabled_without_url(self, monkeypatch):
        monkeypatch.setattr(config, "BOT_WEBHOOK_URL", "")

        def handler(request):
            raise AssertionError("no request expected")

        assert await send_message("+50688887777", "Hola", transport=httpx.MockTransport(handler)) is False

    async def test_no_phone(self, bot_url):
        def handler(request):
            raise AssertionError("no request expected")

        assert await send_message("", "Hola", transport=httpx.MockTransport(handler)) is False
