"""
COBROS CRM - Messaging bot client

Outbound notifications through the external WhatsApp bot (HTTP).
Best-effort: every failure is logged, never raised.
"""

import logging
from typing import Optional

import httpx

import config

logger = logging.getLogger("messaging")


async def send_message(
    phone: str,
    message: str,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> bool:
    """
    POST {BOT_WEBHOOK_URL}/webhook/send_message {phone, message}

    Returns True when the bot accepted the message (2xx).
    """
    base_url = (config.BOT_WEBHOOK_URL or "").rstrip("/")
    if not base_url:
        logger.info("BOT_WEBHOOK_URL not set, notification skipped")
        return False
    if not phone:
        logger.info("No phone number, notification skipped")
        return False

    url = f"{base_url}/webhook/send_message"

    try:
        async with httpx.AsyncClient(timeout=config.BOT_TIMEOUT_SECONDS, transport=transport) as client:
            resp = await client.post(url, json={"phone": phone, "message": message})

        if resp.is_success:
            logger.info(f"Message sent to {phone}")
            return True

        logger.warning(f"Bot rejected message ({resp.status_code}): {resp.text[:200]}")
        return False

    except httpx.TimeoutException:
        logger.warning(f"Bot timeout after {config.BOT_TIMEOUT_SECONDS}s: {url}")
        return False

    except httpx.HTTPError as e:
        logger.warning(f"Bot connection error: {url} ({e})")
        return False
