"""
Messaging API client for handing rendered notifications to outbound channels.
"""
import logging
import json
from typing import Optional

import httpx
from django.conf import settings

logger = logging.getLogger(__name__)


def _format_response(response: httpx.Response) -> str:
    """Return a readable response string (pretty JSON if possible)."""
    try:
        data = response.json()
        return json.dumps(data, indent=2, ensure_ascii=False)
    except (ValueError, TypeError):
        return response.text


def send_notification(message: dict) -> Optional[httpx.Response]:
    """
    Post a rendered notification to the messaging API with Bearer token authentication.

    Args:
        message: event_type, audience, merchant_id, subject, long_body, short_body

    Returns:
        HTTP response from the messaging API, None when no URL is configured

    Raises:
        httpx.HTTPError: On network/timeout errors
    """
    url = settings.MESSAGING_API_URL
    if not url:
        logger.warning(
            f"MESSAGING_API_URL not configured, dropping {message.get('event_type')} "
            f"notification for merchant {message.get('merchant_id')}"
        )
        return None

    token = settings.MESSAGING_API_TOKEN
    headers = {
        'Content-Type': 'application/json',
    }
    if token:
        headers['Authorization'] = f'Bearer {token}'

    logger.info(f"Sending {message.get('event_type')} notification to messaging API: {url}")
    logger.debug(f"Message: {message}")

    try:
        response = httpx.post(
            url,
            json=message,
            headers=headers,
            timeout=30.0
        )

        logger.info(f"Messaging API response: {response.status_code}")
        logger.debug("Messaging API response body:\n%s", _format_response(response))

        return response

    except httpx.TimeoutException as e:
        logger.error(f"Timeout sending to messaging API: {e}")
        raise
    except httpx.ConnectError as e:
        logger.error(f"Connection error sending to messaging API: {e}")
        raise
    except httpx.HTTPError as e:
        logger.error(f"HTTP error sending to messaging API: {e}")
        raise
