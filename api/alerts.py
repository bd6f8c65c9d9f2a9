import asyncio
import logging
from typing import Optional

import aiohttp

from strategy.alerts import Alert


logger = logging.getLogger(__name__)


class AlertWebhook:
    """Forwards alert updates to an external URL; disabled when no URL is configured."""

    def __init__(self, url: Optional[str] = None, timeout_s: float = 5.0):
        # Treat empty or placeholder URLs as disabled
        if url and 'your-webhook-url' not in str(url):
            self.webhook_url = url
            self.enabled = True
        else:
            self.webhook_url = None
            self.enabled = False
        self.timeout_s = timeout_s
        self._session: Optional[aiohttp.ClientSession] = None

    async def send_alert_update(self, alert: Alert) -> None:
        if not self.enabled:
            return

        payload = {
            'type': 'alert_update',
            'alert': alert.to_dict(),
        }

        try:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession()
            async with self._session.post(
                self.webhook_url,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.timeout_s),
            ) as response:
                if response.status >= 300:
                    logger.error(
                        "[Alert] Webhook failed with status %s",
                        response.status,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("[Alert] Webhook error: %s", e)

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
