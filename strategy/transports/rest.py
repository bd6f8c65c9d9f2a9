import asyncio
import json
from typing import Any, Dict, Optional

import aiohttp

from strategy.errors import HttpError, NetworkError


class ExchangeRESTClient:
    """Shared aiohttp session for one-shot JSON order submissions."""

    def __init__(self, default_timeout_s: float = 30.0):
        self.default_timeout_s = default_timeout_s
        self._session: Optional[aiohttp.ClientSession] = None
        self._lock = asyncio.Lock()

    async def _get_session(self) -> aiohttp.ClientSession:
        async with self._lock:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession()
            return self._session

    async def close(self):
        async with self._lock:
            if self._session and not self._session.closed:
                await self._session.close()
                self._session = None

    async def post_json(
        self,
        url: str,
        body: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        timeout_s: Optional[float] = None,
    ) -> Any:
        session = await self._get_session()
        timeout = aiohttp.ClientTimeout(total=timeout_s or self.default_timeout_s)
        request_headers = {"Content-Type": "application/json"}
        request_headers.update(headers or {})
        try:
            async with session.post(
                url,
                data=json.dumps(body),
                headers=request_headers,
                timeout=timeout,
            ) as resp:
                text = await resp.text()
                payload: Any
                try:
                    payload = json.loads(text) if text else {}
                except ValueError:
                    payload = text

                if resp.status < 200 or resp.status >= 300:
                    message = None
                    if isinstance(payload, dict):
                        message = payload.get("msg") or payload.get("message") or payload.get("error")
                        if isinstance(message, list):
                            message = "; ".join(str(m) for m in message) or None
                    raise HttpError(resp.status, message, text)

                return payload
        except asyncio.TimeoutError as exc:
            raise NetworkError(f"Request to {url} timed out after {timeout.total}s") from exc
        except aiohttp.ClientError as exc:
            raise NetworkError(f"Request to {url} failed: {exc}") from exc
