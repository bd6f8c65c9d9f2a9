import asyncio
import logging
from typing import Any, Optional

from strategy.execution_types import OrderRequest
from strategy.trading_config import ExchangeCredentials
from strategy.transports.registry import ExchangeRegistry
from strategy.transports.rest import ExchangeRESTClient


logger = logging.getLogger(__name__)


class ExchangeGateway:
    """Sends one order request to the exchange selected by the request.

    Endpoint choice follows ``test_mode``; authentication headers come from
    the exchange adapter. There is no retry: a timeout or connection failure
    surfaces as ``NetworkError`` and a non-2xx reply as ``HttpError``.
    """

    def __init__(
        self,
        registry: ExchangeRegistry,
        client: Optional[ExchangeRESTClient] = None,
        timeout_s: float = 30.0,
    ):
        self.registry = registry
        self.timeout_s = timeout_s
        self._rest = client
        self._lock = asyncio.Lock()

    def _client(self) -> ExchangeRESTClient:
        if self._rest is None:
            self._rest = ExchangeRESTClient(default_timeout_s=self.timeout_s)
        return self._rest

    async def execute(
        self,
        request: OrderRequest,
        credentials: ExchangeCredentials,
        test_mode: bool,
    ) -> Any:
        adapter = self.registry.resolve(request.exchange)
        url = adapter.endpoint(test_mode)
        if test_mode and not adapter.endpoints.sandbox_verified:
            logger.warning(
                "%s has no verified sandbox; TEST order %s goes to %s",
                adapter.display_name,
                request.client_order_id,
                url,
            )
        if not adapter.verified:
            logger.warning("%s adapter is unverified", adapter.display_name)

        logger.info(
            "Submitting %s order %s to %s (%s)",
            "TEST" if test_mode else "LIVE",
            request.client_order_id,
            adapter.display_name,
            url,
        )
        return await self._client().post_json(
            url,
            request.body,
            headers=adapter.auth_headers(credentials),
            timeout_s=self.timeout_s,
        )

    async def close(self) -> None:
        async with self._lock:
            if self._rest:
                try:
                    await self._rest.close()
                finally:
                    self._rest = None
