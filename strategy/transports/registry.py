import logging
from typing import Any, Dict, Iterable, List, Optional

from strategy.alerts import Alert
from strategy.errors import NormalizationError, UnsupportedExchangeError
from strategy.execution_types import (
    ExchangeOrderResponse,
    OrderRequest,
    OrderStatus,
    SizedOrder,
)
from strategy.transports.base import ExchangeAdapter
from strategy.transports.binance import BinanceAdapter
from strategy.transports.bybit import BybitAdapter
from strategy.transports.coinbase import CoinbaseProAdapter
from strategy.transports.kraken import KrakenAdapter
from strategy.transports.kucoin import KuCoinAdapter
from strategy.transports.unverified import BingXAdapter, CoinExAdapter, MexcAdapter


logger = logging.getLogger(__name__)

ADAPTER_CLASSES = (
    BinanceAdapter,
    KrakenAdapter,
    CoinbaseProAdapter,
    KuCoinAdapter,
    BybitAdapter,
    MexcAdapter,
    BingXAdapter,
    CoinExAdapter,
)


def _key(name: str) -> str:
    return ' '.join((name or '').strip().lower().split())


class ExchangeRegistry:
    """Case-insensitive lookup from exchange name or alias to its adapter."""

    def __init__(self, adapters: Iterable[ExchangeAdapter]):
        self._adapters: List[ExchangeAdapter] = []
        self._by_key: Dict[str, ExchangeAdapter] = {}
        for adapter in adapters:
            self.register(adapter)

    def register(self, adapter: ExchangeAdapter) -> None:
        self._adapters.append(adapter)
        for key in adapter.keys():
            self._by_key[_key(key)] = adapter

    def resolve(self, exchange: str) -> ExchangeAdapter:
        adapter = self._by_key.get(_key(exchange))
        if adapter is None:
            raise UnsupportedExchangeError(exchange)
        return adapter

    def supports(self, exchange: str) -> bool:
        return _key(exchange) in self._by_key

    def build_order(self, sized: SizedOrder, alert: Alert) -> OrderRequest:
        return self.resolve(alert.exchange).build_order(sized, alert)

    def normalize_response(
        self,
        exchange: str,
        raw: Any,
        sized: SizedOrder,
        alert: Alert,
    ) -> ExchangeOrderResponse:
        adapter = self.resolve(exchange)
        try:
            return adapter.parse_response(raw, sized, alert)
        except (NormalizationError, AttributeError, TypeError, KeyError, IndexError) as exc:
            logger.warning("Unexpected %s response shape for %s: %s", adapter.name, alert.id, exc)
            return adapter.make_response(
                raw,
                sized,
                alert,
                order_id=None,
                status=OrderStatus.UNKNOWN,
                error=f"Unrecognized {adapter.name} response: {exc}",
            )

    def capabilities(self) -> List[Dict[str, Any]]:
        return [adapter.capabilities() for adapter in self._adapters]


def default_registry(client_order_prefix: Optional[str] = None) -> ExchangeRegistry:
    prefix = client_order_prefix or 'relay'
    return ExchangeRegistry(cls(prefix) for cls in ADAPTER_CLASSES)
