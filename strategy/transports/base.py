import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from strategy.alerts import Alert, utc_now_iso
from strategy.errors import NormalizationError
from strategy.execution_types import (
    ExchangeOrderResponse,
    OrderRequest,
    OrderStatus,
    SizedOrder,
)
from strategy.trading_config import ExchangeCredentials


KNOWN_QUOTES = ('USDT', 'USDC', 'BUSD', 'FDUSD', 'TUSD', 'USD', 'EUR', 'GBP', 'BTC', 'ETH', 'BNB')
PAIR_SEPARATORS = ('/', '-', '_', ':')


@dataclass(frozen=True)
class Endpoints:
    live: str
    sandbox: str
    sandbox_verified: bool = True
    notes: str = ''


def split_pair(symbol: str) -> Tuple[str, Optional[str]]:
    """Split ``BTC/USDT``-style notation into base and quote.

    Concatenated pairs (``BTCUSDT``) are split on the longest known quote
    suffix; anything else is returned whole with no quote.
    """
    text = (symbol or '').strip().upper()
    for sep in PAIR_SEPARATORS:
        if sep in text:
            base, _, quote = text.partition(sep)
            return base, quote or None
    for quote in sorted(KNOWN_QUOTES, key=len, reverse=True):
        if text.endswith(quote) and len(text) > len(quote):
            return text[: -len(quote)], quote
    return text, None


def client_order_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


class ExchangeAdapter(ABC):
    """Per-exchange order building and response normalization."""

    name: str = ''
    display_name: str = ''
    aliases: Tuple[str, ...] = ()
    verified: bool = True
    symbol_separator: str = ''
    endpoints: Endpoints = Endpoints(live='', sandbox='')
    status_map: Dict[str, OrderStatus] = {}

    def __init__(self, client_order_prefix: str = 'relay'):
        self.client_order_prefix = client_order_prefix

    def keys(self) -> Tuple[str, ...]:
        return (self.name,) + tuple(self.aliases)

    def format_symbol(self, symbol: str) -> str:
        base, quote = split_pair(symbol)
        if not quote:
            return base
        return f"{base}{self.symbol_separator}{quote}"

    def endpoint(self, test_mode: bool) -> str:
        return self.endpoints.sandbox if test_mode else self.endpoints.live

    def build_order(self, sized: SizedOrder, alert: Alert) -> OrderRequest:
        order_id = self.new_client_order_id()
        body: Dict[str, Any] = {
            'symbol': self.format_symbol(alert.symbol),
            'side': alert.side.value.lower(),
            'quantity': sized.calculated_quantity,
            'price': sized.calculated_price,
            'type': 'limit',
            'timeInForce': 'GTC',
        }
        body.update(self.order_extras(order_id))
        return OrderRequest(exchange=self.name, body=body, client_order_id=order_id)

    def new_client_order_id(self) -> str:
        return client_order_id(self.client_order_prefix)

    @abstractmethod
    def order_extras(self, order_id: str) -> Dict[str, Any]:
        ...

    def auth_headers(self, credentials: ExchangeCredentials) -> Dict[str, str]:
        # Plain header auth; exchanges that need HMAC signing override this.
        headers = {
            'X-API-Key': credentials.api_key,
            'X-API-Secret': credentials.api_secret,
        }
        if credentials.passphrase:
            headers['X-Passphrase'] = credentials.passphrase
        return headers

    def map_status(self, status: Any) -> OrderStatus:
        if status is None:
            return OrderStatus.UNKNOWN
        return self.status_map.get(str(status), OrderStatus.UNKNOWN)

    def parse_response(
        self, raw: Any, sized: SizedOrder, alert: Alert
    ) -> ExchangeOrderResponse:
        if not isinstance(raw, dict):
            raise NormalizationError(
                f"{self.name} returned {type(raw).__name__}, expected a JSON object"
            )
        return self._parse(raw, sized, alert)

    @abstractmethod
    def _parse(
        self, raw: Dict[str, Any], sized: SizedOrder, alert: Alert
    ) -> ExchangeOrderResponse:
        ...

    def make_response(
        self,
        raw: Any,
        sized: SizedOrder,
        alert: Alert,
        order_id: Any,
        status: OrderStatus,
        executed_quantity: Optional[float] = None,
        executed_price: Optional[float] = None,
        error: Optional[str] = None,
    ) -> ExchangeOrderResponse:
        return ExchangeOrderResponse(
            order_id=str(order_id) if order_id not in (None, '') else 'unknown',
            symbol=alert.symbol,
            side=alert.side,
            quantity=sized.calculated_quantity,
            price=sized.calculated_price,
            status=status,
            exchange=self.name,
            timestamp=utc_now_iso(),
            executed_quantity=executed_quantity if executed_quantity is not None else 0.0,
            executed_price=executed_price or sized.calculated_price,
            error=error,
            raw=raw,
        )

    def capabilities(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'display_name': self.display_name or self.name,
            'aliases': list(self.aliases),
            'verified': self.verified,
            'live_endpoint': self.endpoints.live,
            'sandbox_endpoint': self.endpoints.sandbox,
            'sandbox_verified': self.endpoints.sandbox_verified,
            'notes': self.endpoints.notes,
        }

    @staticmethod
    def _as_float(value: Any) -> float:
        if value is None or isinstance(value, bool):
            return 0.0
        try:
            parsed = float(value)
        except (TypeError, ValueError):
            return 0.0
        if parsed != parsed or parsed in (float('inf'), float('-inf')):
            return 0.0
        return parsed

    @classmethod
    def _ratio(cls, numerator: Any, denominator: Any) -> float:
        den = cls._as_float(denominator)
        if den <= 0:
            return 0.0
        return cls._as_float(numerator) / den
