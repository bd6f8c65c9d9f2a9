from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from strategy.alerts import Side
from strategy.trading_config import ExchangeCredentials


class OrderStatus(Enum):
    FILLED = "filled"
    PARTIAL = "partial"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class SizedOrder:
    """Quantity and value for one execution attempt; never persisted."""

    calculated_quantity: float
    calculated_price: float
    order_value: float
    credentials: ExchangeCredentials
    clamped: bool = False


@dataclass
class OrderRequest:
    exchange: str
    body: Dict[str, Any]
    client_order_id: Optional[str] = None


@dataclass
class ExchangeOrderResponse:
    """Normalized view of an order acknowledgement across exchanges."""

    order_id: str
    symbol: str
    side: Side
    quantity: float
    price: float
    status: OrderStatus
    exchange: str
    timestamp: str
    executed_quantity: Optional[float] = None
    executed_price: Optional[float] = None
    error: Optional[str] = None
    raw: Any = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            'order_id': self.order_id,
            'symbol': self.symbol,
            'side': self.side.value,
            'quantity': self.quantity,
            'price': self.price,
            'status': self.status.value,
            'executed_quantity': self.executed_quantity,
            'executed_price': self.executed_price,
            'timestamp': self.timestamp,
            'exchange': self.exchange,
            'error': self.error,
        }
