from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from strategy.errors import TransitionError


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Side(Enum):
    BUY = "BUY"
    SELL = "SELL"


class AlertStatus(Enum):
    PENDING = "pending"
    EXECUTED = "executed"
    IGNORED = "ignored"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not AlertStatus.PENDING


ALLOWED_TRANSITIONS = {
    AlertStatus.PENDING: {AlertStatus.EXECUTED, AlertStatus.IGNORED, AlertStatus.FAILED},
}


@dataclass
class Alert:
    """Canonical trading signal tracked through a one-way lifecycle."""

    id: str
    symbol: str
    side: Side
    quantity: float
    price: float
    exchange: str
    strategy: str
    timestamp: str = field(default_factory=utc_now_iso)
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    status: AlertStatus = AlertStatus.PENDING
    executed_price: Optional[float] = None
    executed_at: Optional[str] = None
    error: Optional[str] = None
    source_id: Optional[str] = None
    extras: Dict[str, str] = field(default_factory=dict)

    def copy(self) -> 'Alert':
        return replace(self, extras=dict(self.extras))

    def transition(
        self,
        status: AlertStatus,
        executed_price: Optional[float] = None,
        error: Optional[str] = None,
    ) -> bool:
        """Apply a status change in place.

        Returns False when the alert already holds ``status`` (repeat of the
        same terminal transition). Raises TransitionError for anything that
        would move a terminal alert or move back to pending.
        """
        if self.status is status:
            return False
        if status not in ALLOWED_TRANSITIONS.get(self.status, set()):
            raise TransitionError(
                f"Alert {self.id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status
        if executed_price:
            self.executed_price = executed_price
        if status is AlertStatus.EXECUTED:
            self.executed_at = utc_now_iso()
        if error:
            self.error = error
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'symbol': self.symbol,
            'side': self.side.value,
            'quantity': self.quantity,
            'price': self.price,
            'stop_loss': self.stop_loss,
            'take_profit': self.take_profit,
            'exchange': self.exchange,
            'strategy': self.strategy,
            'timestamp': self.timestamp,
            'status': self.status.value,
            'executed_price': self.executed_price,
            'executed_at': self.executed_at,
            'error': self.error,
            'source_id': self.source_id,
            'extras': dict(self.extras),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Alert':
        return cls(
            id=str(data['id']),
            symbol=str(data.get('symbol', 'UNKNOWN')),
            side=Side(str(data.get('side', 'BUY')).upper()),
            quantity=float(data.get('quantity') or 0.0),
            price=float(data.get('price') or 0.0),
            exchange=str(data.get('exchange', '')),
            strategy=str(data.get('strategy', 'Unknown')),
            timestamp=data.get('timestamp') or utc_now_iso(),
            stop_loss=data.get('stop_loss'),
            take_profit=data.get('take_profit'),
            status=AlertStatus(data.get('status', 'pending')),
            executed_price=data.get('executed_price'),
            executed_at=data.get('executed_at'),
            error=data.get('error'),
            source_id=data.get('source_id'),
            extras=dict(data.get('extras') or {}),
        )
