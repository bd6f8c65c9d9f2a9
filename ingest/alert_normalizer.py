"""Conversion of loosely-typed push payloads into canonical Alert records."""
import logging
import math
import time
import uuid
from typing import Any, Dict, Mapping, Optional

from strategy.alerts import Alert, AlertStatus, Side


logger = logging.getLogger(__name__)

SIDE_CODES = {
    'L': Side.BUY,
    'S': Side.SELL,
    'C': Side.SELL,
    'CL': Side.SELL,
    'CS': Side.BUY,
    'BUY': Side.BUY,
    'SELL': Side.SELL,
}

DEFAULT_QUANTITY = 1.0
DEFAULT_STRATEGY = 'Unknown'
DEFAULT_SYMBOL = 'UNKNOWN'
ALERT_TYPES = ('trading_alert', 'trade_alert')
TRADING_FIELDS = ('pair', 'symbol', 'side', 'price')
EXTRA_FIELDS = ('alert', 'pair', 'timeframe', 'alias')
MESSAGE_ID_KEYS = ('messageId', 'message_id', 'google.message_id')


def _fold(key: str) -> str:
    return key.replace('_', '').lower()


def _lookup(data: Mapping[str, Any], *keys: str) -> Any:
    folded = {_fold(str(k)): v for k, v in data.items()}
    for key in keys:
        value = folded.get(_fold(key))
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def parse_float(value: Any, default: float = 0.0) -> float:
    """Parse a transport value as float, falling back to ``default`` on junk."""
    if value is None or isinstance(value, bool):
        return default
    try:
        parsed = float(value.strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(parsed):
        return default
    return parsed


def generate_alert_id() -> str:
    return f"alert_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def extract_message_data(message: Mapping[str, Any]) -> Dict[str, Any]:
    """Unwrap the transport envelope; bare payloads pass through."""
    if not isinstance(message, Mapping):
        return {}
    data = message.get('data')
    if isinstance(data, Mapping):
        return dict(data)
    return dict(message)


def message_id(message: Mapping[str, Any]) -> Optional[str]:
    if not isinstance(message, Mapping):
        return None
    for key in MESSAGE_ID_KEYS:
        value = message.get(key)
        if value:
            return str(value)
    return None


def is_trading_alert(data: Mapping[str, Any]) -> bool:
    alert_type = _lookup(data, 'type')
    if alert_type is not None:
        return str(alert_type).strip().lower() in ALERT_TYPES
    return _lookup(data, *TRADING_FIELDS) is not None


class AlertNormalizer:
    """Pure transformation from an inbound payload to a pending Alert."""

    def __init__(self, default_exchange: str = 'binance'):
        self.default_exchange = default_exchange

    def normalize(
        self,
        payload: Mapping[str, Any],
        source_id: Optional[str] = None,
        default_exchange: Optional[str] = None,
    ) -> Alert:
        data = payload if isinstance(payload, Mapping) else {}
        fallback_exchange = default_exchange or self.default_exchange

        quantity_raw = _lookup(data, 'quantity')
        quantity = parse_float(quantity_raw, DEFAULT_QUANTITY) if quantity_raw is not None else DEFAULT_QUANTITY

        stop_loss_raw = _lookup(data, 'stopLoss')
        take_profit_raw = _lookup(data, 'takeProfit')

        extras = {}
        for key in EXTRA_FIELDS:
            value = _lookup(data, key)
            if value is not None:
                extras[key] = str(value)

        return Alert(
            id=generate_alert_id(),
            symbol=str(_lookup(data, 'pair', 'symbol') or DEFAULT_SYMBOL).strip(),
            side=self.resolve_side(data),
            quantity=quantity,
            price=parse_float(_lookup(data, 'price')),
            stop_loss=parse_float(stop_loss_raw) if stop_loss_raw is not None else None,
            take_profit=parse_float(take_profit_raw) if take_profit_raw is not None else None,
            exchange=str(_lookup(data, 'exchange') or fallback_exchange).strip(),
            strategy=str(_lookup(data, 'strategy') or DEFAULT_STRATEGY).strip(),
            status=AlertStatus.PENDING,
            source_id=source_id,
            extras=extras,
        )

    def resolve_side(self, data: Mapping[str, Any]) -> Side:
        code = str(_lookup(data, 'side') or '').strip().upper()
        if code in SIDE_CODES:
            return SIDE_CODES[code]
        action = str(_lookup(data, 'action') or '').strip().upper()
        if action == 'SELL':
            return Side.SELL
        if action == 'BUY':
            return Side.BUY
        # Fail-open: ambiguous signals are treated as buys.
        logger.warning(
            "Unrecognized side %r (action=%r); defaulting to BUY",
            code or None,
            action or None,
        )
        return Side.BUY
