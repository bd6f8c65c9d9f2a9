import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional

from strategy.alerts import utc_now_iso
from strategy.errors import ValidationError


class TradingMode(Enum):
    AUTO = "AUTO"
    MANUAL = "MANUAL"


class OrderSizeType(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class RiskLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def _parse_enum(enum_cls, value: Any):
    if isinstance(value, enum_cls):
        return value
    text = str(value).strip()
    for member in enum_cls:
        if text.lower() in (member.value.lower(), member.name.lower()):
            return member
    raise ValidationError(f"Invalid {enum_cls.__name__} value: {value!r}")


def _parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


@dataclass(frozen=True)
class TradingConfig:
    """Immutable snapshot of user trading settings passed into each execution."""

    mode: TradingMode = TradingMode.MANUAL
    test_mode: bool = False
    order_size_type: OrderSizeType = OrderSizeType.PERCENTAGE
    order_size_value: float = 100.0
    max_position_size: float = 1000.0
    stop_loss_percentage: float = 5.0
    take_profit_percentage: float = 10.0
    risk_level: RiskLevel = RiskLevel.MEDIUM
    enabled_strategies: FrozenSet[str] = frozenset()
    default_exchange: Optional[str] = None

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if self.order_size_type is OrderSizeType.PERCENTAGE:
            if not 0 <= self.order_size_value <= 100:
                raise ValidationError("Percentage order size must be between 0 and 100")
        elif self.order_size_value <= 0:
            raise ValidationError("Fixed order size must be greater than 0")
        if self.max_position_size <= 0:
            raise ValidationError("Max position size must be greater than 0")
        for name, value in (
            ('stop_loss_percentage', self.stop_loss_percentage),
            ('take_profit_percentage', self.take_profit_percentage),
        ):
            if value < 0:
                raise ValidationError(f"{name} must not be negative")

    def strategy_enabled(self, strategy: str) -> bool:
        if not self.enabled_strategies:
            return True
        wanted = (strategy or '').strip().lower()
        return any(name.lower() == wanted for name in self.enabled_strategies)

    def with_changes(self, **changes: Any) -> 'TradingConfig':
        merged = self.to_dict()
        merged.update(changes)
        return TradingConfig.from_dict(merged)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'mode': self.mode.value,
            'test_mode': self.test_mode,
            'order_size_type': self.order_size_type.value,
            'order_size_value': self.order_size_value,
            'max_position_size': self.max_position_size,
            'stop_loss_percentage': self.stop_loss_percentage,
            'take_profit_percentage': self.take_profit_percentage,
            'risk_level': self.risk_level.value,
            'enabled_strategies': sorted(self.enabled_strategies),
            'default_exchange': self.default_exchange,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TradingConfig':
        unknown = set(data) - {f for f in cls.__dataclass_fields__}
        if unknown:
            raise ValidationError(f"Unknown trading config fields: {', '.join(sorted(unknown))}")
        kwargs: Dict[str, Any] = {}
        try:
            if 'mode' in data:
                kwargs['mode'] = _parse_enum(TradingMode, data['mode'])
            if 'test_mode' in data:
                kwargs['test_mode'] = _parse_bool(data['test_mode'])
            if 'order_size_type' in data:
                kwargs['order_size_type'] = _parse_enum(OrderSizeType, data['order_size_type'])
            if 'risk_level' in data:
                kwargs['risk_level'] = _parse_enum(RiskLevel, data['risk_level'])
            for key in (
                'order_size_value',
                'max_position_size',
                'stop_loss_percentage',
                'take_profit_percentage',
            ):
                if key in data and data[key] is not None:
                    kwargs[key] = float(data[key])
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid trading config value: {exc}") from exc
        if data.get('enabled_strategies') is not None:
            strategies = data['enabled_strategies']
            if isinstance(strategies, str):
                strategies = strategies.split(',')
            kwargs['enabled_strategies'] = frozenset(
                str(s).strip() for s in strategies if str(s).strip()
            )
        if 'default_exchange' in data:
            kwargs['default_exchange'] = data['default_exchange'] or None
        return cls(**kwargs)


@dataclass(frozen=True)
class ExchangeCredentials:
    exchange: str
    api_key: str = field(repr=False)
    api_secret: str = field(repr=False)
    passphrase: Optional[str] = field(default=None, repr=False)
    is_active: bool = True
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: str = field(default_factory=utc_now_iso)
    test_api_key: Optional[str] = field(default=None, repr=False)
    test_api_secret: Optional[str] = field(default=None, repr=False)
    test_passphrase: Optional[str] = field(default=None, repr=False)

    def matches(self, exchange: str) -> bool:
        return self.exchange.strip().lower() == (exchange or '').strip().lower()

    def effective(self, test_mode: bool) -> 'ExchangeCredentials':
        """Credentials to submit with; sandbox keys win in test mode when present."""
        if test_mode and self.test_api_key and self.test_api_secret:
            return replace(
                self,
                api_key=self.test_api_key,
                api_secret=self.test_api_secret,
                passphrase=self.test_passphrase or self.passphrase,
            )
        return self

    def masked(self) -> Dict[str, Any]:
        key = self.api_key or ''
        return {
            'id': self.id,
            'exchange': self.exchange,
            'api_key': f"{key[:4]}...{key[-4:]}" if len(key) > 8 else '****',
            'has_passphrase': bool(self.passphrase),
            'has_test_keys': bool(self.test_api_key and self.test_api_secret),
            'is_active': self.is_active,
            'created_at': self.created_at,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'exchange': self.exchange,
            'api_key': self.api_key,
            'api_secret': self.api_secret,
            'passphrase': self.passphrase,
            'is_active': self.is_active,
            'created_at': self.created_at,
            'test_api_key': self.test_api_key,
            'test_api_secret': self.test_api_secret,
            'test_passphrase': self.test_passphrase,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExchangeCredentials':
        exchange = str(data.get('exchange') or '').strip()
        api_key = data.get('api_key')
        api_secret = data.get('api_secret')
        if not exchange or not api_key or not api_secret:
            raise ValidationError("Credentials require exchange, api_key and api_secret")
        kwargs: Dict[str, Any] = {
            'exchange': exchange,
            'api_key': str(api_key),
            'api_secret': str(api_secret),
            'passphrase': data.get('passphrase') or None,
            'is_active': _parse_bool(data.get('is_active', True)),
            'test_api_key': data.get('test_api_key') or None,
            'test_api_secret': data.get('test_api_secret') or None,
            'test_passphrase': data.get('test_passphrase') or None,
        }
        if data.get('id'):
            kwargs['id'] = str(data['id'])
        if data.get('created_at'):
            kwargs['created_at'] = str(data['created_at'])
        return cls(**kwargs)


def find_active_credentials(
    exchange: str, credentials: Iterable[ExchangeCredentials]
) -> Optional[ExchangeCredentials]:
    for creds in credentials:
        if creds.is_active and creds.matches(exchange):
            return creds
    return None
