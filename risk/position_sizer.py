from typing import Iterable
import logging

from strategy.alerts import Alert
from strategy.errors import ValidationError
from strategy.execution_types import SizedOrder
from strategy.trading_config import (
    ExchangeCredentials,
    OrderSizeType,
    TradingConfig,
    find_active_credentials,
)


logger = logging.getLogger(__name__)


class RiskSizer:
    """Turns an alert plus the current settings into a bounded order size."""

    def size(
        self,
        alert: Alert,
        config: TradingConfig,
        credentials: Iterable[ExchangeCredentials],
    ) -> SizedOrder:
        creds = find_active_credentials(alert.exchange, credentials)
        if creds is None:
            raise ValidationError(f"No active credentials for exchange: {alert.exchange}")
        creds = creds.effective(config.test_mode)

        price = alert.price
        if price <= 0:
            raise ValidationError(f"Alert {alert.id} has no usable price ({price})")

        if config.order_size_type is OrderSizeType.PERCENTAGE:
            quantity = alert.quantity * config.order_size_value / 100.0
            order_value = quantity * price
        else:
            quantity = config.order_size_value / price
            order_value = config.order_size_value

        clamped = False
        if order_value > config.max_position_size:
            quantity = config.max_position_size / price
            order_value = config.max_position_size
            clamped = True
            logger.info(
                "Order for %s clamped to max position size %.2f",
                alert.id,
                config.max_position_size,
            )

        if quantity <= 0:
            raise ValidationError(f"Calculated quantity must be positive, got {quantity}")

        return SizedOrder(
            calculated_quantity=quantity,
            calculated_price=price,
            order_value=order_value,
            credentials=creds,
            clamped=clamped,
        )
