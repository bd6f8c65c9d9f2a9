from typing import Any, Dict

from strategy.execution_types import ExchangeOrderResponse, OrderStatus
from strategy.transports.base import Endpoints, ExchangeAdapter


__all__ = ["BinanceAdapter", "BINANCE_STATUS"]


BINANCE_STATUS = {
    "NEW": OrderStatus.PARTIAL,
    "PARTIALLY_FILLED": OrderStatus.PARTIAL,
    "FILLED": OrderStatus.FILLED,
    "CANCELED": OrderStatus.CANCELLED,
    "PENDING_CANCEL": OrderStatus.CANCELLED,
    "EXPIRED": OrderStatus.CANCELLED,
    "REJECTED": OrderStatus.REJECTED,
}


class BinanceAdapter(ExchangeAdapter):
    """Binance spot order placement (``/api/v3/order``)."""

    name = "binance"
    display_name = "Binance"
    aliases = ("binance eu",)
    endpoints = Endpoints(
        live="https://api.binance.com/api/v3/order",
        sandbox="https://testnet.binance.vision/api/v3/order",
    )
    status_map = BINANCE_STATUS

    def order_extras(self, order_id: str) -> Dict[str, Any]:
        return {"newClientOrderId": order_id}

    def _parse(self, raw, sized, alert) -> ExchangeOrderResponse:
        status = self.map_status(raw.get("status"))
        error = None
        if status is OrderStatus.REJECTED:
            error = raw.get("msg") or "Order rejected by Binance"
        return self.make_response(
            raw,
            sized,
            alert,
            order_id=raw.get("orderId") or raw.get("clientOrderId"),
            status=status,
            executed_quantity=self._as_float(raw.get("executedQty")),
            executed_price=self._as_float(raw.get("avgPrice"))
            or self._ratio(raw.get("cummulativeQuoteQty"), raw.get("executedQty")),
            error=error,
        )
