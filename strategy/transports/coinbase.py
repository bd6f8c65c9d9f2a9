import uuid
from typing import Any, Dict

from strategy.execution_types import ExchangeOrderResponse, OrderStatus
from strategy.transports.base import Endpoints, ExchangeAdapter


COINBASE_STATUS = {
    "done": OrderStatus.FILLED,
    "open": OrderStatus.PARTIAL,
    "pending": OrderStatus.PARTIAL,
    "active": OrderStatus.PARTIAL,
    "canceled": OrderStatus.CANCELLED,
    "rejected": OrderStatus.REJECTED,
}


class CoinbaseProAdapter(ExchangeAdapter):
    name = "coinbase pro"
    display_name = "Coinbase Pro"
    aliases = ("coinbase", "coinbase-pro", "coinbasepro")
    symbol_separator = "-"
    endpoints = Endpoints(
        live="https://api.pro.coinbase.com/orders",
        sandbox="https://api-public.sandbox.pro.coinbase.com/orders",
    )
    status_map = COINBASE_STATUS

    def new_client_order_id(self) -> str:
        return str(uuid.uuid4())

    def order_extras(self, order_id: str) -> Dict[str, Any]:
        return {"client_order_id": order_id, "stp": "dc"}

    def _parse(self, raw, sized, alert) -> ExchangeOrderResponse:
        status = self.map_status(raw.get("status"))
        if status is OrderStatus.FILLED and str(raw.get("done_reason", "")).lower() == "canceled":
            status = OrderStatus.CANCELLED
        error = None
        if status is OrderStatus.REJECTED:
            error = raw.get("reject_reason") or raw.get("message") or "Order rejected by Coinbase"
        return self.make_response(
            raw,
            sized,
            alert,
            order_id=raw.get("id"),
            status=status,
            executed_quantity=self._as_float(raw.get("filled_size")),
            executed_price=self._ratio(raw.get("executed_value"), raw.get("filled_size")),
            error=error,
        )
