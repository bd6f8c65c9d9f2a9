from typing import Any, Dict

from strategy.execution_types import ExchangeOrderResponse, OrderStatus
from strategy.transports.base import Endpoints, ExchangeAdapter


BYBIT_OK = "0"

BYBIT_STATUS = {
    "Created": OrderStatus.PARTIAL,
    "New": OrderStatus.PARTIAL,
    "PartiallyFilled": OrderStatus.PARTIAL,
    "Filled": OrderStatus.FILLED,
    "Cancelled": OrderStatus.CANCELLED,
    "PendingCancel": OrderStatus.CANCELLED,
    "Rejected": OrderStatus.REJECTED,
}


class BybitAdapter(ExchangeAdapter):
    name = "bybit"
    display_name = "Bybit"
    endpoints = Endpoints(
        live="https://api.bybit.com/v2/private/order/create",
        sandbox="https://api-testnet.bybit.com/v2/private/order/create",
    )
    status_map = BYBIT_STATUS

    def order_extras(self, order_id: str) -> Dict[str, Any]:
        return {"orderLinkId": order_id, "category": "spot"}

    def _parse(self, raw, sized, alert) -> ExchangeOrderResponse:
        code = str(raw.get("retCode", raw.get("ret_code", BYBIT_OK))).strip()
        result = raw.get("result") if isinstance(raw.get("result"), dict) else {}
        order_id = result.get("orderId") or result.get("order_id") or result.get("orderLinkId")
        if code != BYBIT_OK:
            return self.make_response(
                raw,
                sized,
                alert,
                order_id=order_id,
                status=OrderStatus.REJECTED,
                error=raw.get("retMsg") or raw.get("ret_msg") or f"Bybit error code {code}",
            )
        order_status = result.get("orderStatus") or result.get("order_status")
        status = self.map_status(order_status) if order_status else OrderStatus.PARTIAL
        return self.make_response(
            raw,
            sized,
            alert,
            order_id=order_id,
            status=status,
            executed_quantity=self._as_float(result.get("cumExecQty") or result.get("cum_exec_qty")),
            executed_price=self._as_float(result.get("avgPrice")),
        )
