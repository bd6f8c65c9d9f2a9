from typing import Any, Dict

from strategy.execution_types import ExchangeOrderResponse, OrderStatus
from strategy.transports.base import Endpoints, ExchangeAdapter


KUCOIN_OK = "200000"


class KuCoinAdapter(ExchangeAdapter):
    name = "kucoin"
    display_name = "KuCoin"
    symbol_separator = "-"
    endpoints = Endpoints(
        live="https://api.kucoin.com/api/v1/orders",
        sandbox="https://openapi-sandbox.kucoin.com/api/v1/orders",
    )

    def order_extras(self, order_id: str) -> Dict[str, Any]:
        return {"clientOid": order_id}

    def _parse(self, raw, sized, alert) -> ExchangeOrderResponse:
        data = raw.get("data") if isinstance(raw.get("data"), dict) else {}
        code = str(raw.get("code", ""))
        if code != KUCOIN_OK:
            status = OrderStatus.REJECTED
            error = raw.get("msg") or f"KuCoin error code {code or 'missing'}"
        else:
            # The place-order ack carries no fill state
            status = OrderStatus.PARTIAL
            error = None
        return self.make_response(
            raw,
            sized,
            alert,
            order_id=data.get("orderId"),
            status=status,
            error=error,
        )
