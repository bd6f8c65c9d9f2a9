import random
from typing import Any, Dict

from strategy.execution_types import ExchangeOrderResponse, OrderStatus
from strategy.transports.base import Endpoints, ExchangeAdapter


KRAKEN_STATUS = {
    "closed": OrderStatus.FILLED,
    "open": OrderStatus.PARTIAL,
    "pending": OrderStatus.PARTIAL,
    "canceled": OrderStatus.CANCELLED,
    "expired": OrderStatus.CANCELLED,
}


class KrakenAdapter(ExchangeAdapter):
    """Kraken spot ``AddOrder``. There is no spot sandbox, so test mode hits live."""

    name = "kraken"
    display_name = "Kraken"
    aliases = ("kraken eu",)
    endpoints = Endpoints(
        live="https://api.kraken.com/0/private/AddOrder",
        sandbox="https://api.kraken.com/0/private/AddOrder",
        sandbox_verified=False,
        notes="No spot sandbox; test mode submits to the live endpoint",
    )
    status_map = KRAKEN_STATUS

    def order_extras(self, order_id: str) -> Dict[str, Any]:
        # userref must fit a signed 32-bit integer
        return {"userref": random.randint(1, 2 ** 31 - 1), "oflags": "post"}

    def _parse(self, raw, sized, alert) -> ExchangeOrderResponse:
        errors = raw.get("error") or []
        result = raw.get("result") if isinstance(raw.get("result"), dict) else raw
        txid = result.get("txid")
        order_id = txid[0] if isinstance(txid, list) and txid else txid
        if not order_id and isinstance(result.get("descr"), dict):
            order_id = result["descr"].get("order")

        if errors:
            status = OrderStatus.REJECTED
            error = "; ".join(str(e) for e in errors) if isinstance(errors, list) else str(errors)
        elif result.get("status") is None:
            status = OrderStatus.PARTIAL
            error = None
        else:
            status = self.map_status(result.get("status"))
            error = None

        executed = self._as_float(result.get("vol_exec"))
        return self.make_response(
            raw,
            sized,
            alert,
            order_id=order_id,
            status=status,
            executed_quantity=executed,
            executed_price=self._ratio(result.get("cost"), result.get("vol_exec")),
            error=error,
        )
