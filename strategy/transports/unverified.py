"""Adapters declared for completeness but never exercised against a real account."""
from typing import Any, Dict

from strategy.execution_types import ExchangeOrderResponse, OrderStatus
from strategy.transports.base import Endpoints, ExchangeAdapter
from strategy.transports.binance import BINANCE_STATUS


# BingX and CoinEx both answer code 0 on success
UNVERIFIED_OK = "0"

BINGX_STATUS = {
    "NEW": OrderStatus.PARTIAL,
    "PENDING": OrderStatus.PARTIAL,
    "PARTIALLY_FILLED": OrderStatus.PARTIAL,
    "FILLED": OrderStatus.FILLED,
    "CANCELED": OrderStatus.CANCELLED,
    "CANCELLED": OrderStatus.CANCELLED,
    "FAILED": OrderStatus.REJECTED,
}

COINEX_STATUS = {
    "not_deal": OrderStatus.PARTIAL,
    "part_deal": OrderStatus.PARTIAL,
    "done": OrderStatus.FILLED,
    "cancel": OrderStatus.CANCELLED,
}


class MexcAdapter(ExchangeAdapter):
    name = "mexc"
    display_name = "MEXC"
    verified = False
    endpoints = Endpoints(
        live="https://api.mexc.com/api/v3/order",
        sandbox="https://testnet.mexc.com/api/v3/order",
        sandbox_verified=False,
        notes="Testnet endpoint has not been confirmed",
    )
    status_map = BINANCE_STATUS

    def order_extras(self, order_id: str) -> Dict[str, Any]:
        return {"newClientOrderId": order_id}

    def _parse(self, raw, sized, alert) -> ExchangeOrderResponse:
        status = self.map_status(raw.get("status"))
        error = None
        if raw.get("code") not in (None, 0, 200, "0", "200"):
            status = OrderStatus.REJECTED
            error = raw.get("msg") or f"MEXC error code {raw.get('code')}"
        return self.make_response(
            raw,
            sized,
            alert,
            order_id=raw.get("orderId") or raw.get("clientOrderId"),
            status=status,
            executed_quantity=self._as_float(raw.get("executedQty")),
            executed_price=self._ratio(raw.get("cummulativeQuoteQty"), raw.get("executedQty")),
            error=error,
        )


class BingXAdapter(ExchangeAdapter):
    name = "bingx"
    display_name = "BingX"
    verified = False
    symbol_separator = "-"
    endpoints = Endpoints(
        live="https://open-api.bingx.com/openApi/spot/v1/trade/order",
        sandbox="https://open-api-testnet.bingx.com/openApi/spot/v1/trade/order",
        sandbox_verified=False,
        notes="Testnet endpoint has not been confirmed",
    )
    status_map = BINGX_STATUS

    def order_extras(self, order_id: str) -> Dict[str, Any]:
        return {"clientOrderID": order_id}

    def _parse(self, raw, sized, alert) -> ExchangeOrderResponse:
        data = raw.get("data") if isinstance(raw.get("data"), dict) else {}
        if str(raw.get("code", UNVERIFIED_OK)).strip() != UNVERIFIED_OK:
            return self.make_response(
                raw,
                sized,
                alert,
                order_id=data.get("orderId"),
                status=OrderStatus.REJECTED,
                error=raw.get("msg") or f"BingX error code {raw.get('code')}",
            )
        status = self.map_status(data.get("status")) if data.get("status") else OrderStatus.PARTIAL
        return self.make_response(
            raw,
            sized,
            alert,
            order_id=data.get("orderId"),
            status=status,
            executed_quantity=self._as_float(data.get("executedQty")),
            executed_price=self._ratio(data.get("cummulativeQuoteQty"), data.get("executedQty")),
        )


class CoinExAdapter(ExchangeAdapter):
    name = "coinex"
    display_name = "CoinEx"
    verified = False
    endpoints = Endpoints(
        live="https://api.coinex.com/v1/order",
        sandbox="https://testnet.coinex.com/v1/order",
        sandbox_verified=False,
        notes="Testnet endpoint has not been confirmed",
    )
    status_map = COINEX_STATUS

    def order_extras(self, order_id: str) -> Dict[str, Any]:
        return {"client_id": order_id}

    def _parse(self, raw, sized, alert) -> ExchangeOrderResponse:
        data = raw.get("data") if isinstance(raw.get("data"), dict) else {}
        if str(raw.get("code", UNVERIFIED_OK)).strip() != UNVERIFIED_OK:
            return self.make_response(
                raw,
                sized,
                alert,
                order_id=data.get("id"),
                status=OrderStatus.REJECTED,
                error=raw.get("message") or f"CoinEx error code {raw.get('code')}",
            )
        status = self.map_status(data.get("status")) if data.get("status") else OrderStatus.PARTIAL
        return self.make_response(
            raw,
            sized,
            alert,
            order_id=data.get("id"),
            status=status,
            executed_quantity=self._as_float(data.get("deal_amount")),
            executed_price=self._as_float(data.get("avg_price")),
        )
