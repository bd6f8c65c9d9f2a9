from typing import Optional


class TradingError(Exception):
    """Base class for failures raised by the alert execution pipeline."""


class ValidationError(TradingError):
    pass


class UnsupportedExchangeError(ValidationError):
    def __init__(self, exchange: str):
        self.exchange = exchange
        super().__init__(f"Unsupported exchange: {exchange}")


class GatewayError(TradingError):
    pass


class NetworkError(GatewayError):
    pass


class HttpError(GatewayError):
    def __init__(self, status: int, message: Optional[str], body: str):
        self.status = status
        self.message = message
        self.body = body
        super().__init__(f"Exchange API error (status={status}): {message or body or 'no body'}")


class NormalizationError(TradingError):
    pass


class StorageError(TradingError):
    pass


class DuplicateAlertError(TradingError):
    def __init__(self, alert_id: str, existing_id: Optional[str] = None):
        self.alert_id = alert_id
        self.existing_id = existing_id or alert_id
        super().__init__(f"Alert {alert_id} already recorded as {self.existing_id}")


class AlertNotFoundError(TradingError):
    def __init__(self, alert_id: str):
        self.alert_id = alert_id
        super().__init__(f"Alert not found: {alert_id}")


class TransitionError(TradingError):
    pass
