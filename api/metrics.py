import errno
import logging
from pathlib import Path
from prometheus_client import Counter, Gauge, Histogram, start_http_server
from typing import Optional

from config import config


logger = logging.getLogger(__name__)

_METRICS_SERVER_STARTED = False
_METRICS_PORT: Optional[int] = None


def _get_port_scan_limit() -> int:
    try:
        return int(config.monitoring.get('prometheus_port_scan', 0))
    except (AttributeError, TypeError, ValueError):
        return 0


def _get_port_file() -> Optional[Path]:
    try:
        path_value = config.monitoring.get('metrics_port_file')
    except AttributeError:
        return None
    if not path_value:
        return None
    return Path(path_value)


def _write_port_file(port: int) -> None:
    port_file = _get_port_file()
    if not port_file:
        return
    try:
        port_file.parent.mkdir(parents=True, exist_ok=True)
        port_file.write_text(str(port))
    except OSError as exc:
        logger.warning("Failed to persist metrics port file %s: %s", port_file, exc)


class MetricsCollector:
    def __init__(self):
        self.alerts_received = Counter('alerts_received_total', 'Total inbound alert messages', ['entry'])
        self.alerts_ignored_messages = Counter('alert_messages_skipped_total', 'Inbound messages that were not trading alerts')
        self.duplicates_suppressed = Counter('alert_duplicates_suppressed_total', 'Redelivered alerts collapsed onto an existing record', ['reason'])
        self.executions = Counter('alert_executions_total', 'Execution attempts by outcome', ['outcome', 'exchange'])
        self.orders_sent = Counter('orders_sent_total', 'Orders submitted to exchanges', ['exchange', 'mode'])
        self.order_send_latency = Histogram('order_send_latency_seconds', 'Latency from order send to exchange response')
        self.in_flight = Gauge('alert_executions_in_flight', 'Alert executions currently running')
        self.ledger_alerts = Gauge('ledger_alerts', 'Alerts held in the ledger', ['status'])
        self.storage_errors = Counter('storage_errors_total', 'Failed key/value store operations', ['operation'])

    def record_alert_received(self, entry: str):
        self.alerts_received.labels(entry=entry).inc()

    def record_non_trading_message(self):
        self.alerts_ignored_messages.inc()

    def record_duplicate(self, reason: str):
        self.duplicates_suppressed.labels(reason=reason).inc()

    def record_execution(self, outcome: str, exchange: str):
        self.executions.labels(outcome=outcome, exchange=exchange.lower()).inc()

    def record_order_sent(self, exchange: str, test_mode: bool):
        self.orders_sent.labels(exchange=exchange, mode='test' if test_mode else 'live').inc()

    def record_order_send_latency(self, latency_seconds: float):
        self.order_send_latency.observe(latency_seconds)

    def update_in_flight(self, count: int):
        self.in_flight.set(count)

    def update_ledger(self, counts):
        for status, count in counts.items():
            self.ledger_alerts.labels(status=status).set(count)

    def record_storage_error(self, operation: str):
        self.storage_errors.labels(operation=operation).inc()

def start_metrics_server(port: int = 9090):
    global _METRICS_SERVER_STARTED, _METRICS_PORT
    if _METRICS_SERVER_STARTED:
        return
    port_scan_limit = max(0, _get_port_scan_limit())
    last_error: Optional[OSError] = None
    for offset in range(port_scan_limit + 1):
        candidate = port + offset
        try:
            start_http_server(candidate)
        except OSError as exc:
            last_error = exc
            if exc.errno == errno.EADDRINUSE:
                logger.warning(
                    "Prometheus metrics server port %s already in use; trying next candidate",
                    candidate,
                )
                continue
            raise
        _METRICS_SERVER_STARTED = True
        _METRICS_PORT = candidate
        _write_port_file(candidate)
        logger.info("Prometheus metrics server started on port %s", candidate)
        return
    if last_error and last_error.errno == errno.EADDRINUSE:
        raise RuntimeError(
            f"Unable to bind Prometheus metrics server on ports {port}-{port + port_scan_limit}"
        ) from last_error
    if last_error:
        raise last_error

metrics = MetricsCollector()
