import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Set, Tuple

from api.metrics import metrics
from monitoring.execution_auditor import ExecutionAuditor
from orchestration.events import AlertUpdatePublisher
from orchestration.ledger import AlertLedger
from risk.position_sizer import RiskSizer
from strategy.alerts import Alert, AlertStatus
from strategy.errors import (
    AlertNotFoundError,
    StorageError,
    TradingError,
    TransitionError,
)
from strategy.execution_types import ExchangeOrderResponse, OrderStatus
from strategy.gateway import ExchangeGateway
from strategy.trading_config import ExchangeCredentials, TradingConfig
from strategy.transports.registry import ExchangeRegistry


logger = logging.getLogger(__name__)

UNKNOWN_STATUS_WARNING = "Order accepted with an unrecognized status; verify it on the exchange"


class Disposition(Enum):
    EXECUTED = "executed"
    FAILED = "failed"
    IGNORED = "ignored"
    SKIPPED = "skipped"


@dataclass
class ExecutionOutcome:
    alert_id: str
    disposition: Disposition
    alert: Optional[Alert] = None
    response: Optional[ExchangeOrderResponse] = None
    reason: Optional[str] = None
    error: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.disposition is Disposition.SKIPPED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'alert_id': self.alert_id,
            'disposition': self.disposition.value,
            'reason': self.reason,
            'error': self.error,
            'alert': self.alert.to_dict() if self.alert else None,
            'response': self.response.as_dict() if self.response else None,
        }


class ExecutionOrchestrator:
    """Runs one alert through sizing, order building, submission and recording.

    At most one execution per alert id runs in this process: the id is
    claimed before the first await and released when the attempt finishes.
    Combined with the terminal status check against the ledger this gives
    at-most-once submission across both entry points.
    """

    def __init__(
        self,
        ledger: AlertLedger,
        gateway: ExchangeGateway,
        registry: ExchangeRegistry,
        sizer: Optional[RiskSizer] = None,
        publisher: Optional[AlertUpdatePublisher] = None,
        auditor: Optional[ExecutionAuditor] = None,
    ):
        self.ledger = ledger
        self.gateway = gateway
        self.registry = registry
        self.sizer = sizer or RiskSizer()
        self.publisher = publisher or AlertUpdatePublisher()
        self.auditor = auditor
        self._in_flight: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()

    def is_in_flight(self, alert_id: str) -> bool:
        return alert_id in self._in_flight

    async def execute(
        self,
        alert_id: str,
        config: TradingConfig,
        credentials: Iterable[ExchangeCredentials],
    ) -> ExecutionOutcome:
        if not self._claim(alert_id):
            logger.info("Alert %s is already executing; skipping", alert_id)
            return ExecutionOutcome(alert_id, Disposition.SKIPPED, reason='in_flight')

        task = asyncio.get_running_loop().create_task(
            self._run(alert_id, config, tuple(credentials))
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        # A cancelled caller must not abandon an order that may already be on the wire.
        return await asyncio.shield(task)

    async def ignore(self, alert_id: str) -> ExecutionOutcome:
        if not self._claim(alert_id):
            return ExecutionOutcome(alert_id, Disposition.SKIPPED, reason='in_flight')
        try:
            alert, skipped = self._check_pending(alert_id)
            if skipped:
                return skipped
            return await self._finalize(alert, AlertStatus.IGNORED)
        finally:
            self._release(alert_id)

    async def drain(self) -> None:
        """Wait for every running execution to record its outcome."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _claim(self, alert_id: str) -> bool:
        if alert_id in self._in_flight:
            return False
        self._in_flight.add(alert_id)
        metrics.update_in_flight(len(self._in_flight))
        return True

    def _release(self, alert_id: str) -> None:
        self._in_flight.discard(alert_id)
        metrics.update_in_flight(len(self._in_flight))

    def _check_pending(self, alert_id: str) -> Tuple[Optional[Alert], Optional[ExecutionOutcome]]:
        alert = self.ledger.get(alert_id)
        if alert is None:
            logger.warning("Alert %s is not recorded; nothing to do", alert_id)
            return None, ExecutionOutcome(alert_id, Disposition.SKIPPED, reason='not_recorded')
        if alert.status.is_terminal:
            logger.info("Alert %s already %s; skipping", alert_id, alert.status.value)
            return alert, ExecutionOutcome(
                alert_id, Disposition.SKIPPED, alert=alert, reason='already_terminal'
            )
        return alert, None

    async def _run(
        self,
        alert_id: str,
        config: TradingConfig,
        credentials: Tuple[ExchangeCredentials, ...],
    ) -> ExecutionOutcome:
        started = time.monotonic()
        try:
            alert, skipped = self._check_pending(alert_id)
            if skipped:
                return skipped

            try:
                sized = self.sizer.size(alert, config, credentials)
                request = self.registry.build_order(sized, alert)
                sent_at = time.monotonic()
                metrics.record_order_sent(request.exchange, config.test_mode)
                raw = await self.gateway.execute(request, sized.credentials, config.test_mode)
                metrics.record_order_send_latency(time.monotonic() - sent_at)
                response = self.registry.normalize_response(request.exchange, raw, sized, alert)
            except TradingError as exc:
                logger.warning("Execution of %s failed: %s", alert_id, exc)
                return await self._finalize(
                    alert, AlertStatus.FAILED, error=str(exc), test_mode=config.test_mode, started=started
                )
            except Exception as exc:
                logger.exception("Unexpected error executing %s", alert_id)
                return await self._finalize(
                    alert,
                    AlertStatus.FAILED,
                    error=str(exc) or type(exc).__name__,
                    test_mode=config.test_mode,
                    started=started,
                )

            status, error = self._disposition(response)
            return await self._finalize(
                alert,
                status,
                response=response,
                error=error,
                test_mode=config.test_mode,
                started=started,
            )
        finally:
            self._release(alert_id)

    @staticmethod
    def _disposition(response: ExchangeOrderResponse) -> Tuple[AlertStatus, Optional[str]]:
        if response.status in (OrderStatus.FILLED, OrderStatus.PARTIAL):
            return AlertStatus.EXECUTED, response.error
        if response.status is OrderStatus.UNKNOWN:
            if response.error:
                return AlertStatus.EXECUTED, f"{UNKNOWN_STATUS_WARNING} ({response.error})"
            return AlertStatus.EXECUTED, UNKNOWN_STATUS_WARNING
        return AlertStatus.FAILED, response.error or f"Order {response.status.value} by {response.exchange}"

    async def _finalize(
        self,
        alert: Alert,
        status: AlertStatus,
        response: Optional[ExchangeOrderResponse] = None,
        error: Optional[str] = None,
        test_mode: Optional[bool] = None,
        started: Optional[float] = None,
    ) -> ExecutionOutcome:
        executed_price = response.executed_price if response and status is AlertStatus.EXECUTED else None
        try:
            updated = await self.ledger.update_status(
                alert.id, status, executed_price=executed_price, error=error
            )
        except (StorageError, TransitionError, AlertNotFoundError) as exc:
            # The exchange outcome stands even if recording it failed.
            logger.error("Failed to record %s as %s: %s", alert.id, status.value, exc)
            metrics.record_storage_error('update_status')
            updated = self.ledger.get(alert.id) or alert

        outcome = ExecutionOutcome(
            alert_id=alert.id,
            disposition=Disposition(status.value),
            alert=updated,
            response=response,
            error=error,
        )
        logger.info(
            "Alert %s -> %s%s",
            alert.id,
            status.value,
            f" ({error})" if error else "",
        )
        metrics.record_execution(outcome.disposition.value, alert.exchange)
        if self.auditor is not None:
            self.auditor.record(
                alert.id,
                outcome.disposition.value,
                exchange=alert.exchange,
                test_mode=test_mode,
                order=response.as_dict() if response else None,
                error=error,
                elapsed_s=(time.monotonic() - started) if started is not None else None,
            )
        await self.publisher.publish(updated)
        return outcome
