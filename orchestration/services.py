import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from api.metrics import metrics
from ingest.alert_normalizer import (
    AlertNormalizer,
    extract_message_data,
    is_trading_alert,
    message_id,
)
from orchestration.ledger import AlertLedger
from orchestration.settings import SettingsStore
from strategy.alerts import Alert, AlertStatus
from strategy.errors import DuplicateAlertError
from strategy.execution import ExecutionOrchestrator, ExecutionOutcome
from strategy.trading_config import TradingMode


logger = logging.getLogger(__name__)


@dataclass
class IntakeResult:
    alert: Alert
    duplicate: bool = False
    outcome: Optional[ExecutionOutcome] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'alert': self.alert.to_dict(),
            'duplicate': self.duplicate,
            'outcome': self.outcome.to_dict() if self.outcome else None,
        }


class AlertIntakeService:
    """Foreground and background entry points plus the manual approve/ignore actions.

    Both entry points run the same pipeline and first re-read settings and
    ledger, since a separate background process may share the store.
    """

    def __init__(
        self,
        normalizer: AlertNormalizer,
        ledger: AlertLedger,
        settings: SettingsStore,
        orchestrator: ExecutionOrchestrator,
    ):
        self.normalizer = normalizer
        self.ledger = ledger
        self.settings = settings
        self.orchestrator = orchestrator

    async def on_foreground_message(self, message: Mapping[str, Any]) -> Optional[IntakeResult]:
        await self._sync()
        return await self._handle(message, 'foreground')

    async def on_background_message(self, message: Mapping[str, Any]) -> Optional[IntakeResult]:
        await self._sync()
        return await self._handle(message, 'background')

    async def approve(self, alert_id: str) -> ExecutionOutcome:
        await self._sync()
        config, credentials = self.settings.snapshot()
        return await self.orchestrator.execute(alert_id, config, credentials)

    async def ignore(self, alert_id: str) -> ExecutionOutcome:
        await self.ledger.refresh()
        return await self.orchestrator.ignore(alert_id)

    async def _sync(self) -> None:
        await self.settings.refresh()
        await self.ledger.refresh()

    async def _handle(self, message: Mapping[str, Any], entry: str) -> Optional[IntakeResult]:
        metrics.record_alert_received(entry)
        data = extract_message_data(message)
        if not is_trading_alert(data):
            metrics.record_non_trading_message()
            logger.debug("Ignoring non-trading %s message", entry)
            return None

        source_id = message_id(message)
        existing = self.ledger.find_by_source(source_id) if source_id else None
        if existing is not None:
            metrics.record_duplicate('source_id')
            logger.info("Message %s already recorded as %s", source_id, existing.id)
            return await self._resume(existing)

        config, _ = self.settings.snapshot()
        alert = self.normalizer.normalize(
            data, source_id=source_id, default_exchange=config.default_exchange
        )
        try:
            stored = await self.ledger.store(alert)
        except DuplicateAlertError as exc:
            metrics.record_duplicate('alert_id')
            logger.info("Duplicate alert %s suppressed", exc.alert_id)
            current = self.ledger.get(exc.existing_id)
            if current is None:
                return IntakeResult(alert=alert, duplicate=True)
            return await self._resume(current)

        logger.info("Received %s alert %s via %s entry", stored.strategy, stored.id, entry)
        metrics.update_ledger(self.ledger.counts())
        await self.orchestrator.publisher.publish(stored)
        return await self._maybe_execute(IntakeResult(alert=stored))

    async def _resume(self, alert: Alert) -> IntakeResult:
        result = IntakeResult(alert=alert, duplicate=True)
        if alert.status is not AlertStatus.PENDING:
            return result
        # The claim and terminal check inside execute() keep this at most once.
        return await self._maybe_execute(result)

    async def _maybe_execute(self, result: IntakeResult) -> IntakeResult:
        config, credentials = self.settings.snapshot()
        alert = result.alert
        if config.mode is not TradingMode.AUTO:
            return result
        if not config.strategy_enabled(alert.strategy):
            logger.info("Strategy %s is disabled; alert %s stays pending", alert.strategy, alert.id)
            return result
        outcome = await self.orchestrator.execute(alert.id, config, credentials)
        result.outcome = outcome
        if outcome.alert is not None:
            result.alert = outcome.alert
        return result
