import asyncio
import logging
from typing import Dict, List, Optional, Set

from ingest.persister import KeyValueStore
from strategy.alerts import Alert, AlertStatus
from strategy.errors import AlertNotFoundError, DuplicateAlertError, StorageError


logger = logging.getLogger(__name__)

LEDGER_KEY = 'trade_alerts'


class AlertLedger:
    """Durable record of every received alert and its lifecycle status.

    State lives in memory and is mirrored to the key/value store as one JSON
    list, newest first. Mutations happen synchronously on the event loop;
    only the snapshot write awaits. Writes are serialized and merge with the
    persisted list first, so records written by another process sharing the
    store survive.
    """

    def __init__(self, store: KeyValueStore, max_alerts: int = 100):
        self._kv = store
        self.max_alerts = max(1, int(max_alerts))
        self._alerts: List[Alert] = []
        self._lock = asyncio.Lock()
        # Ids removed on purpose (retention, clear_history) that a merge must not restore.
        self._dropped: Set[str] = set()

    async def load(self) -> None:
        self._alerts = self._sorted(await self._read())
        logger.info("Loaded %d alerts from ledger", len(self._alerts))

    async def refresh(self) -> None:
        """Merge persisted state written by another process into memory."""
        added = self._merge(await self._read())
        if added:
            logger.debug("Ledger refresh picked up %d alerts", added)

    def _merge(self, persisted_alerts: List[Alert]) -> int:
        # Unknown ids are adopted and a pending record takes a persisted terminal
        # status; nothing already in memory is removed.
        known = {a.id: a for a in self._alerts}
        added = 0
        for persisted in persisted_alerts:
            if persisted.id in self._dropped:
                continue
            current = known.get(persisted.id)
            if current is None:
                self._alerts.append(persisted)
                known[persisted.id] = persisted
                added += 1
                continue
            if current.status is AlertStatus.PENDING and persisted.status.is_terminal:
                current.status = persisted.status
                current.executed_price = persisted.executed_price
                current.executed_at = persisted.executed_at
                current.error = persisted.error
        self._alerts = self._sorted(self._alerts)
        return added

    async def store(self, alert: Alert) -> Alert:
        if self.is_duplicate(alert.id):
            raise DuplicateAlertError(alert.id)
        if alert.source_id:
            existing = self._find_source(alert.source_id)
            if existing is not None:
                raise DuplicateAlertError(alert.id, existing.id)

        record = alert.copy()
        record.status = AlertStatus.PENDING
        previous = list(self._alerts)
        self._alerts.insert(0, record)
        self._trim()
        kept = {id(a) for a in self._alerts}
        evicted = [a for a in previous if id(a) not in kept]
        try:
            await self._persist()
        except StorageError:
            self._alerts = self._sorted([a for a in self._alerts if a is not record] + evicted)
            self._dropped.difference_update(a.id for a in evicted)
            raise
        logger.info(
            "Stored alert %s %s %s on %s",
            record.id,
            record.side.value,
            record.symbol,
            record.exchange,
        )
        return record.copy()

    async def update_status(
        self,
        alert_id: str,
        status: AlertStatus,
        executed_price: Optional[float] = None,
        error: Optional[str] = None,
    ) -> Alert:
        alert = self._get(alert_id)
        if alert is None:
            raise AlertNotFoundError(alert_id)
        if alert.transition(status, executed_price=executed_price, error=error):
            await self._persist()
        return alert.copy()

    def is_duplicate(self, alert_id: str) -> bool:
        return self._get(alert_id) is not None

    def find_by_source(self, source_id: str) -> Optional[Alert]:
        alert = self._find_source(source_id)
        return alert.copy() if alert else None

    def get(self, alert_id: str) -> Optional[Alert]:
        alert = self._get(alert_id)
        return alert.copy() if alert else None

    def list_alerts(self, status: Optional[AlertStatus] = None) -> List[Alert]:
        return [a.copy() for a in self._alerts if status is None or a.status is status]

    async def clear_history(self) -> int:
        cleared = [a.id for a in self._alerts if a.status.is_terminal]
        self._dropped.update(cleared)
        self._alerts = [a for a in self._alerts if a.status is AlertStatus.PENDING]
        removed = len(cleared)
        if removed:
            await self._persist()
        return removed

    def _get(self, alert_id: str) -> Optional[Alert]:
        for alert in self._alerts:
            if alert.id == alert_id:
                return alert
        return None

    def _find_source(self, source_id: str) -> Optional[Alert]:
        if not source_id:
            return None
        for alert in self._alerts:
            if alert.source_id == source_id:
                return alert
        return None

    def _trim(self) -> None:
        # Evict the oldest terminal alerts; pending alerts are always kept.
        excess = len(self._alerts) - self.max_alerts
        if excess <= 0:
            return
        keep: List[Alert] = []
        for alert in reversed(self._alerts):
            if excess > 0 and alert.status.is_terminal:
                excess -= 1
                self._dropped.add(alert.id)
                continue
            keep.append(alert)
        keep.reverse()
        self._alerts = keep

    async def _persist(self) -> None:
        async with self._lock:
            self._merge(await self._read())
            self._trim()
            snapshot = [a.to_dict() for a in self._alerts]
            await self._kv.set(LEDGER_KEY, snapshot)

    async def _read(self) -> List[Alert]:
        raw = await self._kv.get(LEDGER_KEY)
        if not raw:
            return []
        if not isinstance(raw, list):
            raise StorageError(f"{LEDGER_KEY} is not a list")
        alerts: List[Alert] = []
        for item in raw:
            try:
                alerts.append(Alert.from_dict(item))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed ledger entry: %s", exc)
        return alerts

    @staticmethod
    def _sorted(alerts: List[Alert]) -> List[Alert]:
        return sorted(alerts, key=lambda a: a.timestamp, reverse=True)

    def counts(self) -> Dict[str, int]:
        result = {status.value: 0 for status in AlertStatus}
        for alert in self._alerts:
            result[alert.status.value] += 1
        return result
