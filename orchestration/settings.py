import logging
from dataclasses import replace
from typing import Any, Dict, Optional, Tuple

from ingest.persister import KeyValueStore
from strategy.errors import ValidationError
from strategy.trading_config import ExchangeCredentials, TradingConfig


logger = logging.getLogger(__name__)

CONFIG_KEY = 'trading_config'
CREDENTIALS_KEY = 'exchange_credentials'


class SettingsStore:
    """Single owner of the trading config and credential snapshots.

    Readers receive immutable values; every update persists first and only
    then swaps the in-memory snapshot.
    """

    def __init__(self, store: KeyValueStore, defaults: Optional[TradingConfig] = None):
        self.store = store
        self.defaults = defaults or TradingConfig()
        self._config = self.defaults
        self._credentials: Tuple[ExchangeCredentials, ...] = ()

    @property
    def config(self) -> TradingConfig:
        return self._config

    @property
    def credentials(self) -> Tuple[ExchangeCredentials, ...]:
        return self._credentials

    def snapshot(self) -> Tuple[TradingConfig, Tuple[ExchangeCredentials, ...]]:
        return self._config, self._credentials

    async def load(self) -> None:
        await self._read()
        logger.info(
            "Settings loaded: mode=%s test_mode=%s credentials=%d",
            self._config.mode.value,
            self._config.test_mode,
            len(self._credentials),
        )

    async def refresh(self) -> None:
        await self._read()
        logger.debug("Settings refreshed from store")

    async def _read(self) -> None:
        self._config = self._parse_config(await self.store.get(CONFIG_KEY))
        self._credentials = self._parse_credentials(await self.store.get(CREDENTIALS_KEY))

    async def update_config(self, **changes: Any) -> TradingConfig:
        updated = self._config.with_changes(**changes)
        await self.store.set(CONFIG_KEY, updated.to_dict())
        self._config = updated
        logger.info("Trading config updated: %s", sorted(changes))
        return updated

    async def save_credentials(self, credentials: ExchangeCredentials) -> ExchangeCredentials:
        others = []
        for existing in self._credentials:
            if existing.id == credentials.id:
                continue
            if credentials.is_active and existing.is_active and existing.matches(credentials.exchange):
                existing = replace(existing, is_active=False)
            others.append(existing)
        updated = (credentials,) + tuple(others)
        await self.store.set(CREDENTIALS_KEY, [c.to_dict() for c in updated])
        self._credentials = updated
        logger.info("Saved credentials %s for %s", credentials.id, credentials.exchange)
        return credentials

    async def remove_credentials(self, credentials_id: str) -> bool:
        remaining = tuple(c for c in self._credentials if c.id != credentials_id)
        if len(remaining) == len(self._credentials):
            return False
        await self.store.set(CREDENTIALS_KEY, [c.to_dict() for c in remaining])
        self._credentials = remaining
        return True

    def _parse_config(self, raw: Any) -> TradingConfig:
        if not isinstance(raw, dict):
            return self.defaults
        known: Dict[str, Any] = {
            k: v for k, v in raw.items() if k in TradingConfig.__dataclass_fields__
        }
        try:
            return self.defaults.with_changes(**known)
        except ValidationError as exc:
            logger.warning("Stored trading config is invalid, using defaults: %s", exc)
            return self.defaults

    @staticmethod
    def _parse_credentials(raw: Any) -> Tuple[ExchangeCredentials, ...]:
        if not isinstance(raw, list):
            return ()
        parsed = []
        for item in raw:
            if not isinstance(item, dict):
                continue
            try:
                parsed.append(ExchangeCredentials.from_dict(item))
            except ValidationError as exc:
                logger.warning("Skipping stored credentials: %s", exc)
        return tuple(parsed)
