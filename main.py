import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from api.alerts import AlertWebhook
from api.metrics import metrics, start_metrics_server
from config import config
from config.config_loader import Config
from config.utils import get_config_section
from ingest.alert_normalizer import AlertNormalizer
from ingest.persister import KeyValueStore, create_store
from monitoring.async_utils import run_tasks_with_cleanup
from monitoring.execution_auditor import ExecutionAuditor
from monitoring.logging_utils import setup_logging
from orchestration.events import AlertUpdatePublisher
from orchestration.ledger import AlertLedger
from orchestration.services import AlertIntakeService, IntakeResult
from orchestration.settings import SettingsStore
from risk.position_sizer import RiskSizer
from strategy.execution import ExecutionOrchestrator
from strategy.gateway import ExchangeGateway
from strategy.trading_config import TradingConfig
from strategy.transports.registry import default_registry


logger = logging.getLogger(__name__)


class AlertRelaySystem:
    """Wire storage, settings, ledger, exchange adapters and intake together."""

    def __init__(self, config_obj: Optional[Any] = None, store: Optional[KeyValueStore] = None):
        self.config = config_obj if config_obj is not None else config
        self.app_cfg = get_config_section(self.config, 'app')
        self.storage_cfg = get_config_section(self.config, 'storage')
        self.database_cfg = get_config_section(self.config, 'database')
        self.gateway_cfg = get_config_section(self.config, 'gateway')
        self.execution_cfg = get_config_section(self.config, 'execution')
        self.monitoring_cfg = get_config_section(self.config, 'monitoring')
        self.api_cfg = get_config_section(self.config, 'api')

        defaults_cfg = dict(get_config_section(self.config, 'trading_defaults'))
        if not defaults_cfg.get('default_exchange') and self.app_cfg.get('default_exchange'):
            defaults_cfg['default_exchange'] = self.app_cfg['default_exchange']
        defaults = TradingConfig.from_dict(defaults_cfg)

        self.store = store or create_store(self.storage_cfg, self.database_cfg)
        self.settings = SettingsStore(self.store, defaults)
        self.ledger = AlertLedger(
            self.store, max_alerts=int(self.storage_cfg.get('ledger_max_alerts', 100))
        )
        self.registry = default_registry(self.gateway_cfg.get('client_order_prefix'))
        self.gateway = ExchangeGateway(
            self.registry, timeout_s=float(self.gateway_cfg.get('timeout_s', 30))
        )
        self.publisher = AlertUpdatePublisher()
        audit_log = self.execution_cfg.get('audit_log')
        self.auditor = ExecutionAuditor(audit_log) if audit_log else None
        self.orchestrator = ExecutionOrchestrator(
            self.ledger,
            self.gateway,
            self.registry,
            sizer=RiskSizer(),
            publisher=self.publisher,
            auditor=self.auditor,
        )
        self.normalizer = AlertNormalizer(
            default_exchange=self.app_cfg.get('default_exchange') or 'binance'
        )
        self.intake = AlertIntakeService(self.normalizer, self.ledger, self.settings, self.orchestrator)

        self.webhook = AlertWebhook(self.monitoring_cfg.get('alert_webhook'))
        if self.webhook.enabled:
            self.publisher.subscribe(self.webhook.send_alert_update)

        self.running = False
        self._initialized = False

    async def initialize(self):
        if self._initialized:
            return
        await self.store.initialize()
        await self.settings.load()
        await self.ledger.load()
        metrics.update_ledger(self.ledger.counts())
        self._initialized = True

    async def start(self):
        self.running = True
        await self.initialize()
        if self.monitoring_cfg.get('prometheus_enabled'):
            start_metrics_server(int(self.monitoring_cfg.get('prometheus_port', 9100)))
        config_snapshot = self.settings.config
        logger.info(
            "Alert relay started in %s mode (%s)",
            config_snapshot.mode.value,
            "TEST" if config_snapshot.test_mode else "LIVE",
        )

    async def stop(self):
        self.running = False
        await self.orchestrator.drain()
        await self.gateway.close()
        await self.webhook.close()
        await self.store.close()


async def process_background_message(path: str, config_obj: Optional[Any] = None) -> Optional[IntakeResult]:
    """Handle one pushed message the way a freshly woken background process would."""
    message: Dict[str, Any] = json.loads(Path(path).read_text(encoding='utf-8'))
    system = AlertRelaySystem(config_obj)
    try:
        await system.initialize()
        result = await system.intake.on_background_message(message)
    finally:
        await system.stop()
    if result is None:
        logger.info("Message in %s is not a trading alert", path)
    else:
        logger.info("Background message processed: %s", json.dumps(result.to_dict(), default=str))
    return result


async def serve(config_obj: Optional[Any] = None):
    import uvicorn
    from api.fastapi_server import create_app

    system = AlertRelaySystem(config_obj)
    api_cfg = system.api_cfg
    server = uvicorn.Server(
        uvicorn.Config(
            create_app(system),
            host=api_cfg.get('host', '0.0.0.0'),
            port=int(api_cfg.get('port', 8000)),
            log_level=str(system.app_cfg.get('log_level', 'info')).lower(),
        )
    )
    await run_tasks_with_cleanup(
        [asyncio.create_task(server.serve(), name='api-server')],
        cleanup=system.orchestrator.drain,
    )


def main(argv=None):
    parser = argparse.ArgumentParser(description="Trading alert relay")
    parser.add_argument('--config', help="Path to an alternative config.yaml")
    parser.add_argument(
        '--background-message',
        metavar='FILE',
        help="Process one JSON push message as the background entry point and exit",
    )
    args = parser.parse_args(argv)

    config_obj = Config(args.config) if args.config else config
    setup_logging(get_config_section(config_obj, 'app').get('log_level', logging.INFO))

    try:
        if args.background_message:
            asyncio.run(process_background_message(args.background_message, config_obj))
        else:
            asyncio.run(serve(config_obj))
    except KeyboardInterrupt:
        logger.info("System shutting down on interrupt")


if __name__ == "__main__":
    main()
