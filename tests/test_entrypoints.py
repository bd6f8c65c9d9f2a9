import asyncio
import json
import sys

sys.path.insert(0, '.')

from config.config_loader import Config, SectionProxy
from config.utils import get_config_section
from ingest.persister import JsonFileStore
from main import process_background_message
from monitoring.async_utils import run_tasks_with_cleanup
from orchestration.ledger import LEDGER_KEY
from tests.relay_fixtures import relay_config


def test_get_config_section_handles_each_source():
    proxy = SectionProxy({'api': {'port': 8000}})
    assert get_config_section({'api': {'port': 1}}, 'api') == {'port': 1}
    assert get_config_section(proxy, 'api') == {'port': 8000}
    assert get_config_section(None, 'api') == {}
    assert get_config_section({'api': None}, 'missing') == {}


def test_config_substitutes_environment(tmp_path, monkeypatch):
    path = tmp_path / 'config.yaml'
    path.write_text(
        'database:\n'
        '  host: ${RELAY_TEST_HOST}\n'
        '  dsn: postgres://${RELAY_TEST_HOST}:5432/db\n'
        '  user: ${RELAY_TEST_UNSET}\n'
    )
    monkeypatch.setenv('RELAY_TEST_HOST', 'db.internal')
    monkeypatch.delenv('RELAY_TEST_UNSET', raising=False)
    cfg = Config(str(path))
    section = get_config_section(cfg, 'database')
    assert section['host'] == 'db.internal'
    assert section['dsn'] == 'postgres://db.internal:5432/db'
    assert section['user'] == '${RELAY_TEST_UNSET}'


def test_background_message_file_is_recorded(tmp_path):
    store_path = tmp_path / 'store.json'
    message_path = tmp_path / 'message.json'
    message_path.write_text(json.dumps({
        'messageId': 'push-1',
        'data': {'type': 'trading_alert', 'symbol': 'ETHUSDT', 'side': 'S', 'price': '3000'},
    }))
    cfg = relay_config(storage={'backend': 'file', 'path': str(store_path)})

    result = asyncio.run(process_background_message(str(message_path), cfg))

    assert result.alert.source_id == 'push-1'
    assert result.outcome is None
    persisted = asyncio.run(JsonFileStore(str(store_path)).get(LEDGER_KEY))
    assert [item['id'] for item in persisted] == [result.alert.id]
    assert persisted[0]['status'] == 'pending'
    assert persisted[0]['side'] == 'SELL'


def test_run_tasks_with_cleanup_cancels_siblings():
    cleaned = []

    async def _quick():
        return None

    async def _forever():
        await asyncio.sleep(3600)

    async def _cleanup():
        cleaned.append(True)

    async def _run():
        forever = asyncio.create_task(_forever())
        await run_tasks_with_cleanup([asyncio.create_task(_quick()), forever], cleanup=_cleanup)
        return forever

    forever = asyncio.run(_run())
    assert forever.cancelled()
    assert cleaned == [True]


def test_prefixed_environment_overrides_nested_keys(tmp_path, monkeypatch):
    path = tmp_path / 'config.yaml'
    path.write_text('storage:\n  backend: file\ngateway:\n  timeout_s: 30\n')
    monkeypatch.setenv('ALERT_RELAY__STORAGE__BACKEND', 'postgres')
    monkeypatch.setenv('ALERT_RELAY__GATEWAY__TIMEOUT_S', '12')
    cfg = Config(str(path))
    assert cfg.section('storage') == {'backend': 'postgres'}
    assert get_config_section(cfg, 'gateway')['timeout_s'] == 12
