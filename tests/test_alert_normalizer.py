import math
import re
import sys

sys.path.insert(0, '.')

import pytest

from ingest.alert_normalizer import (
    AlertNormalizer,
    extract_message_data,
    is_trading_alert,
    message_id,
    parse_float,
)
from strategy.alerts import AlertStatus, Side


def test_normalize_full_payload():
    normalizer = AlertNormalizer(default_exchange='binance')
    alert = normalizer.normalize({
        'pair': 'ETH/USDT',
        'side': 'S',
        'price': '3120.5',
        'quantity': '2',
        'exchange': 'Kraken',
        'strategy': 'Pivot',
        'stopLoss': '3200',
        'takeProfit': '3000',
        'timeframe': '15m',
    }, source_id='msg-1')

    assert alert.symbol == 'ETH/USDT'
    assert alert.side is Side.SELL
    assert alert.price == 3120.5
    assert alert.quantity == 2.0
    assert alert.exchange == 'Kraken'
    assert alert.strategy == 'Pivot'
    assert alert.stop_loss == 3200.0
    assert alert.take_profit == 3000.0
    assert alert.status is AlertStatus.PENDING
    assert alert.source_id == 'msg-1'
    assert alert.extras['timeframe'] == '15m'
    assert re.match(r'^alert_\d+_[0-9a-f]{9}$', alert.id)


@pytest.mark.parametrize('code,expected', [
    ('L', Side.BUY),
    ('S', Side.SELL),
    ('C', Side.SELL),
    ('CL', Side.SELL),
    ('CS', Side.BUY),
    ('buy', Side.BUY),
    ('SELL', Side.SELL),
])
def test_side_codes(code, expected):
    alert = AlertNormalizer().normalize({'symbol': 'BTCUSDT', 'side': code, 'price': 1})
    assert alert.side is expected


def test_side_falls_back_to_action_then_buy(caplog):
    normalizer = AlertNormalizer()
    assert normalizer.normalize({'side': 'X', 'action': 'sell'}).side is Side.SELL
    with caplog.at_level('WARNING'):
        assert normalizer.normalize({'pair': 'BTCUSDT'}).side is Side.BUY
    assert 'defaulting to BUY' in caplog.text


def test_defaults_and_unparsable_numbers():
    alert = AlertNormalizer(default_exchange='kucoin').normalize({
        'side': 'L',
        'price': 'abc',
        'quantity': 'n/a',
        'stopLoss': 'bad',
    })
    assert alert.price == 0.0
    assert alert.quantity == 1.0
    assert alert.stop_loss == 0.0
    assert alert.take_profit is None
    assert alert.exchange == 'kucoin'
    assert alert.strategy == 'Unknown'
    assert alert.symbol == 'UNKNOWN'


def test_keys_are_case_and_underscore_insensitive():
    alert = AlertNormalizer().normalize({
        'PAIR': 'SOL/USDT',
        'SIDE': 'L',
        'PRICE': 140,
        'STOP_LOSS': 130,
        'take_profit': 160,
    })
    assert alert.symbol == 'SOL/USDT'
    assert alert.price == 140.0
    assert alert.stop_loss == 130.0
    assert alert.take_profit == 160.0


def test_pair_wins_over_symbol_and_default_exchange_override():
    alert = AlertNormalizer(default_exchange='binance').normalize(
        {'pair': 'BTC/USDT', 'symbol': 'IGNORED', 'side': 'L'},
        default_exchange='bybit',
    )
    assert alert.symbol == 'BTC/USDT'
    assert alert.exchange == 'bybit'


def test_ids_are_unique():
    normalizer = AlertNormalizer()
    ids = {normalizer.normalize({'side': 'L'}).id for _ in range(50)}
    assert len(ids) == 50


def test_parse_float_rejects_non_finite():
    assert parse_float('inf') == 0.0
    assert parse_float(float('nan'), 1.0) == 1.0
    assert parse_float(' 12.5 ') == 12.5
    assert not math.isnan(parse_float('nan'))


def test_envelope_helpers():
    message = {'messageId': 'abc', 'data': {'type': 'trading_alert', 'pair': 'BTC/USDT'}}
    data = extract_message_data(message)
    assert data == {'type': 'trading_alert', 'pair': 'BTC/USDT'}
    assert message_id(message) == 'abc'
    assert message_id({'data': {}}) is None
    assert extract_message_data({'pair': 'X'}) == {'pair': 'X'}


@pytest.mark.parametrize('data,expected', [
    ({'type': 'trading_alert'}, True),
    ({'type': 'trade_alert'}, True),
    ({'type': 'news', 'pair': 'BTC/USDT'}, False),
    ({'price': '10'}, True),
    ({'title': 'hello'}, False),
])
def test_is_trading_alert(data, expected):
    assert is_trading_alert(data) is expected
