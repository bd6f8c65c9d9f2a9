import sys

sys.path.insert(0, '.')

import pytest

from strategy.alerts import Side
from strategy.errors import UnsupportedExchangeError, ValidationError
from strategy.execution_types import OrderStatus, SizedOrder
from strategy.transports.base import split_pair
from strategy.transports.registry import default_registry
from tests.relay_fixtures import make_alert, make_credentials


def _sized(quantity=0.002, price=50000.0) -> SizedOrder:
    return SizedOrder(
        calculated_quantity=quantity,
        calculated_price=price,
        order_value=quantity * price,
        credentials=make_credentials(passphrase='pp'),
    )


@pytest.mark.parametrize('exchange,extras', [
    ('binance', {'newClientOrderId'}),
    ('Binance EU', {'newClientOrderId'}),
    ('kraken', {'userref', 'oflags'}),
    ('Coinbase', {'client_order_id', 'stp'}),
    ('coinbase pro', {'client_order_id', 'stp'}),
    ('kucoin', {'clientOid'}),
    ('bybit', {'orderLinkId', 'category'}),
    ('mexc', {'newClientOrderId'}),
    ('bingx', {'clientOrderID'}),
    ('coinex', {'client_id'}),
])
def test_build_order_extras(exchange, extras):
    registry = default_registry('relay')
    request = registry.build_order(_sized(), make_alert(exchange=exchange, side=Side.SELL))
    base = {'symbol', 'side', 'quantity', 'price', 'type', 'timeInForce'}
    assert set(request.body) == base | extras
    assert request.body['side'] == 'sell'
    assert request.body['type'] == 'limit'
    assert request.body['timeInForce'] == 'GTC'


def test_exchange_specific_fields():
    registry = default_registry('relay')
    alert = make_alert(exchange='kraken')
    kraken = registry.build_order(_sized(), alert).body
    assert kraken['oflags'] == 'post'
    assert 0 < kraken['userref'] < 2 ** 31

    bybit = registry.build_order(_sized(), make_alert(exchange='bybit')).body
    assert bybit['category'] == 'spot'
    assert bybit['orderLinkId'].startswith('relay_')

    coinbase = registry.build_order(_sized(), make_alert(exchange='coinbase')).body
    assert coinbase['stp'] == 'dc'
    assert len(coinbase['client_order_id']) == 36


def test_client_order_ids_are_unique():
    registry = default_registry('relay')
    ids = {registry.build_order(_sized(), make_alert()).client_order_id for _ in range(20)}
    assert len(ids) == 20


def test_symbol_formatting():
    registry = default_registry()
    assert registry.build_order(_sized(), make_alert(symbol='BTC/USDT')).body['symbol'] == 'BTCUSDT'
    assert registry.build_order(_sized(), make_alert(symbol='btcusdt', exchange='kucoin')).body['symbol'] == 'BTC-USDT'
    assert split_pair('ETH-BTC') == ('ETH', 'BTC')
    assert split_pair('DOGE') == ('DOGE', None)


def test_unsupported_exchange():
    registry = default_registry()
    assert not registry.supports('ftx')
    with pytest.raises(UnsupportedExchangeError) as exc_info:
        registry.build_order(_sized(), make_alert(exchange='ftx'))
    assert isinstance(exc_info.value, ValidationError)


def test_auth_headers():
    adapter = default_registry().resolve('kucoin')
    headers = adapter.auth_headers(make_credentials(passphrase='pp'))
    assert headers == {'X-API-Key': 'live-key-1234', 'X-API-Secret': 'live-secret', 'X-Passphrase': 'pp'}
    assert 'X-Passphrase' not in adapter.auth_headers(make_credentials())


@pytest.mark.parametrize('raw,status', [
    ({'orderId': 1, 'status': 'NEW'}, OrderStatus.PARTIAL),
    ({'orderId': 1, 'status': 'PARTIALLY_FILLED'}, OrderStatus.PARTIAL),
    ({'orderId': 1, 'status': 'FILLED'}, OrderStatus.FILLED),
    ({'orderId': 1, 'status': 'CANCELED'}, OrderStatus.CANCELLED),
    ({'orderId': 1, 'status': 'EXPIRED'}, OrderStatus.CANCELLED),
    ({'orderId': 1, 'status': 'REJECTED'}, OrderStatus.REJECTED),
    ({'orderId': 1, 'status': 'SOMETHING_NEW'}, OrderStatus.UNKNOWN),
])
def test_binance_status_mapping(raw, status):
    response = default_registry().normalize_response('binance', raw, _sized(), make_alert())
    assert response.status is status


def test_binance_fill_details():
    raw = {'orderId': 99, 'status': 'FILLED', 'executedQty': '0.002', 'avgPrice': '50010'}
    response = default_registry().normalize_response('binance', raw, _sized(), make_alert())
    assert response.order_id == '99'
    assert response.executed_quantity == pytest.approx(0.002)
    assert response.executed_price == pytest.approx(50010.0)
    assert response.exchange == 'binance'


def test_executed_price_falls_back_to_sized_price():
    raw = {'orderId': 5, 'status': 'NEW', 'executedQty': 'junk'}
    response = default_registry().normalize_response('binance', raw, _sized(price=123.0), make_alert())
    assert response.executed_quantity == 0.0
    assert response.executed_price == 123.0


@pytest.mark.parametrize('raw,status', [
    ({'error': [], 'result': {'txid': ['OABC'], 'descr': {'order': 'buy'}}}, OrderStatus.PARTIAL),
    ({'error': [], 'result': {'txid': ['OABC'], 'status': 'closed', 'vol_exec': '2', 'cost': '200'}}, OrderStatus.FILLED),
    ({'error': [], 'result': {'txid': ['OABC'], 'status': 'canceled'}}, OrderStatus.CANCELLED),
    ({'error': ['EOrder:Insufficient funds'], 'result': {}}, OrderStatus.REJECTED),
])
def test_kraken_mapping(raw, status):
    response = default_registry().normalize_response('kraken', raw, _sized(), make_alert(exchange='kraken'))
    assert response.status is status
    if status is OrderStatus.FILLED:
        assert response.executed_price == pytest.approx(100.0)
    if status is OrderStatus.REJECTED:
        assert 'Insufficient funds' in response.error


@pytest.mark.parametrize('raw,status', [
    ({'id': 'c1', 'status': 'done', 'filled_size': '1', 'executed_value': '10'}, OrderStatus.FILLED),
    ({'id': 'c1', 'status': 'done', 'done_reason': 'canceled'}, OrderStatus.CANCELLED),
    ({'id': 'c1', 'status': 'pending'}, OrderStatus.PARTIAL),
    ({'id': 'c1', 'status': 'rejected', 'reject_reason': 'post only'}, OrderStatus.REJECTED),
])
def test_coinbase_mapping(raw, status):
    response = default_registry().normalize_response('coinbase', raw, _sized(), make_alert(exchange='coinbase'))
    assert response.status is status


def test_kucoin_and_bybit_codes():
    registry = default_registry()
    ok = registry.normalize_response('kucoin', {'code': '200000', 'data': {'orderId': 'k1'}}, _sized(), make_alert())
    assert ok.status is OrderStatus.PARTIAL
    assert ok.order_id == 'k1'
    bad = registry.normalize_response('kucoin', {'code': '400100', 'msg': 'balance'}, _sized(), make_alert())
    assert bad.status is OrderStatus.REJECTED
    assert bad.error == 'balance'

    accepted = registry.normalize_response('bybit', {'retCode': 0, 'result': {'orderId': 'b1'}}, _sized(), make_alert())
    assert accepted.status is OrderStatus.PARTIAL
    filled = registry.normalize_response(
        'bybit', {'ret_code': 0, 'result': {'order_id': 'b1', 'order_status': 'Filled'}}, _sized(), make_alert()
    )
    assert filled.status is OrderStatus.FILLED
    rejected = registry.normalize_response('bybit', {'retCode': 10001, 'retMsg': 'params error'}, _sized(), make_alert())
    assert rejected.status is OrderStatus.REJECTED
    assert rejected.error == 'params error'


@pytest.mark.parametrize('exchange,raw', [
    ('bybit', {'retCode': 'ERR_AUTH', 'result': {}}),
    ('bingx', {'code': 'invalid-signature', 'data': {}}),
    ('coinex', {'code': 'x', 'data': {}}),
    ('coinex', {'code': 107, 'message': 'balance not enough', 'data': {}}),
])
def test_non_numeric_and_nonzero_codes_are_rejected(exchange, raw):
    response = default_registry().normalize_response(exchange, raw, _sized(), make_alert())
    assert response.status is OrderStatus.REJECTED
    assert response.error


def test_zero_codes_are_accepted():
    registry = default_registry()
    bingx = registry.normalize_response('bingx', {'code': 0, 'data': {'orderId': 'x1'}}, _sized(), make_alert())
    coinex = registry.normalize_response('coinex', {'code': '0', 'data': {'id': 9}}, _sized(), make_alert())
    assert bingx.status is OrderStatus.PARTIAL
    assert coinex.status is OrderStatus.PARTIAL


def test_unexpected_shapes_degrade_to_unknown():
    registry = default_registry()
    response = registry.normalize_response('binance', 'not json', _sized(), make_alert())
    assert response.status is OrderStatus.UNKNOWN
    assert 'Unrecognized binance response' in response.error
    kraken = registry.normalize_response('kraken', {'result': {'txid': 5}}, _sized(), make_alert())
    assert kraken.status is OrderStatus.PARTIAL


def test_capabilities_flag_unverified_adapters():
    caps = {c['name']: c for c in default_registry().capabilities()}
    assert caps['binance']['verified'] is True
    assert caps['mexc']['verified'] is False
    assert caps['kraken']['sandbox_verified'] is False
    assert caps['kraken']['sandbox_endpoint'] == caps['kraken']['live_endpoint']
