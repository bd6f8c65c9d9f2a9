import asyncio
import sys

sys.path.insert(0, '.')

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from strategy.errors import HttpError, NetworkError
from strategy.execution_types import OrderRequest
from strategy.gateway import ExchangeGateway
from strategy.transports.base import Endpoints
from strategy.transports.binance import BinanceAdapter
from strategy.transports.kraken import KrakenAdapter
from strategy.transports.registry import ExchangeRegistry
from tests.relay_fixtures import make_credentials


def _registry(url: str) -> ExchangeRegistry:
    adapter = BinanceAdapter('test')
    adapter.endpoints = Endpoints(live=url + '/live', sandbox=url + '/sandbox')
    return ExchangeRegistry([adapter])


async def _start(handler):
    app = web.Application()
    app.router.add_post('/live', handler)
    app.router.add_post('/sandbox', handler)
    server = TestServer(app)
    await server.start_server()
    return server


def _request() -> OrderRequest:
    return OrderRequest(
        exchange='binance',
        body={'symbol': 'BTCUSDT', 'side': 'buy', 'quantity': 0.1, 'price': 100.0},
        client_order_id='test_1',
    )


def test_gateway_posts_json_with_auth_headers():
    seen = {}

    async def handler(request):
        seen['path'] = request.path
        seen['headers'] = dict(request.headers)
        seen['body'] = await request.json()
        return web.json_response({'orderId': 7, 'status': 'NEW'})

    async def _run():
        server = await _start(handler)
        gateway = ExchangeGateway(_registry(f'http://{server.host}:{server.port}'), timeout_s=5)
        try:
            raw = await gateway.execute(_request(), make_credentials(passphrase='pp'), test_mode=True)
        finally:
            await gateway.close()
            await server.close()
        return raw

    raw = asyncio.run(_run())
    assert raw == {'orderId': 7, 'status': 'NEW'}
    assert seen['path'] == '/sandbox'
    assert seen['headers']['X-API-Key'] == 'live-key-1234'
    assert seen['headers']['X-API-Secret'] == 'live-secret'
    assert seen['headers']['X-Passphrase'] == 'pp'
    assert seen['body']['symbol'] == 'BTCUSDT'


def test_gateway_live_mode_uses_live_endpoint():
    paths = []

    async def handler(request):
        paths.append(request.path)
        return web.json_response({'status': 'FILLED'})

    async def _run():
        server = await _start(handler)
        gateway = ExchangeGateway(_registry(f'http://{server.host}:{server.port}'))
        try:
            await gateway.execute(_request(), make_credentials(), test_mode=False)
        finally:
            await gateway.close()
            await server.close()

    asyncio.run(_run())
    assert paths == ['/live']


def test_gateway_non_2xx_raises_http_error():
    async def handler(request):
        return web.json_response({'code': -2010, 'msg': 'Account has insufficient balance'}, status=400)

    async def _run():
        server = await _start(handler)
        gateway = ExchangeGateway(_registry(f'http://{server.host}:{server.port}'))
        try:
            with pytest.raises(HttpError) as exc_info:
                await gateway.execute(_request(), make_credentials(), test_mode=True)
        finally:
            await gateway.close()
            await server.close()
        return exc_info.value

    error = asyncio.run(_run())
    assert error.status == 400
    assert error.message == 'Account has insufficient balance'
    assert 'insufficient balance' in str(error)
    assert '-2010' in error.body


def test_gateway_timeout_raises_network_error():
    async def handler(request):
        await asyncio.sleep(0.5)
        return web.json_response({})

    async def _run():
        server = await _start(handler)
        gateway = ExchangeGateway(_registry(f'http://{server.host}:{server.port}'), timeout_s=0.05)
        try:
            with pytest.raises(NetworkError, match='timed out'):
                await gateway.execute(_request(), make_credentials(), test_mode=True)
        finally:
            await gateway.close()
            await server.close()

    asyncio.run(_run())


def test_gateway_connection_failure_raises_network_error():
    async def _run():
        # Nothing listens on the discard port.
        gateway = ExchangeGateway(_registry('http://127.0.0.1:9'), timeout_s=2)
        try:
            with pytest.raises(NetworkError):
                await gateway.execute(_request(), make_credentials(), test_mode=False)
        finally:
            await gateway.close()

    asyncio.run(_run())


def test_kraken_test_mode_warns_about_live_endpoint(caplog):
    class RecordingClient:
        def __init__(self):
            self.urls = []

        async def post_json(self, url, body, headers=None, timeout_s=None):
            self.urls.append(url)
            return {'error': [], 'result': {'txid': ['O1']}}

        async def close(self):
            return None

    client = RecordingClient()
    gateway = ExchangeGateway(ExchangeRegistry([KrakenAdapter()]), client=client)
    request = OrderRequest(exchange='kraken', body={}, client_order_id='k1')
    with caplog.at_level('WARNING'):
        asyncio.run(gateway.execute(request, make_credentials('kraken'), test_mode=True))
    assert client.urls == ['https://api.kraken.com/0/private/AddOrder']
    assert 'no verified sandbox' in caplog.text
