import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import config
from config.utils import get_config_section
from monitoring.logging_utils import setup_logging
from strategy.alerts import Alert, AlertStatus
from strategy.errors import (
    AlertNotFoundError,
    StorageError,
    UnsupportedExchangeError,
    ValidationError,
)
from strategy.execution import ExecutionOutcome
from strategy.trading_config import ExchangeCredentials


logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ConnectionManager:
    def __init__(self):
        self.active_connections: List[WebSocket] = []

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

    async def broadcast(self, message: Dict):
        for connection in list(self.active_connections):
            try:
                await connection.send_json(message)
            except (RuntimeError, WebSocketDisconnect) as exc:
                logger.debug("Dropping websocket client: %s", exc)
                self.disconnect(connection)

    async def broadcast_alert(self, alert: Alert):
        await self.broadcast({"type": "alert_update", "timestamp": _now(), "alert": alert.to_dict()})


def _outcome_response(outcome: ExecutionOutcome) -> Dict[str, Any]:
    if outcome.skipped:
        if outcome.reason == 'not_recorded':
            raise HTTPException(status_code=404, detail=f"Alert not found: {outcome.alert_id}")
        raise HTTPException(status_code=409, detail=f"Alert {outcome.alert_id} skipped: {outcome.reason}")
    return outcome.to_dict()


def create_app(system=None) -> FastAPI:
    manager = ConnectionManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        relay = system
        if relay is None:
            from main import AlertRelaySystem
            relay = AlertRelaySystem()
        app.state.system = relay
        unsubscribe = relay.publisher.subscribe(manager.broadcast_alert)
        await relay.start()
        try:
            yield
        finally:
            unsubscribe()
            await relay.stop()

    app = FastAPI(title="Alert Relay API", version="1.0.0", lifespan=lifespan)
    app.state.system = system
    app.state.connections = manager

    api_cfg = get_config_section(system.config if system is not None else config, 'api')
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(api_cfg.get('cors_origins') or ['*']),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(AlertNotFoundError)
    async def _not_found(request: Request, exc: AlertNotFoundError):
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(StorageError)
    async def _storage_error(request: Request, exc: StorageError):
        return JSONResponse(status_code=503, content={"error": str(exc)})

    def _system():
        relay = app.state.system
        if relay is None:
            raise HTTPException(status_code=503, detail="Alert relay not initialized")
        return relay

    @app.get("/")
    async def root():
        relay = app.state.system
        return {
            "service": "Alert Relay",
            "version": "1.0.0",
            "status": "running" if relay and relay.running else "stopped",
        }

    @app.get("/health")
    async def health():
        relay = app.state.system
        return {
            "status": "healthy",
            "timestamp": _now(),
            "system_running": relay.running if relay else False,
        }

    @app.post("/api/messages")
    async def receive_message(message: Dict[str, Any]):
        result = await _system().intake.on_foreground_message(message)
        if result is None:
            return {"accepted": False, "reason": "not_a_trading_alert"}
        return {"accepted": True, **result.to_dict()}

    @app.post("/api/messages/background")
    async def receive_background_message(message: Dict[str, Any]):
        result = await _system().intake.on_background_message(message)
        if result is None:
            return {"accepted": False, "reason": "not_a_trading_alert"}
        return {"accepted": True, **result.to_dict()}

    @app.get("/api/alerts")
    async def list_alerts(status: Optional[str] = None):
        wanted = None
        if status:
            try:
                wanted = AlertStatus(status.lower())
            except ValueError as exc:
                raise ValidationError(f"Unknown alert status: {status}") from exc
        alerts = [a.to_dict() for a in _system().ledger.list_alerts(wanted)]
        return {"alerts": alerts, "count": len(alerts), "timestamp": _now()}

    @app.get("/api/alerts/{alert_id}")
    async def get_alert(alert_id: str):
        alert = _system().ledger.get(alert_id)
        if alert is None:
            raise AlertNotFoundError(alert_id)
        return alert.to_dict()

    @app.post("/api/alerts/{alert_id}/execute")
    async def execute_alert(alert_id: str):
        return _outcome_response(await _system().intake.approve(alert_id))

    @app.post("/api/alerts/{alert_id}/ignore")
    async def ignore_alert(alert_id: str):
        return _outcome_response(await _system().intake.ignore(alert_id))

    @app.delete("/api/alerts")
    async def clear_history():
        removed = await _system().ledger.clear_history()
        return {"removed": removed}

    @app.get("/api/config")
    async def get_config():
        return _system().settings.config.to_dict()

    @app.put("/api/config")
    async def update_config(changes: Dict[str, Any]):
        updated = await _system().settings.update_config(**changes)
        return updated.to_dict()

    @app.get("/api/credentials")
    async def list_credentials():
        return {"credentials": [c.masked() for c in _system().settings.credentials]}

    @app.post("/api/credentials")
    async def save_credentials(payload: Dict[str, Any]):
        relay = _system()
        creds = ExchangeCredentials.from_dict(payload)
        if not relay.registry.supports(creds.exchange):
            raise UnsupportedExchangeError(creds.exchange)
        saved = await relay.settings.save_credentials(creds)
        return saved.masked()

    @app.delete("/api/credentials/{credentials_id}")
    async def delete_credentials(credentials_id: str):
        if not await _system().settings.remove_credentials(credentials_id):
            raise HTTPException(status_code=404, detail=f"Credentials not found: {credentials_id}")
        return {"removed": credentials_id}

    @app.get("/api/exchanges")
    async def list_exchanges():
        return {"exchanges": _system().registry.capabilities()}

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await manager.connect(websocket)
        try:
            while True:
                text = await websocket.receive_text()
                if text == 'ping':
                    await websocket.send_json({"type": "pong", "timestamp": _now()})
        except WebSocketDisconnect:
            manager.disconnect(websocket)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    setup_logging(config.app.get('log_level', 'INFO'))
    uvicorn.run(
        app,
        host=config.api['host'],
        port=config.api['port'],
        log_level="info"
    )
