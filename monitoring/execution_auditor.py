import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)


class ExecutionAuditor:
    """Appends one JSON line per execution attempt."""

    def __init__(self, log_path: Optional[str] = None):
        self.log_path = Path(log_path or 'logs/executions.jsonl')

    def record(
        self,
        alert_id: str,
        outcome: str,
        exchange: Optional[str] = None,
        test_mode: Optional[bool] = None,
        order: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        elapsed_s: Optional[float] = None,
    ) -> None:
        payload = {
            'timestamp': time.time(),
            'alert_id': alert_id,
            'outcome': outcome,
            'exchange': exchange,
            'test_mode': test_mode,
            'order': order,
            'error': error,
            'elapsed_s': elapsed_s,
        }
        self._write_entry(payload)

    def _write_entry(self, payload: Dict):
        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with self.log_path.open('a', encoding='utf-8') as handle:
                handle.write(json.dumps(payload, default=str) + '\n')
        except OSError as exc:
            logger.error("Failed to persist execution audit log: %s", exc)
