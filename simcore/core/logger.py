"""Structured run logging: rotating application log plus JSONL stage/run trails."""
from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Optional


class StructuredLogger:
    def __init__(self, log_dir: str = "data/logs", level: str = "INFO"):
        self._log_dir = log_dir
        self._write_lock = threading.Lock()
        os.makedirs(log_dir, exist_ok=True)
        self._setup_app_logger(level)

    def _setup_app_logger(self, level: str) -> None:
        self._app_logger = logging.getLogger("simcore.run." + str(id(self)))
        if not self._app_logger.handlers:
            handler = RotatingFileHandler(
                os.path.join(self._log_dir, "app.log"),
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
            )
            handler.setFormatter(
                logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
            )
            self._app_logger.addHandler(handler)
            self._app_logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    @property
    def app(self) -> logging.Logger:
        return self._app_logger

    @property
    def log_dir(self) -> str:
        return self._log_dir

    def close(self) -> None:
        for handler in list(self._app_logger.handlers):
            handler.close()
            self._app_logger.removeHandler(handler)

    def _write_jsonl(self, filename: str, record: dict) -> None:
        line = json.dumps(record, ensure_ascii=False, default=str) + "\n"
        # One whole line per append, also when stages finish on worker threads.
        with self._write_lock:
            with open(os.path.join(self._log_dir, filename), "a", encoding="utf-8") as f:
                f.write(line)

    def log_stage(
        self,
        run_id: str,
        problem_id: str,
        stage: str,
        data_hash: str = "",
        metadata: Optional[dict] = None,
    ) -> None:
        """Append one line to ``stages.jsonl`` for a completed pipeline stage."""
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "run_id": run_id,
            "problem_id": problem_id,
            "stage": stage,
            "data_hash": data_hash,
            "metadata": metadata or {},
        }
        self._write_jsonl("stages.jsonl", record)

    def log_run(
        self,
        run_id: str,
        problem_id: str,
        status: str,
        solver_name: str = "",
        n_records: int = 0,
        error: Optional[dict] = None,
        duration_s: float = 0.0,
    ) -> None:
        """Append one line to ``runs.jsonl`` when a run finishes or fails."""
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "run_id": run_id,
            "problem_id": problem_id,
            "status": status,
            "solver_name": solver_name,
            "provenance_records": n_records,
            "error": error,
            "duration_s": round(duration_s, 6),
        }
        self._write_jsonl("runs.jsonl", record)
