from __future__ import annotations
import json
import os
import pytest
from simcore.core.logger import StructuredLogger

class TestStructuredLogger:
    def test_log_stage(self, tmp_path):
        log_dir = str(tmp_path / "logs")
        logger = StructuredLogger(log_dir=log_dir)
        logger.log_stage(run_id="run1", problem_id="p1", stage="mesh_generated",
                         data_hash="abc", metadata={"geometry_type": "file"})
        stages_file = os.path.join(log_dir, "stages.jsonl")
        assert os.path.exists(stages_file)
        with open(stages_file) as f:
            record = json.loads(f.readline())
        assert record["stage"] == "mesh_generated"
        assert record["run_id"] == "run1"
        assert record["metadata"]["geometry_type"] == "file"
        assert "timestamp" in record
        logger.close()

    def test_log_run_failure(self, tmp_path):
        log_dir = str(tmp_path / "logs")
        logger = StructuredLogger(log_dir=log_dir)
        logger.log_run(run_id="run2", problem_id="p2", status="failed", solver_name="FemSolver",
                       n_records=2, error={"code": "SOLVER_FAILED"}, duration_s=0.5)
        with open(os.path.join(log_dir, "runs.jsonl")) as f:
            record = json.loads(f.readline())
        assert record["status"] == "failed"
        assert record["provenance_records"] == 2
        assert record["error"]["code"] == "SOLVER_FAILED"
        logger.close()

    def test_multiple_entries(self, tmp_path):
        log_dir = str(tmp_path / "logs")
        logger = StructuredLogger(log_dir=log_dir)
        for i in range(5):
            logger.log_stage(run_id="r%d" % i, problem_id="p", stage="start")
        with open(os.path.join(log_dir, "stages.jsonl")) as f:
            lines = f.readlines()
        assert len(lines) == 5
        logger.close()

    def test_app_log_file(self, tmp_path):
        log_dir = str(tmp_path / "logs")
        logger = StructuredLogger(log_dir=log_dir)
        logger.app.info("hello from the engine")
        logger.close()
        with open(os.path.join(log_dir, "app.log")) as f:
            assert "hello from the engine" in f.read()
