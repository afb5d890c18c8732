"""Core engine - sequences the simulation pipeline and records provenance.

A run walks a fixed sequence of stages::

    START -> MESH_GENERATED -> EQUATIONS_PROCESSED (only with equations)
          -> SOLVED -> COMPLETE

After each stage the serialized stage output is hashed into the run's
provenance chain.  The first failure aborts the run; no later stage
executes and the error propagates unchanged to the caller.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import threading
import time
import uuid
from enum import Enum
from typing import Iterable, Optional

from simcore.core.config import AppConfig
from simcore.core.errors import (
    EngineError,
    MeshingFailed,
    ProvenanceFailed,
    SolverFailed,
    SymbolicFailed,
)
from simcore.core.event_bus import (
    PIPELINE_COMPLETED,
    PIPELINE_FAILED,
    PIPELINE_STARTED,
    STAGE_COMPLETED,
    EventBus,
)
from simcore.core.logger import StructuredLogger
from simcore.core.models import (
    GeometryDefinition,
    Mesh,
    ProblemDefinition,
    ProcessedEquations,
    Solution,
)
from simcore.core.provenance import ProvenanceChain, ProvenanceRecord
from simcore.meshing import MeshProducer
from simcore.solvers import DummySolver, FdmSolver, FemSolver, SolverRegistry
from simcore.solvers.fdm_solver import PARAMETER_NAMES as FDM_PARAMETERS
from simcore.symbolic import SympySimplifier

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    START = "start"
    MESH_GENERATED = "mesh_generated"
    EQUATIONS_PROCESSED = "equations_processed"
    SOLVED = "solved"
    COMPLETE = "complete"


# Provenance event types
PROBLEM_DEFINITION = "problem_definition"
MESH_GENERATION = "mesh_generation"
SYMBOLIC_PROCESSING = "symbolic_processing"
SOLVER_RUN = "solver_run"


def _payload(data: dict) -> bytes:
    try:
        return json.dumps(data, sort_keys=True, allow_nan=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise ProvenanceFailed(f"Failed to serialize stage output: {exc}") from exc


def _log_detached_outcome(worker: asyncio.Future) -> None:
    """Retrieve the result of a run whose caller stopped waiting."""
    if worker.cancelled():
        return
    exc = worker.exception()
    if exc is not None:
        logger.info("Detached run ended with %s", exc)


class _Run:
    """Mutable state of one pipeline run."""

    def __init__(self, problem: ProblemDefinition):
        self.run_id = uuid.uuid4().hex[:12]
        self.problem = problem
        self.chain = ProvenanceChain()
        self.stage = Stage.START
        self.solution_data = None
        self.solution: Optional[Solution] = None
        self.started = time.perf_counter()

    @property
    def elapsed(self) -> float:
        return time.perf_counter() - self.started


class CoreEngine:
    def __init__(
        self,
        config_path: Optional[str] = None,
        data_dir: str = "data",
        mesh_producer=None,
        equation_simplifier=None,
        solvers: Optional[Iterable] = None,
    ):
        self._config_path = config_path
        self._data_dir = data_dir
        self._mesh_producer = mesh_producer
        self._equation_simplifier = equation_simplifier
        self._solvers = list(solvers) if solvers is not None else None
        self._lock = threading.Lock()
        self.config: Optional[AppConfig] = None
        self.event_bus: Optional[EventBus] = None
        self.logger: Optional[StructuredLogger] = None
        self.solver_registry = None

    def initialize(self) -> None:
        os.makedirs(self._data_dir, exist_ok=True)
        self.config = AppConfig(self._config_path)
        self.event_bus = EventBus(
            keep_history=True, max_history=self.config.max_event_history,
        )
        self.logger = StructuredLogger(
            log_dir=self.config.log_dir(self._data_dir), level=self.config.log_level,
        )

        if self._mesh_producer is None:
            self._mesh_producer = MeshProducer(mesh_size=self.config.mesh_size)
        if self._equation_simplifier is None:
            self._equation_simplifier = SympySimplifier()
        if self._solvers is None:
            dense_max_dof = self.config.dense_max_dof
            fdm = self.config.solver_options("fdm", FDM_PARAMETERS)
            self._solvers = [
                DummySolver(),
                FemSolver(dense_max_dof=dense_max_dof),
                FdmSolver(dense_max_dof=dense_max_dof, **fdm),
            ]
        self.solver_registry = SolverRegistry(self._solvers)
        self.logger.app.info(
            "Engine initialized (version %s, solvers: %s)",
            self.software_version, ", ".join(self.solver_registry.names()),
        )

    @property
    def software_version(self) -> str:
        return self.config.version if self.config else "0.0.0"

    def shutdown(self) -> None:
        if self.logger:
            self.logger.app.info("Engine shutdown")
            self.logger.close()

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    def generate_mesh(self, geometry: GeometryDefinition) -> Mesh:
        """Run the mesh producer; every failure surfaces as MeshingFailed."""
        self._require_initialized()
        try:
            return self._mesh_producer.generate(geometry)
        except MeshingFailed:
            raise
        except Exception as exc:
            raise MeshingFailed(str(exc)) from exc

    def process_equations(self, equations: list) -> ProcessedEquations:
        """Run the equation simplifier; every failure surfaces as SymbolicFailed."""
        self._require_initialized()
        try:
            return self._equation_simplifier.simplify(equations)
        except SymbolicFailed:
            raise
        except Exception as exc:
            raise SymbolicFailed(str(exc)) from exc

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def run_simulation(self, problem: ProblemDefinition) -> Solution:
        """Run every stage for *problem* and return its :class:`Solution`.

        The mesh and processed equations are moved out of *problem* into
        the solution.  Runs on the same engine are serialized.
        """
        self._require_initialized()
        with self._lock:
            return self._execute(problem)

    async def run_simulation_async(self, problem: ProblemDefinition) -> Solution:
        """Same stages as :meth:`run_simulation`, run in a worker thread.

        Runs are not cancellable.  Cancelling the awaiting task detaches
        the caller: a run that has started finishes in the background and
        holds the engine lock until its last stage is done, and a run still
        waiting for the lock is dropped without starting.
        """
        self._require_initialized()
        abandoned = threading.Event()
        worker = asyncio.ensure_future(
            asyncio.to_thread(self._run_when_unlocked, problem, abandoned)
        )
        try:
            return await asyncio.shield(worker)
        except asyncio.CancelledError:
            abandoned.set()
            worker.add_done_callback(_log_detached_outcome)
            logger.warning("Caller detached from run of problem %r", problem.id)
            raise

    def _run_when_unlocked(
        self, problem: ProblemDefinition, abandoned: threading.Event,
    ) -> Optional[Solution]:
        with self._lock:
            if abandoned.is_set():
                self.logger.app.info(
                    "Problem %r dropped: caller detached before the run started", problem.id,
                )
                return None
            return self._execute(problem)

    def _execute(self, problem: ProblemDefinition) -> Solution:
        # Caller holds self._lock.
        run = self._begin(problem)
        try:
            for step in self._steps():
                step(run)
        except Exception as exc:
            self._fail(run, exc)
            raise
        return run.solution

    def _steps(self) -> list:
        return [
            self._stage_problem_definition,
            self._stage_mesh,
            self._stage_equations,
            self._stage_solve,
            self._stage_complete,
        ]

    def _begin(self, problem: ProblemDefinition) -> _Run:
        run = _Run(problem)
        self.logger.app.info(
            "Run %s started for problem %r (solver %s)",
            run.run_id, problem.id, problem.solver_settings.solver_name,
        )
        self.event_bus.emit(PIPELINE_STARTED, {
            "run_id": run.run_id,
            "problem_id": problem.id,
            "solver_name": problem.solver_settings.solver_name,
        })
        return run

    def _stage_problem_definition(self, run: _Run) -> None:
        problem = run.problem
        self._record(
            run, Stage.START, PROBLEM_DEFINITION, _payload(problem.to_dict()),
            {"problem_id": problem.id},
        )

    def _stage_mesh(self, run: _Run) -> None:
        problem = run.problem
        mesh = self.generate_mesh(problem.geometry)
        problem.mesh = mesh
        self._record(
            run, Stage.MESH_GENERATED, MESH_GENERATION, _payload(mesh.to_dict()),
            {
                "geometry_type": problem.geometry.kind,
                "n_nodes": mesh.n_nodes,
                "n_elements": mesh.n_elements,
            },
        )

    def _stage_equations(self, run: _Run) -> None:
        physics = run.problem.physics
        if not physics.equations:
            return
        processed = self.process_equations(physics.equations)
        physics.processed_equations = processed
        self._record(
            run, Stage.EQUATIONS_PROCESSED, SYMBOLIC_PROCESSING,
            _payload(processed.to_dict()),
            {"equations": list(physics.equations)},
        )

    def _stage_solve(self, run: _Run) -> None:
        problem = run.problem
        name = problem.solver_settings.solver_name
        solver = self.solver_registry.get_solver(name)
        try:
            run.solution_data = solver.solve(problem)
        except EngineError:
            raise
        except Exception as exc:
            logger.exception("Solver %s raised an unexpected error", name)
            raise SolverFailed(f"{name}: {exc}") from exc
        self._record(
            run, Stage.SOLVED, SOLVER_RUN, _payload(run.solution_data.to_dict()),
            {"solver_name": name},
        )

    def _stage_complete(self, run: _Run) -> None:
        problem = run.problem
        mesh = problem.mesh
        processed = problem.physics.processed_equations
        problem.mesh = None
        problem.physics.processed_equations = None

        records = run.chain.drain_records()
        run.solution = Solution(
            id=problem.id,
            mesh=mesh,
            processed_equations=processed,
            data=run.solution_data.data,
            provenance_chain=records,
        )
        run.stage = Stage.COMPLETE
        self.logger.log_stage(run.run_id, problem.id, Stage.COMPLETE.value)
        self.logger.log_run(
            run.run_id, problem.id, "completed",
            solver_name=problem.solver_settings.solver_name,
            n_records=len(records),
            duration_s=run.elapsed,
        )
        self.logger.app.info(
            "Run %s completed in %.3f s with %d provenance records",
            run.run_id, run.elapsed, len(records),
        )
        self.event_bus.emit(PIPELINE_COMPLETED, {
            "run_id": run.run_id,
            "problem_id": problem.id,
            "n_records": len(records),
            "duration_s": run.elapsed,
        })

    def _record(
        self,
        run: _Run,
        stage: Stage,
        event_type: str,
        payload: bytes,
        metadata: dict,
    ) -> ProvenanceRecord:
        record = run.chain.add_record(event_type, payload, self.software_version, metadata)
        run.stage = stage
        self.logger.log_stage(
            run.run_id, run.problem.id, stage.value, record.data_hash,
            record.to_dict()["metadata"],
        )
        self.event_bus.emit(STAGE_COMPLETED, {
            "run_id": run.run_id,
            "problem_id": run.problem.id,
            "stage": stage.value,
            "event_type": event_type,
            "data_hash": record.data_hash,
            "metadata": record.to_dict()["metadata"],
        })
        return record

    def _fail(self, run: _Run, exc: Exception) -> None:
        if isinstance(exc, EngineError):
            error = exc.to_dict()
        else:
            error = {"code": "INTERNAL_ERROR", "message": str(exc), "reason": str(exc)}
        self.logger.app.error(
            "Run %s failed after stage %s: %s", run.run_id, run.stage.value, error["message"],
        )
        self.logger.log_run(
            run.run_id, run.problem.id, "failed",
            solver_name=run.problem.solver_settings.solver_name,
            n_records=len(run.chain),
            error=error,
            duration_s=run.elapsed,
        )
        self.event_bus.emit(PIPELINE_FAILED, {
            "run_id": run.run_id,
            "problem_id": run.problem.id,
            "stage": run.stage.value,
            "error": error,
        })

    def _require_initialized(self) -> None:
        if self.solver_registry is None:
            raise RuntimeError("Engine not initialized; call initialize() first")
