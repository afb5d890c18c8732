"""Engine error taxonomy.

Every failure the pipeline surfaces is one of five mutually exclusive
kinds.  Each exception carries a stable ``code`` so callers (CLI, logs,
stage events) can branch on the kind without parsing messages.
"""
from __future__ import annotations


class EngineError(Exception):
    """Base class for all pipeline failures."""

    code = "ENGINE_ERROR"
    label = "Engine error"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    def __str__(self) -> str:
        return f"{self.label}: {self.reason}"

    def to_dict(self) -> dict:
        return {"code": self.code, "message": str(self), "reason": self.reason}


class MeshingFailed(EngineError):
    code = "MESHING_FAILED"
    label = "Meshing failed"


class SymbolicFailed(EngineError):
    code = "SYMBOLIC_FAILED"
    label = "Symbolic processing failed"


class SolverFailed(EngineError):
    code = "SOLVER_FAILED"
    label = "Solver failed"


class PluginNotFound(EngineError):
    """No registered solver matches the requested name."""

    code = "PLUGIN_NOT_FOUND"
    label = "Plugin not found"

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name


class ProvenanceFailed(EngineError):
    code = "PROVENANCE_FAILED"
    label = "Provenance failed"
