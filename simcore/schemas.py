"""Pydantic schemas for problem files (YAML or JSON).

Example::

    id: beam-1
    geometry: {kind: primitive, shape: cube, dimensions: [1, 1, 1]}
    physics:
      equations: ["x + x + y"]
      material: {youngs_modulus: 200.0e9, poissons_ratio: 0.3}
      boundary_conditions:
        - {region: face_x_neg, condition_type: Dirichlet, value: [0, 0, 0]}
        - {region: face_x_pos, condition_type: Force, value: [1000, 0, 0]}
    solver_settings: {solver_name: FemSolver}

``null`` (or ``.nan``) in a Dirichlet value leaves that axis free.
Relative geometry paths are resolved against the problem file's directory.
"""

from __future__ import annotations

import json
import os
from typing import Annotated, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

from simcore.core.models import (
    BoundaryCondition,
    FileGeometry,
    Material,
    PhysicsDefinition,
    PrimitiveGeometry,
    ProblemDefinition,
    SolverSettings,
)


class FileGeometrySchema(BaseModel):
    """Geometry read from a CAD, Gmsh or JSON mesh file."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["file"] = "file"
    path: str = Field(min_length=1)


class PrimitiveGeometrySchema(BaseModel):
    """Built-in shape: ``cube`` [lx, ly, lz] or ``cylinder`` [radius, height]."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["primitive"] = "primitive"
    shape: str
    dimensions: List[float] = Field(default_factory=list)


GeometrySchema = Annotated[
    Union[FileGeometrySchema, PrimitiveGeometrySchema],
    Field(discriminator="kind"),
]


class MaterialSchema(BaseModel):
    youngs_modulus: float = Field(gt=0, allow_inf_nan=False, description="Young's modulus E")
    poissons_ratio: float = Field(ge=0, lt=0.5, description="Poisson's ratio nu")


class BoundaryConditionSchema(BaseModel):
    region: str
    condition_type: str  # Dirichlet, Force
    value: List[Optional[float]] = Field(min_length=3, max_length=3)

    @model_validator(mode="after")
    def _free_axes_only_for_dirichlet(self) -> "BoundaryConditionSchema":
        if self.condition_type != "Dirichlet" and any(v is None for v in self.value):
            raise ValueError(
                f"{self.condition_type} on region {self.region!r}: null components "
                "are only allowed for Dirichlet conditions"
            )
        return self


class PhysicsSchema(BaseModel):
    equations: List[str] = Field(default_factory=list)
    boundary_conditions: List[BoundaryConditionSchema] = Field(default_factory=list)
    material: MaterialSchema = Field(
        default_factory=lambda: MaterialSchema(youngs_modulus=1.0, poissons_ratio=0.0)
    )


class SolverSettingsSchema(BaseModel):
    solver_name: str
    tolerance: float = Field(default=1e-5, gt=0)
    max_iterations: int = Field(default=10, ge=1)
    parameters: dict = Field(default_factory=dict)


class ProblemSchema(BaseModel):
    """Complete problem file."""

    id: str = Field(min_length=1)
    geometry: GeometrySchema
    physics: PhysicsSchema = Field(default_factory=PhysicsSchema)
    solver_settings: SolverSettingsSchema

    def to_problem(self, base_dir: Optional[str] = None) -> ProblemDefinition:
        if isinstance(self.geometry, FileGeometrySchema):
            path = self.geometry.path
            if base_dir and not os.path.isabs(path):
                path = os.path.join(base_dir, path)
            geometry = FileGeometry(path=path)
        else:
            geometry = PrimitiveGeometry(
                shape=self.geometry.shape,
                dimensions=tuple(self.geometry.dimensions),
            )

        physics = PhysicsDefinition(
            equations=list(self.physics.equations),
            boundary_conditions=[
                BoundaryCondition(
                    region=bc.region,
                    condition_type=bc.condition_type,
                    value=tuple(float("nan") if v is None else float(v) for v in bc.value),
                )
                for bc in self.physics.boundary_conditions
            ],
            material=Material(
                youngs_modulus=self.physics.material.youngs_modulus,
                poissons_ratio=self.physics.material.poissons_ratio,
            ),
        )
        settings = SolverSettings(
            solver_name=self.solver_settings.solver_name,
            tolerance=self.solver_settings.tolerance,
            max_iterations=self.solver_settings.max_iterations,
            parameters=dict(self.solver_settings.parameters),
        )
        return ProblemDefinition(
            id=self.id, geometry=geometry, physics=physics, solver_settings=settings,
        )


def load_problem_file(path: str) -> ProblemDefinition:
    """Read a YAML or JSON problem file and build a :class:`ProblemDefinition`.

    Raises ``pydantic.ValidationError`` for schema violations and
    ``ValueError`` when the file is not a mapping.
    """
    with open(path, "r", encoding="utf-8") as f:
        if path.lower().endswith(".json"):
            raw = json.load(f)
        else:
            raw = yaml.safe_load(f)
    if not isinstance(raw, dict):
        raise ValueError(f"Problem file {path!r} must contain a mapping")
    schema = ProblemSchema.model_validate(raw)
    return schema.to_problem(base_dir=os.path.dirname(os.path.abspath(path)))
