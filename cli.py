"""SimCore command-line interface."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys

from simcore import __version__


def _build_parser():
    parser = argparse.ArgumentParser(
        prog="simcore",
        description="Simulation pipeline with pluggable solvers and a provenance ledger",
    )
    parser.add_argument("--version", action="version", version="SimCore v%s" % __version__)
    parser.add_argument("-v", "--verbose", action="store_true", help="Log to stderr")

    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Run a simulation problem file (YAML or JSON)")
    run.add_argument("problem", help="Path to the problem file")
    run.add_argument("--output", help="Write the solution as JSON to this file")
    run.add_argument("--provenance", help="Write the provenance chain as JSON to this file")
    run.add_argument("--config", help="YAML configuration file")
    run.add_argument("--data-dir", default="data", help="Directory for logs (default: data)")

    verify = sub.add_parser("verify", help="Verify a persisted provenance chain")
    verify.add_argument("chain", help="Path to a provenance JSON file")

    sub.add_parser("solvers", help="List the registered solvers")

    return parser


def _write_json(path, text):
    parent = os.path.dirname(os.path.abspath(path))
    os.makedirs(parent, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)


def _do_run(args):
    from pydantic import ValidationError

    from simcore.core.engine import CoreEngine
    from simcore.core.errors import EngineError
    from simcore.core.provenance import ProvenanceChain
    from simcore.schemas import load_problem_file

    try:
        problem = load_problem_file(args.problem)
    except (OSError, ValueError, ValidationError) as exc:
        # ValidationError subclasses ValueError; report both the same way.
        print("Invalid problem file %s: %s" % (args.problem, exc), file=sys.stderr)
        return 1

    engine = CoreEngine(config_path=args.config, data_dir=args.data_dir)
    engine.initialize()
    try:
        solution = engine.run_simulation(problem)
    except EngineError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    finally:
        engine.shutdown()

    data = solution.data
    print("=" * 60)
    print("  Simulation Result")
    print("=" * 60)
    print("  Problem:     %s" % solution.id)
    print("  Solver:      %s" % problem.solver_settings.solver_name)
    print("  Mesh:        %d nodes, %d elements (%s)" % (
        solution.mesh.n_nodes, solution.mesh.n_elements, solution.mesh.element_type))
    if solution.processed_equations is not None:
        print()
        print("  --- Simplified Equations ---")
        for form in solution.processed_equations.simplified_forms:
            print("  %s" % form)
    print()
    print("  --- Solution ---")
    print("  Values:      %d" % data.size)
    if data.size:
        print("  Min / Max:   %.6g / %.6g" % (float(data.min()), float(data.max())))
    print()
    print("  --- Provenance ---")
    for i, record in enumerate(solution.provenance_chain):
        print("  %d. %-20s %s" % (i, record.event_type, record.data_hash[:16]))
    print("=" * 60)

    if args.output:
        _write_json(args.output, json.dumps(solution.to_dict(), indent=2))
        print("  Solution:   %s" % args.output)
    if args.provenance:
        chain = ProvenanceChain(solution.provenance_chain)
        _write_json(args.provenance, chain.to_json())
        print("  Provenance: %s" % args.provenance)
    return 0


def _do_verify(args):
    from simcore.core.errors import ProvenanceFailed
    from simcore.core.provenance import ProvenanceChain

    try:
        with open(args.chain, "r", encoding="utf-8") as f:
            chain = ProvenanceChain.from_json(f.read())
        chain.verify()
    except OSError as exc:
        print("Cannot read %s: %s" % (args.chain, exc), file=sys.stderr)
        return 1
    except ProvenanceFailed as exc:
        print(str(exc), file=sys.stderr)
        return 1

    print("Provenance chain OK: %d record(s)" % len(chain))
    for i, record in enumerate(chain.records):
        print("  %d. %-20s %s" % (i, record.event_type, record.timestamp.isoformat()))
    return 0


def _do_solvers(args):
    from simcore.solvers import DummySolver, FdmSolver, FemSolver, SolverRegistry

    registry = SolverRegistry([DummySolver(), FemSolver(), FdmSolver()])
    for info in registry.list_solvers():
        print("  %-12s %s" % (info["name"], info["description"]))
    return 0


def main(argv=None):
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )

    if args.command == "run":
        return _do_run(args)
    elif args.command == "verify":
        return _do_verify(args)
    elif args.command == "solvers":
        return _do_solvers(args)
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
