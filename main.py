#!/usr/bin/env python3
"""Syntax Architect - multi-stage project generation from requirements.

Usage:
    python main.py roles --requirement "Build a todo app with a REST API"
    python main.py build --requirement "Build a todo app" --requirement "Users log in with OAuth"
    python main.py build --requirements-file reqs.txt --output ./out
    python main.py build --requirement "..." --stop-after 2 --verbose
"""

import argparse
import sys

from config.defaults import configure_logging
from core.errors import PreconditionError
from core.orchestrator import PipelineOrchestrator
from manager.role_selector import select_roles
from utils.folder_naming import get_output_dir


def _read_requirements(args):
    requirements = list(args.requirement or [])
    if getattr(args, "requirements_file", None):
        with open(args.requirements_file) as f:
            requirements.extend(line.strip() for line in f if line.strip())
    return requirements


def _print_progress(run, stage_label, completed, total):
    print(f"  [{stage_label}] {completed}/{total}", flush=True)


def _print_tree(node, indent=""):
    print(f"{indent}{node.name}/")
    for f in node.files:
        print(f"{indent}  {f.name}")
    for sub in node.subfolders:
        _print_tree(sub, indent + "  ")


def cmd_roles(args):
    """Show which specialists a set of requirements would involve."""
    for role in select_roles(_read_requirements(args)):
        print(role)


def cmd_build(args):
    """Run the generation pipeline."""
    requirements = _read_requirements(args)
    orchestrator = PipelineOrchestrator(on_progress=_print_progress)

    try:
        run = orchestrator.run_full(requirements, stop_after=args.stop_after)
    except PreconditionError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    print(f"\nRun:    {run.run_id}")
    print(f"Roles:  {', '.join(run.roles)}")
    print(f"Stage:  {run.stage.label}")

    if args.verbose:
        for vision in run.visions:
            print(f"\n--- {vision.role} ---\n{vision.vision_text}")

    if run.integration:
        print(f"\nIntegrated vision:\n{run.integration.integrated_vision}")
        for note in run.integration.resolution_notes:
            print(f"  - {note}")
        print()
        _print_tree(run.integration.root_folder)
        print("\nImplementation order:")
        for f in run.integration.dependency_tree:
            deps = ", ".join(f.dependencies) or "-"
            print(f"  {f.implementation_order:3d}  {f.path}  <- {deps}")

    if run.error:
        where = f" on {run.error.failed_file}" if run.error.failed_file else ""
        print(f"\n{run.error.stage} failed{where}: {run.error.message}", file=sys.stderr)
        if run.partial_implementations:
            print(f"{len(run.partial_implementations)} file(s) were synthesized before the failure.",
                  file=sys.stderr)
        sys.exit(1)

    if run.is_done:
        output_dir = args.output or get_output_dir(run.requirements)
        written = orchestrator.write_files(run, output_dir)
        print(f"\nGenerated {len(written)} file(s) in {output_dir}:")
        for path in written:
            print(f"  {path}")


def main():
    parser = argparse.ArgumentParser(
        prog="syntax-architect",
        description="Multi-stage architecture and code generation from requirements",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default from config)")
    subparsers = parser.add_subparsers(dest="command")

    def add_requirement_args(p):
        p.add_argument("--requirement", "-r", action="append",
                       help="A requirement (repeatable)")
        p.add_argument("--requirements-file", help="File with one requirement per line")

    roles_parser = subparsers.add_parser("roles", help="List the specialists requirements select")
    add_requirement_args(roles_parser)

    build_parser = subparsers.add_parser("build", help="Run the generation pipeline")
    add_requirement_args(build_parser)
    build_parser.add_argument("--output", "-o", help="Export directory (default: generated_projects/<name>)")
    build_parser.add_argument("--stop-after", type=int, choices=[1, 2],
                              help="Stop after stage 1 or 2 instead of synthesizing files")
    build_parser.add_argument("--verbose", action="store_true",
                              help="Print every specialist vision")

    args = parser.parse_args()
    configure_logging(args.log_level)

    if args.command == "roles":
        cmd_roles(args)
    elif args.command == "build":
        cmd_build(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
