"""
Command-line interface for plangraph.

Usage:
    plangraph run plan.json --input '{"topic": "batteries"}' --parallel
    plangraph run plan.txt --tools tools.py --audit-dir audit/
    plangraph audit plan.json

Plan files ending in ``.json`` hold an object plan, a list of plans, or a
service payload (steps carrying ``name`` instead of ``id``). Any other file
is read as a text plan, one step per line.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from plangraph.config import get_logging_settings
from plangraph.errors import PlanGraphError
from plangraph.graph.dag import DAG
from plangraph.graph.plan import parse_plan, parse_plans
from plangraph.graph.report import audit_dag
from plangraph.graph.scheduler import Scheduler, SchedulerConfig
from plangraph.observability import configure_logging
from plangraph.runner.tool_registry import ToolRegistry
from plangraph.service.bridge import PREFETCH_KEY, ServicePlanBuilder

logger = logging.getLogger(__name__)


def _is_service_payload(data: Any) -> bool:
    if not isinstance(data, dict) or not isinstance(data.get("steps"), list):
        return False
    steps = [step for step in data["steps"] if isinstance(step, dict)]
    return bool(steps) and all("name" in step and "id" not in step for step in steps)


def load_plan_file(path: Path) -> Any:
    """Read a plan file: parsed JSON for ``.json`` files, raw text otherwise."""
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        return json.loads(text)
    return text


def build_graph(data: Any, tools: ToolRegistry | None = None) -> tuple[DAG, list[str]]:
    """
    Compile loaded plan data.

    Returns:
        (graph, prefetch_links); links are only present for service payloads
    """
    if _is_service_payload(data):
        service_plan = ServicePlanBuilder().build(data)
        return service_plan.to_graph(tools), service_plan.prefetch_links
    if isinstance(data, list):
        return parse_plans(data, tools), []
    return parse_plan(data, tools), []


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_run(args: argparse.Namespace) -> int:
    try:
        inputs = json.loads(args.input) if args.input else {}
    except json.JSONDecodeError as e:
        print(f"Invalid --input JSON: {e}", file=sys.stderr)
        return 1
    if not isinstance(inputs, dict):
        print("--input must be a JSON object", file=sys.stderr)
        return 1

    tools = ToolRegistry()
    if args.tools:
        tools.discover_from_module(Path(args.tools))

    try:
        graph, prefetch_links = build_graph(load_plan_file(Path(args.plan)), tools)
        config = SchedulerConfig.from_settings(
            max_parallel_nodes=args.max_parallel,
            token_budget=args.token_budget,
            requests_per_minute=args.rpm,
            audit_dir=args.audit_dir,
            audit_file=args.audit_file,
        )
        results = asyncio.run(_run(graph, config, inputs, prefetch_links, args.parallel))
    except (OSError, json.JSONDecodeError, ValueError, PlanGraphError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(results, indent=2, default=str))
    return 0


async def _run(
    graph: DAG,
    config: SchedulerConfig,
    inputs: dict[str, Any],
    prefetch_links: list[str],
    parallel: bool,
) -> dict[str, Any]:
    if prefetch_links:
        from plangraph.service.prefetch import prefetch_many

        inputs = {**inputs, PREFETCH_KEY: await prefetch_many(prefetch_links)}
    scheduler = Scheduler(graph, config)
    if parallel:
        return await scheduler.execute_parallel(inputs)
    return await scheduler.execute(inputs)


def cmd_audit(args: argparse.Namespace) -> int:
    try:
        graph, _ = build_graph(load_plan_file(Path(args.plan)))
    except (OSError, json.JSONDecodeError, PlanGraphError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(audit_dag(graph))
    return 0


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    run_parser = subparsers.add_parser("run", help="Compile a plan and execute it")
    run_parser.add_argument("plan", help="Plan file (.json object plan/service payload, or text)")
    run_parser.add_argument("--input", help="Global inputs as a JSON object")
    run_parser.add_argument(
        "--parallel", action="store_true", help="Run independent nodes concurrently"
    )
    run_parser.add_argument("--tools", help="Python module with tool functions")
    run_parser.add_argument("--audit-dir", help="Write one <node>.json record per node")
    run_parser.add_argument("--audit-file", help="Append node records to a JSONL file")
    run_parser.add_argument("--token-budget", type=float, help="Token budget for the run")
    run_parser.add_argument("--max-parallel", type=int, help="Concurrency cap")
    run_parser.add_argument("--rpm", type=int, help="Node starts allowed per minute")
    run_parser.set_defaults(func=cmd_run)

    audit_parser = subparsers.add_parser("audit", help="Print a plan's dependency report")
    audit_parser.add_argument("plan", help="Plan file")
    audit_parser.set_defaults(func=cmd_audit)


def main(argv: list[str] | None = None) -> int:
    logging_settings = get_logging_settings()

    parser = argparse.ArgumentParser(
        prog="plangraph",
        description="plangraph - compile plans into DAGs and run them",
    )
    parser.add_argument(
        "--log-level",
        default=logging_settings.get("level", "WARNING"),
        help="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--log-format",
        choices=["auto", "json", "human"],
        default=logging_settings.get("format", "auto"),
        help="Log output format",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)

    args = parser.parse_args(argv)
    configure_logging(level=args.log_level, format=args.log_format)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
