#!/usr/bin/env python
import argparse
import json
import sys
from pathlib import Path
from typing import Any, List, Optional

from loguru import logger

from .builder import build
from .config import RuntimeSettings
from .errors import ApiaError
from .log import configure_logging
from .masterlist import compile_source, validate_documents
from .runtime import Runtime


def _enable_tracing():
    from opentelemetry import trace
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor

    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)


def _read_payload(args) -> Any:
    if args.payload_file:
        return json.loads(Path(args.payload_file).read_text(encoding="utf-8"))
    if args.payload:
        return json.loads(args.payload)
    return {}


def cmd_build(args) -> int:
    result = build(Path(args.src), Path(args.out), clean=not args.no_clean)
    print(f"[build] {result.stats['masterlistEntries']} definitions written to {result.build_dir}")
    return 0


def cmd_validate(args) -> int:
    problems = validate_documents(Path(args.src))
    if problems:
        for problem in problems:
            print(f"[invalid] {problem}")
        print(f"[validate] {len(problems)} problem(s) found")
        return 1
    print("[validate] All flow definitions are valid")
    return 0


def cmd_run(args) -> int:
    if args.trace:
        _enable_tracing()
    settings = RuntimeSettings.from_env(build_dir=args.build, connector_timeout=args.timeout)
    payload = _read_payload(args)
    if not isinstance(payload, dict):
        print(f"[Error] Payload must be a JSON object, got {type(payload).__name__}", file=sys.stderr)
        return 1
    rt = Runtime(settings=settings)
    result = rt.run(args.flow, payload)
    print(json.dumps(result, indent=2, default=str))
    return 0


def cmd_graph(args) -> int:
    masterlist = compile_source(Path(args.src))
    graph = masterlist.graph
    if args.json:
        print(json.dumps(graph.to_dict(), indent=2))
        return 0
    for name in sorted(masterlist):
        deps = graph.dependencies(name)
        print(f"{name} -> {', '.join(deps) if deps else '(none)'}")
    for cycle in graph.cycles():
        print(f"[cycle] {' -> '.join(cycle)}")
    for name in graph.unreachable():
        print(f"[unreachable] {name}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="apia", description="APIA - declarative JSON flows for backend APIs")
    parser.add_argument("--log-level", default=None, help="Log level (default: APIA_LOG_LEVEL or INFO)")
    subparsers = parser.add_subparsers(dest="command")

    build_parser_ = subparsers.add_parser("build", help="Compile a source tree into a build directory")
    build_parser_.add_argument("--src", default="src", help="Source directory (default: src)")
    build_parser_.add_argument("--out", default=".apia", help="Build directory (default: .apia)")
    build_parser_.add_argument("--no-clean", action="store_true", help="Keep existing build contents")
    build_parser_.set_defaults(func=cmd_build)

    validate_parser = subparsers.add_parser("validate", help="Check every flow definition without building")
    validate_parser.add_argument("--src", default="src", help="Source directory (default: src)")
    validate_parser.set_defaults(func=cmd_validate)

    run_parser = subparsers.add_parser("run", help="Execute a flow and print the final payload")
    run_parser.add_argument("flow", help="Name of the flow to execute")
    run_parser.add_argument("--build", default=None, help="Build directory (default: APIA_BUILD_DIR or .apia)")
    run_parser.add_argument("--payload", help="Initial payload as a JSON string")
    run_parser.add_argument("--payload-file", help="Read the initial payload from a JSON file")
    run_parser.add_argument("--timeout", type=float, default=None, help="Per-connector deadline in seconds")
    run_parser.add_argument("--trace", action="store_true", help="Print OpenTelemetry spans to stdout")
    run_parser.set_defaults(func=cmd_run)

    graph_parser = subparsers.add_parser("graph", help="Show flow dependencies, cycles and unreachable flows")
    graph_parser.add_argument("--src", default="src", help="Source directory (default: src)")
    graph_parser.add_argument("--json", action="store_true", help="Print the graph as JSON")
    graph_parser.set_defaults(func=cmd_graph)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level or RuntimeSettings.from_env().log_level)

    if not getattr(args, "func", None):
        parser.print_help()
        return 1
    try:
        return args.func(args)
    except ApiaError as e:
        logger.opt(exception=e).debug("Command {} failed", args.command)
        print(f"[Error] {e}", file=sys.stderr)
        return 1
    except json.JSONDecodeError as e:
        print(f"[Error] Invalid JSON payload: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
