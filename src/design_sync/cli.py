"""design-sync command line.

Subcommands:
  parse   Parse source files and print the component tree as JSON
  render  Serialize a component tree (JSON) to markup
  diff    Show the structural operations between two component trees
  sync    Run one tree -> source cycle against a baseline source file
  config  Print the effective configuration
  init    Create a starter config file
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

import yaml
from pydantic import TypeAdapter, ValidationError

from design_sync import __version__
from design_sync.config_loader import ensure_config, load_config
from design_sync.config_schema import ConflictStrategy
from design_sync.converters.common import language_for_path
from design_sync.converters.source_to_tree import parse_documents
from design_sync.converters.tree_to_source import tree_to_source_roots
from design_sync.core.context import SyncContext
from design_sync.logger import setup_logging
from design_sync.models import SourceDocument, SourceLanguage, VisualComponent
from design_sync.sync.differ import diff_trees
from design_sync.sync.engine import SyncEngine
from design_sync.sync.events import SOURCE_UPDATED, SYNC_CONFLICT
from design_sync.sync.models import ChangeTarget, SyncOutcome
from design_sync.sync.reporter import (
    format_conflict,
    format_operations,
    format_sync_report,
    report_to_json,
)

logger = logging.getLogger(__name__)

_TREE_ADAPTER = TypeAdapter(list[VisualComponent])


def load_tree(path: Path) -> list[VisualComponent]:
    """Read a component tree from a JSON file (a list or a single root)."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = [data]
    return _TREE_ADAPTER.validate_python(data)


def dump_tree(components: list[VisualComponent]) -> list[dict[str, Any]]:
    return [
        component.model_dump(mode="json", by_alias=True, exclude_none=True)
        for component in components
    ]


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_parse(args: argparse.Namespace) -> int:
    documents = []
    for name in args.files:
        path = Path(name)
        language = (
            SourceLanguage(args.language) if args.language else language_for_path(name)
        )
        documents.append(
            SourceDocument(
                path=path.name,
                content=path.read_text(encoding="utf-8"),
                language=language,
            )
        )

    result = parse_documents(documents)
    output: dict[str, Any] = {"components": dump_tree(result.components)}
    if result.style_rules:
        output["style_rules"] = [
            {"selector": rule.selector, "declarations": rule.declarations}
            for rule in result.style_rules
        ]
    if result.skipped:
        output["skipped"] = result.skipped
    print(json.dumps(output, indent=2))
    return 1 if result.skipped else 0


def _cmd_render(args: argparse.Namespace) -> int:
    generated = tree_to_source_roots(load_tree(Path(args.tree)))
    print(generated.markup)
    if args.stylesheet and generated.stylesheet:
        print()
        print(generated.stylesheet)
    return 0


def _cmd_diff(args: argparse.Namespace) -> int:
    operations = diff_trees(
        load_tree(Path(args.new)), load_tree(Path(args.old)), ChangeTarget.TREE
    )
    if args.json:
        print(json.dumps([op.model_dump(mode="json") for op in operations], indent=2))
    else:
        print(format_operations(operations))
    return 0


def _cmd_sync(args: argparse.Namespace) -> int:
    config = args.config.sync
    if args.strategy:
        config = config.merged({"conflict_strategy": args.strategy})
    base_path = Path(args.source)
    config = config.merged(
        {"source_language": language_for_path(args.source), "source_path": base_path.name}
    )

    context = SyncContext()
    outputs: dict[str, Any] = {}
    context.bus.subscribe(SOURCE_UPDATED, lambda event: outputs.update(source=event))
    context.bus.subscribe(SYNC_CONFLICT, lambda event: outputs.update(conflict=event))

    # the baseline commit has no tree side to conflict with
    engine = SyncEngine(
        context, config=config.merged({"conflict_strategy": ConflictStrategy.PREFER_TREE})
    )
    try:
        baseline = engine.sync_from_source(base_path.read_text(encoding="utf-8"))
        if baseline.outcome != SyncOutcome.COMMITTED:
            print(format_sync_report(baseline), file=sys.stderr)
            return 1
        engine.set_config(conflict_strategy=config.conflict_strategy)
        report = engine.sync_from_tree(load_tree(Path(args.tree)))
    finally:
        engine.close()

    if args.json:
        print(json.dumps(report_to_json(report), indent=2))
    elif report.outcome == SyncOutcome.CONFLICT and "conflict" in outputs:
        print(format_conflict(outputs["conflict"]))
    elif args.report:
        print(format_sync_report(report, show_diff=True))
    elif "source" in outputs:
        print(outputs["source"].code)
    return 0 if report.outcome == SyncOutcome.COMMITTED else 1


def _cmd_config(args: argparse.Namespace) -> int:
    print(yaml.safe_dump(args.config.model_dump(mode="json"), sort_keys=False).rstrip())
    return 0


def _cmd_init(args: argparse.Namespace) -> int:
    path = ensure_config(Path(args.path) if args.path else None)
    print(path)
    return 0


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="design-sync",
        description="Keep a visual component tree and its markup source in sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Show the component tree of a JSX fragment
  design-sync parse index.jsx

  # Generate markup and a scoped stylesheet from a tree
  design-sync render tree.json --stylesheet

  # What changed between two trees
  design-sync diff before.json after.json

  # Fold tree edits into an existing source file
  design-sync sync index.jsx edited-tree.json --report
        """,
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", help="Also append log records to this file")
    parser.add_argument(
        "--log-format",
        choices=("text", "json"),
        help="Log record format (default: from config, else text)",
    )
    parser.add_argument(
        "--version", action="version", version=f"design-sync {__version__}"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    parse_cmd = commands.add_parser("parse", help="Parse source files to JSON")
    parse_cmd.add_argument("files", nargs="+", help="Source files (.jsx, .html, .js, .css)")
    parse_cmd.add_argument(
        "--language",
        choices=[language.value for language in SourceLanguage],
        help="Override the language inferred from the file suffix",
    )
    parse_cmd.set_defaults(handler=_cmd_parse)

    render_cmd = commands.add_parser("render", help="Serialize a tree to markup")
    render_cmd.add_argument("tree", help="Component tree JSON file")
    render_cmd.add_argument(
        "--stylesheet", action="store_true", help="Also print the scoped stylesheet"
    )
    render_cmd.set_defaults(handler=_cmd_render)

    diff_cmd = commands.add_parser("diff", help="Diff two component trees")
    diff_cmd.add_argument("old", help="Baseline tree JSON file")
    diff_cmd.add_argument("new", help="Edited tree JSON file")
    diff_cmd.add_argument("--json", action="store_true", help="Print operations as JSON")
    diff_cmd.set_defaults(handler=_cmd_diff)

    sync_cmd = commands.add_parser("sync", help="Apply tree edits to a source file")
    sync_cmd.add_argument("source", help="Baseline source file")
    sync_cmd.add_argument("tree", help="Edited component tree JSON file")
    sync_cmd.add_argument(
        "--strategy",
        choices=[strategy.value for strategy in ConflictStrategy],
        help="Conflict strategy (default: from config)",
    )
    output = sync_cmd.add_mutually_exclusive_group()
    output.add_argument("--report", action="store_true", help="Print the cycle report")
    output.add_argument("--json", action="store_true", help="Print the report as JSON")
    sync_cmd.set_defaults(handler=_cmd_sync)

    config_cmd = commands.add_parser("config", help="Print the effective config")
    config_cmd.set_defaults(handler=_cmd_config)

    init_cmd = commands.add_parser("init", help="Create a starter config file")
    init_cmd.add_argument("path", nargs="?", help="Where to write it")
    init_cmd.set_defaults(handler=_cmd_init)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the command line and return the exit status."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config()
    except (OSError, ValueError, ValidationError, yaml.YAMLError) as exc:
        setup_logging(debug=args.debug, log_file=args.log_file)
        logger.error("Invalid configuration: %s", exc)
        return 2

    setup_logging(
        debug=args.debug,
        log_file=args.log_file or config.logging.file,
        debug_format=args.log_format or config.logging.format,
        level=config.logging.level,
    )
    args.config = config

    try:
        return args.handler(args)
    except (OSError, ValueError, ValidationError) as exc:
        logger.error("%s", exc)
        return 2


def run() -> None:
    """Console-script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
