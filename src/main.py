# src/main.py — v1
"""CLI entry point: consolidate and validate commands.

Usage:
    themetree consolidate <themes.json> [-o out.json] [--no-expansion]
                          [--no-cross-level] [--threshold X]
    themetree validate <tree.json>
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from themetree.config.settings import ConfigurationError, Settings
from themetree.oracle.errors import OracleConfigurationError
from themetree.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except (ConfigurationError, OracleConfigurationError) as exc:
        logger.error("Configuration error: %s", exc)
        return 2
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="themetree",
        description=f"themetree v{__version__}: consolidate code-change themes into a hierarchy",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- consolidate ---
    p_consolidate = subparsers.add_parser(
        "consolidate", help="Consolidate a JSON list of themes",
    )
    p_consolidate.add_argument("themes", type=Path, help="Path to themes JSON")
    p_consolidate.add_argument(
        "-o", "--output", type=Path, default=None,
        help="Write the result here (default: stdout)",
    )
    p_consolidate.add_argument(
        "--no-expansion", action="store_true",
        help="Skip recursive expansion",
    )
    p_consolidate.add_argument(
        "--no-cross-level", action="store_true",
        help="Skip cross-level deduplication",
    )
    p_consolidate.add_argument(
        "--threshold", type=float, default=None,
        help="Similarity threshold for merging (default: from settings)",
    )
    p_consolidate.set_defaults(func=_cmd_consolidate)

    # --- validate ---
    p_validate = subparsers.add_parser(
        "validate", help="Check the integrity of a theme tree",
    )
    p_validate.add_argument("tree", type=Path, help="Path to tree JSON")
    p_validate.set_defaults(func=_cmd_validate)

    return parser


async def _cmd_consolidate(args: argparse.Namespace) -> int:
    """Run the pipeline on a themes file."""
    from themetree.api.facade import consolidate, parse_themes
    from themetree.config.settings import load_settings

    raw = _read_json(args.themes)
    if raw is None:
        return 1
    try:
        themes = parse_themes(_theme_items(raw))
    except (TypeError, ValidationError) as exc:
        logger.error("Invalid themes in %s: %s", args.themes, exc)
        return 1

    overrides: dict[str, object] = {}
    if args.no_expansion:
        overrides["expansion_enabled"] = False
    if args.no_cross_level:
        overrides["cross_level_dedup_enabled"] = False
    if args.threshold is not None:
        overrides["similarity_threshold"] = args.threshold
    settings = load_settings(**overrides)
    _apply_log_settings(settings, args.verbose)

    logger.info("Consolidating %d themes from %s", len(themes), args.themes)
    result = await consolidate(themes, settings=settings)
    _write_output(result.model_dump(mode="json"), args.output)
    return 0


async def _cmd_validate(args: argparse.Namespace) -> int:
    """Print the integrity report of a tree; exit 1 when invalid."""
    from themetree.core.models import ConsolidatedTheme
    from themetree.hierarchy.integrity import validate_tree

    raw = _read_json(args.tree)
    if raw is None:
        return 1
    try:
        roots = [ConsolidatedTheme.model_validate(item) for item in _theme_items(raw)]
    except (TypeError, ValidationError) as exc:
        logger.error("Invalid tree in %s: %s", args.tree, exc)
        return 1

    report = validate_tree(roots)
    _write_output(report.model_dump(mode="json"), None)
    return 0 if report.is_valid else 1


def _read_json(path: Path) -> Any:
    if not path.exists():
        logger.error("File not found: %s", path)
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        logger.error("Invalid JSON in %s: %s", path, exc)
        return None


def _theme_items(raw: Any) -> list[Any]:
    """Accept a bare list or an object with a ``themes`` list."""
    if isinstance(raw, dict):
        raw = raw.get("themes")
    if not isinstance(raw, list):
        raise TypeError("expected a JSON list of themes or an object with 'themes'")
    return raw


def _write_output(payload: Any, output: Path | None) -> None:
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if output is None:
        print(text)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text + "\n", encoding="utf-8")
    logger.info("Wrote %s", output)


def _apply_log_settings(settings: Settings, verbose: bool) -> None:
    """Re-apply logging with the configured format and optional log file."""
    from themetree.logging.logger import setup_logging

    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )


def _setup_logging(verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from themetree.logging.logger import setup_logging

    setup_logging(level="DEBUG" if verbose else "INFO", log_format="text")
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(logging.WARNING)


if __name__ == "__main__":
    sys.exit(main())
