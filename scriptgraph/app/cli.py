from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from scriptgraph.app.core.config import get_settings
from scriptgraph.app.core.logging import configure_logging
from scriptgraph.app.models.graph import GraphSnapshot
from scriptgraph.app.models.script import GenerateScriptRequest
from scriptgraph.app.services.script_service import ScriptGenerationError, ScriptService

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate a PowerShell script from a block graph")
    parser.add_argument("graph", type=Path, help="Graph snapshot JSON file.")
    parser.add_argument("-o", "--output", type=Path, default=None, help="Write the script here instead of stdout.")
    parser.add_argument("--strict", action="store_true", help="Fail when generation reports errors.")
    parser.add_argument("--debug", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(args.debug or settings.debug)

    try:
        # Windows PowerShell writes UTF-8 files with a BOM.
        snapshot = GraphSnapshot.model_validate_json(args.graph.read_text(encoding="utf-8-sig"))
    except (OSError, UnicodeDecodeError) as error:
        logger.error("Cannot read graph file '%s': %s", args.graph, error)
        return 2
    except ValidationError as error:
        logger.error("Invalid graph snapshot '%s': %s", args.graph, error)
        return 2

    try:
        response = ScriptService(settings).render(GenerateScriptRequest(graph=snapshot, strict=args.strict))
    except ScriptGenerationError as error:
        for diagnostic in error.diagnostics:
            logger.error("%s", diagnostic)
        return 1

    if args.output is None:
        sys.stdout.write(response.script)
    else:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        # PowerShell 5.1 only reads non-ASCII scripts correctly with a BOM.
        args.output.write_text(response.script, encoding="utf-8-sig")
        logger.info("Wrote %s", args.output)
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
