"""Command-line entry point.

    ffhuman [--config FILE] [--log-level LEVEL] <verb> <words...> [--dry-run] [--explain] [-y]

Engine options go before the verb; everything from the verb on is the
command.  Global flags (``--dry-run``, ``--explain``, ``--overwrite``/``-y``,
``--out``, ``--output-dir``, ``--workers``) are accepted on either side.

Exit codes: 0 success, 1 execution failure, 2 usage (grammar, validation,
compilation, plan), 3 environment, 130 cancelled.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from . import __version__
from .batch.driver import ItemResult
from .config import load_settings
from .engine import Engine
from .errors import CancelledError, ExecutionError, FfhumanError
from .grammar.resolver import get_resolver
from .operations.model import Batch
from .planner import GlobalOptions

logger = logging.getLogger("ffhuman")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ffhuman",
        description="Run near-English media commands through ffmpeg.",
        epilog="Example: ffhuman compress talk.mp4 to 10mb --two-pass",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", metavar="FILE", help="YAML settings file (default: ./ffhuman.yaml)")
    parser.add_argument("--log-level", choices=LOG_LEVELS, type=str.upper,
                        help="Logging verbosity (default from config, else WARNING)")
    parser.add_argument("--dry-run", action="store_true", help="Print the ffmpeg commands without running them")
    parser.add_argument("--explain", action="store_true", help="Annotate each command with the reasons behind it")
    parser.add_argument("-y", "--overwrite", action="store_true", help="Replace existing output files")
    parser.add_argument("--out", metavar="PATH", help="Output file")
    parser.add_argument("--output-dir", metavar="DIR", help="Directory for derived output names")
    parser.add_argument("--workers", type=int, metavar="N", help="Parallel plans for batch and watch")
    parser.add_argument("--verbs", action="store_true", help="List the known command verbs and exit")
    parser.add_argument("command", nargs=argparse.REMAINDER, help="The command, verb first")
    return parser


def _print_item(result: ItemResult) -> None:
    line = f"{result.status.value}: {result.path}"
    if result.outputs:
        line += " -> " + ", ".join(result.outputs)
    elif result.reason:
        line += f" ({result.reason})"
    print(line, flush=True)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbs:
        print("\n".join(get_resolver().verbs))
        return 0
    if not args.command:
        parser.print_usage(sys.stderr)
        print("ffhuman: error: a command is required", file=sys.stderr)
        return 2

    try:
        settings = load_settings(args.config)
    except FfhumanError as e:
        print(f"ffhuman: {e}", file=sys.stderr)
        return e.exit_code

    logging.basicConfig(
        level=getattr(logging, args.log_level or settings.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    defaults = GlobalOptions(
        dry_run=args.dry_run,
        explain=args.explain,
        overwrite=args.overwrite,
        output_path=args.out,
        output_dir=args.output_dir,
        workers=args.workers,
    )
    engine = Engine(settings, on_result=_print_item)
    try:
        result = engine.run(args.command, defaults)
    except ExecutionError as e:
        print(f"ffhuman: {e}", file=sys.stderr)
        if e.command:
            print(f"command: {e.command}", file=sys.stderr)
        if e.stderr:
            sys.stderr.write(e.stderr if e.stderr.endswith("\n") else e.stderr + "\n")
        return e.exit_code
    except FfhumanError as e:
        print(f"ffhuman: {e}", file=sys.stderr)
        return e.exit_code
    except KeyboardInterrupt:
        engine.stop.set()
        print("ffhuman: interrupted", file=sys.stderr)
        return CancelledError.exit_code

    if result.text:
        sys.stdout.write(result.text)
    if result.report is not None:
        if isinstance(result.operation, Batch) and not result.options.dry_run:
            for item in result.report.results:
                _print_item(item)
        print(result.report.summary(), file=sys.stderr)
    elif result.plan is not None and not result.options.dry_run:
        for output in result.plan.outputs:
            print(output)
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
