"""
Command-line interface for the package checker.
"""

import argparse
import logging
import sys
from pathlib import Path

import requests

from .analyzer import PackageChecker
from .assets import AssetUpdater
from .config import CheckerConfig
from .errors import CheckerError
from .reporting import export_problems_csv, print_dependents, print_problems


logger = logging.getLogger(__name__)


def _parse_variant(text: str):
    name, sep, value = text.partition("=")
    if not sep or not name or not value:
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {text!r}")
    if not name.startswith("variant."):
        name = "variant." + name
    return name, value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pkg-checker",
        description="Find problems in the package dependency graph of an OpenIndiana repository",
    )

    parser.add_argument(
        "--data-dir",
        default="./data",
        help="Directory holding assets and analysis results. Default: ./data"
    )

    parser.add_argument(
        "--assets-dir",
        default=None,
        help="Directory holding catalog files. Default: <data-dir>/assets"
    )

    parser.add_argument(
        "--components",
        default=None,
        help="oi-userland components directory. Default: <assets-dir>/oi-userland/components"
    )

    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker threads for parsing and analysis. Default: CPU count"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    data = commands.add_parser("data", help="Analyze the repository or refresh its assets")
    data_commands = data.add_subparsers(dest="data_command", required=True)

    run = data_commands.add_parser("run", help="Build the graph, detect problems and save both")
    run.add_argument(
        "--variant",
        action="append",
        type=_parse_variant,
        default=[],
        metavar="NAME=VALUE",
        help="Only keep dependencies applying to this variant (repeatable), e.g. arch=i386"
    )
    run.add_argument(
        "--use-make",
        action="store_true",
        help="Ask gmake for every dependency scope of each component"
    )

    update = data_commands.add_parser("update-assets", help="Download catalogs and update components")
    update.add_argument(
        "--skip-components",
        action="store_true",
        help="Only download the catalogs"
    )

    printer = commands.add_parser("print-problems", help="Print the problems of the last run")
    printer.add_argument(
        "--csv",
        default=None,
        help="Also export the problems to this CSV file"
    )

    check = commands.add_parser("check-fmri", help="List everything that depends on an FMRI")
    check.add_argument("fmri", help="FMRI to look up, e.g. pkg:/library/zlib")
    check.add_argument(
        "components_path",
        nargs="?",
        default=None,
        help="Components directory used to show component paths"
    )

    return parser


def _config_from_args(args) -> CheckerConfig:
    kwargs = {
        "data_dir": Path(args.data_dir),
        "assets_dir": Path(args.assets_dir) if args.assets_dir else None,
        "components_path": Path(args.components) if args.components else None,
    }
    if args.workers:
        kwargs["workers"] = args.workers
    if getattr(args, "variant", None):
        kwargs["variants"] = dict(args.variant)
    if getattr(args, "use_make", False):
        kwargs["use_make"] = True
    return CheckerConfig(**kwargs)


def _stage(args) -> str:
    if args.command == "data":
        return f"data {args.data_command}"
    return args.command


def main(argv=None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s" if not args.verbose else "%(levelname)s %(name)s: %(message)s",
    )

    config = _config_from_args(args)
    checker = PackageChecker(config)

    try:
        if args.command == "data" and args.data_command == "update-assets":
            AssetUpdater(config).update(components=not args.skip_components)
        elif args.command == "data" and args.data_command == "run":
            result = checker.run()
            logger.info(
                "Analysis complete: %d packages, %d problems",
                len(result.graph),
                len(result.problems),
            )
            if result.component_failures:
                logger.warning("%d components were skipped", len(result.component_failures))
        elif args.command == "print-problems":
            problems = checker.load_problems()
            print_problems(problems)
            if args.csv:
                logger.info("Problems saved to: %s", export_problems_csv(problems, Path(args.csv)))
        elif args.command == "check-fmri":
            print_dependents(checker.check_fmri(args.fmri), args.components_path)
    except (CheckerError, requests.RequestException) as e:
        logger.error("%s failed: %s", _stage(args), e)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
