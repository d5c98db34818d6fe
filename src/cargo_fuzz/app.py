"""cargo-fuzz application entry point.

Argument parsing, logging setup and dispatch of the subcommands.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence

from . import __version__
from .command import SANITIZERS, RunOptions
from .config import Config, get_config
from .errors import FuzzError, PoolInterrupted
from .project import FuzzProject
from .utils import default_target, report_error

__all__ = ["build_parser", "main", "run", "split_fuzzer_args"]

logger = logging.getLogger(__name__)

RUN_DESCRIPTION = """\
Run the fuzzer on a given target. Example usage:
  cargo fuzz run fuzzer_script_1
The fuzz target name is the same as the name of the fuzz target script in
fuzz/fuzzers, i.e. the name picked when running `cargo fuzz add`

This will run the script inside the fuzz target with varying inputs until it
finds a crash, at which point it will save the crash input to the artifact
directory, print some output, and exit. Unless you configure it otherwise (see
libFuzzer options below), this will run indefinitely."""

RUN_EPILOG = """\
A full list of libFuzzer options can be found at
http://llvm.org/docs/LibFuzzer.html#options
You can also get this by running `cargo fuzz run fuzz_target -- -help=1`

Some useful options (to be used as `cargo fuzz run fuzz_target -- <options>`) include:
 - `-max_len=<len>`: Will limit the length of the input string to `<len>`
 - `-runs=<number>`: Will limit the number of tries (runs) before it gives up
 - `-max_total_time=<time>`: Will limit the amount of time to fuzz before it gives up
 - `-timeout=<time>`: Will limit the amount of time for a single run before it considers that run a failure
 - `-only_ascii`: Only provide ASCII input
 - `-dict=<file>`: Use a keyword dictionary from specified file."""


def parse_jobs(value: str) -> int:
    """argparse type for --jobs: an integer in 1..max_jobs."""
    try:
        jobs = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(
            "must be a valid integer representing a sane number of jobs"
        ) from None
    if jobs == 0:
        raise argparse.ArgumentTypeError("0 jobs?")
    max_jobs = get_config().max_jobs
    if jobs < 0 or jobs > max_jobs:
        raise argparse.ArgumentTypeError(
            f"must be a valid integer representing a sane number of jobs (1-{max_jobs})"
        )
    return jobs


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cargo-fuzz",
        description="A cargo subcommand for fuzzing with libFuzzer",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", metavar="SUBCOMMAND")
    subparsers.required = True

    init = subparsers.add_parser("init", help="Initialize the fuzz folder")
    init.add_argument(
        "-t", "--target",
        default="fuzzer_script_1",
        help="name of the first fuzz target to create",
    )

    add = subparsers.add_parser("add", help="Add a new fuzz target")
    add.add_argument("target", metavar="TARGET", help="name of the fuzz target")

    subparsers.add_parser("list", help="List all fuzz targets")

    run = subparsers.add_parser(
        "run",
        help="Run a fuzz target",
        description=RUN_DESCRIPTION,
        epilog=RUN_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    run.add_argument("-O", "--release", action="store_true",
                     help="Build artifacts in release mode, with optimizations")
    run.add_argument("-a", "--debug-assertions", action="store_true",
                     help="Build artifacts with debug assertions enabled (default if not -O)")
    run.add_argument("-s", "--sanitizer", choices=SANITIZERS, default="address",
                     help="Use different sanitizer")
    run.add_argument("--target", dest="triple", metavar="TRIPLE", default=default_target(),
                     help="target triple of the fuzz target")
    run.add_argument("-j", "--jobs", type=parse_jobs, default=1,
                     help="number of concurrent jobs to run")
    run.add_argument("target", metavar="TARGET", help="name of the fuzz target")
    run.add_argument("corpus", metavar="CORPUS", nargs="*",
                     help="custom corpus directory or artefact files")
    run.set_defaults(subparser=run)
    return parser


def parse_cli(parser: argparse.ArgumentParser, argv: Sequence[str]) -> argparse.Namespace:
    """Parse the CLI arguments, allowing options between positionals of ``run``.

    ``parse_intermixed_args`` rejects parsers with subcommands, so the
    subcommand is resolved first and its arguments are parsed again.
    """
    args, extra = parser.parse_known_args(argv)
    subparser = getattr(args, "subparser", None)
    if subparser is None:
        if extra:
            parser.error(f"unrecognized arguments: {' '.join(extra)}")
        return args
    argv = list(argv)
    rest = argv[argv.index(args.command) + 1:]
    return subparser.parse_intermixed_args(rest, argparse.Namespace(command=args.command))


def split_fuzzer_args(argv: Sequence[str]) -> tuple[list[str], list[str]]:
    """Split off the libFuzzer arguments following the first ``--``.

    A leading ``fuzz`` (what cargo passes when invoked as ``cargo fuzz``) is
    dropped.
    """
    args = list(argv)
    if args and args[0] == "fuzz":
        args = args[1:]
    if "--" in args:
        index = args.index("--")
        return args[:index], args[index + 1:]
    return args, []


def run(argv: Sequence[str]) -> int:
    """Parse ``argv`` and execute the subcommand; returns the exit code."""
    cli_args, fuzzer_args = split_fuzzer_args(argv)
    parser = build_parser()
    args = parse_cli(parser, cli_args)
    if fuzzer_args and args.command != "run":
        parser.error(f"unexpected arguments after '--' for {args.command}")

    try:
        if args.command == "init":
            FuzzProject.init(args.target)
        elif args.command == "add":
            FuzzProject.open().add_target(args.target)
        elif args.command == "list":
            FuzzProject.open().list_targets()
        elif args.command == "run":
            options = RunOptions(
                target=args.target,
                release=args.release,
                debug_assertions=args.debug_assertions,
                sanitizer=args.sanitizer,
                triple=args.triple,
                jobs=args.jobs,
                corpus=tuple(args.corpus or ()),
                args=tuple(fuzzer_args),
            )
            return FuzzProject.open().exec_target(options)
        else:  # pragma: no cover - argparse restricts the choices
            parser.error(f"unimplemented subcommand {args.command}")
    except PoolInterrupted as e:
        logger.info(f"Fuzzing stopped: {e}")
        return e.exit_code
    except FuzzError as e:
        logger.debug("Command failed", exc_info=True)
        report_error(e)
        return 1
    return 0


def setup_logging(config: Config) -> None:
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        # LOG_DEBUG mode: everything to the temp file
        log_handlers.append(logging.FileHandler(config.log_file, encoding="utf-8"))
        log_level = logging.DEBUG
    else:
        log_handlers.append(logging.StreamHandler(sys.stderr))
        log_level = logging.WARNING

    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    for handler in log_handlers:
        handler.setFormatter(formatter)

    # Third-party libraries stay at WARNING
    logging.basicConfig(level=logging.WARNING, handlers=log_handlers)
    logging.getLogger("cargo_fuzz").setLevel(log_level)


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point."""
    config = get_config()
    setup_logging(config)
    if config.log_debug:
        logger.debug(f"Starting cargo-fuzz: {config}")

    try:
        code = run(sys.argv[1:] if argv is None else argv)
    except KeyboardInterrupt:
        logger.warning("Interrupted, exiting with code 130")
        code = 130  # 128 + SIGINT(2)
    sys.exit(code)


if __name__ == "__main__":
    main()
