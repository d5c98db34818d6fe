"""Build and run command construction for a fuzz target.

Turns the ``run`` options into two ProcessSpecs, one for ``cargo build`` and
one for ``cargo run``, both carrying the sanitizer flags in RUSTFLAGS.
"""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from .runtime import ProcessSpec
from .utils import default_target

__all__ = [
    "SANITIZERS",
    "RunOptions",
    "build_spec",
    "cargo_args",
    "fuzz_env",
    "run_spec",
    "rustflags",
]

SANITIZERS = ("address", "leak", "memory", "thread")

# Default runtime options per sanitizer, merged into the user's own options
_SANITIZER_OPTIONS = {
    "address": ("ASAN_OPTIONS", "detect_odr_violation=0"),
    "thread": ("TSAN_OPTIONS", "report_signal_unsafe=0"),
}


@dataclass(frozen=True)
class RunOptions:
    """Options of the ``run`` subcommand.

    Attributes:
        target: Fuzz target name
        release: Build with optimizations
        debug_assertions: Build with debug assertions
        sanitizer: One of SANITIZERS
        triple: Target triple passed to cargo
        jobs: Number of concurrent workers
        corpus: Custom corpus directories or artifact files
        args: Extra libFuzzer arguments
    """

    target: str
    release: bool = False
    debug_assertions: bool = False
    sanitizer: str = "address"
    triple: str = field(default_factory=default_target)
    jobs: int = 1
    corpus: tuple[str, ...] = ()
    args: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.sanitizer not in SANITIZERS:
            raise ValueError(f"unknown sanitizer {self.sanitizer!r}")


def rustflags(sanitizer: str, debug_assertions: bool, inherited: str = "") -> str:
    flags = (
        "-Cpasses=sancov "
        "-Cllvm-args=-sanitizer-coverage-level=4 "
        "-Cllvm-args=-sanitizer-coverage-trace-pc "
        f"-Zsanitizer={sanitizer} "
        "-Cpanic=abort"
    )
    if debug_assertions:
        flags += " -Cdebug-assertions"
    if inherited:
        flags += " " + inherited
    return flags


def fuzz_env(options: RunOptions, environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Environment overrides for both the build and the run.

    User-provided sanitizer options are kept; the defaults are appended so
    the user can still e.g. disable the leak checker.
    """
    environ = os.environ if environ is None else environ
    env = {
        "RUSTFLAGS": rustflags(
            options.sanitizer, options.debug_assertions, environ.get("RUSTFLAGS", "")
        )
    }
    if options.sanitizer in _SANITIZER_OPTIONS:
        name, default = _SANITIZER_OPTIONS[options.sanitizer]
        current = environ.get(name, "")
        env[name] = f"{current}:{default}" if current else default
    return env


def cargo_args(manifest_path: Path, options: RunOptions) -> list[str]:
    args = ["--manifest-path", os.fspath(manifest_path)]
    if options.release:
        args.append("--release")
    args += ["--verbose", "--bin", options.target]
    # --target=<TRIPLE> keeps RUSTFLAGS away from build scripts
    args += ["--target", options.triple]
    return args


def build_spec(
    manifest_path: Path,
    options: RunOptions,
    environ: Mapping[str, str] | None = None,
) -> ProcessSpec:
    return ProcessSpec(
        argv=("cargo", "build", *cargo_args(manifest_path, options)),
        env=fuzz_env(options, environ),
    )


def run_spec(
    manifest_path: Path,
    options: RunOptions,
    artifacts_dir: str,
    corpus_dirs: Sequence[str],
    environ: Mapping[str, str] | None = None,
) -> ProcessSpec:
    """``cargo run`` command; everything after ``--`` goes to the fuzzer."""
    argv = [
        "cargo",
        "run",
        *cargo_args(manifest_path, options),
        "--",
        f"-artifact_prefix={artifacts_dir}",
        *options.args,
        *corpus_dirs,
    ]
    return ProcessSpec(argv=tuple(argv), env=fuzz_env(options, environ))
