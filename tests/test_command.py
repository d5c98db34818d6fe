"""Build/run command construction tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from cargo_fuzz.command import (
    RunOptions,
    build_spec,
    cargo_args,
    fuzz_env,
    run_spec,
    rustflags,
)

MANIFEST = Path("/work/project/fuzz/Cargo.toml")


def _options(**kwargs) -> RunOptions:
    kwargs.setdefault("triple", "x86_64-unknown-linux-gnu")
    return RunOptions(target="fuzzer_script_1", **kwargs)


class TestRustflags:
    def test_base_flags(self):
        assert rustflags("address", False) == (
            "-Cpasses=sancov -Cllvm-args=-sanitizer-coverage-level=4 "
            "-Cllvm-args=-sanitizer-coverage-trace-pc -Zsanitizer=address -Cpanic=abort"
        )

    def test_debug_assertions_and_inherited(self):
        flags = rustflags("memory", True, "-Ctarget-cpu=native")

        assert "-Zsanitizer=memory" in flags
        assert flags.endswith(" -Cdebug-assertions -Ctarget-cpu=native")


class TestFuzzEnv:
    def test_address_defaults(self):
        env = fuzz_env(_options(), environ={})

        assert env["ASAN_OPTIONS"] == "detect_odr_violation=0"
        assert "TSAN_OPTIONS" not in env

    def test_address_merges_user_options(self):
        env = fuzz_env(_options(), environ={"ASAN_OPTIONS": "detect_leaks=0"})

        assert env["ASAN_OPTIONS"] == "detect_leaks=0:detect_odr_violation=0"

    def test_thread_sanitizer(self):
        env = fuzz_env(_options(sanitizer="thread"), environ={"TSAN_OPTIONS": "a=1"})

        assert env["TSAN_OPTIONS"] == "a=1:report_signal_unsafe=0"
        assert "ASAN_OPTIONS" not in env

    @pytest.mark.parametrize("sanitizer", ["leak", "memory"])
    def test_other_sanitizers_only_set_rustflags(self, sanitizer: str):
        env = fuzz_env(_options(sanitizer=sanitizer), environ={"RUSTFLAGS": "-Cfoo"})

        assert set(env) == {"RUSTFLAGS"}
        assert env["RUSTFLAGS"].endswith(" -Cfoo")

    def test_unknown_sanitizer_rejected(self):
        with pytest.raises(ValueError):
            _options(sanitizer="undefined")


class TestCargoArgs:
    def test_debug_build(self):
        assert cargo_args(MANIFEST, _options()) == [
            "--manifest-path", str(MANIFEST),
            "--verbose",
            "--bin", "fuzzer_script_1",
            "--target", "x86_64-unknown-linux-gnu",
        ]

    def test_release_build(self):
        args = cargo_args(MANIFEST, _options(release=True))

        assert args[2] == "--release"

    def test_build_spec(self):
        spec = build_spec(MANIFEST, _options(), environ={})

        assert spec.argv[:2] == ("cargo", "build")
        assert "--" not in spec.argv
        assert "RUSTFLAGS" in spec.env


class TestRunSpec:
    def test_default_corpus(self):
        spec = run_spec(
            MANIFEST,
            _options(args=("-max_len=128", "-runs=10")),
            "/work/project/fuzz/artifacts/fuzzer_script_1/",
            ["/work/project/fuzz/corpus/fuzzer_script_1"],
            environ={},
        )

        separator = spec.argv.index("--")
        assert spec.argv[:2] == ("cargo", "run")
        assert spec.argv[separator + 1:] == (
            "-artifact_prefix=/work/project/fuzz/artifacts/fuzzer_script_1/",
            "-max_len=128",
            "-runs=10",
            "/work/project/fuzz/corpus/fuzzer_script_1",
        )

    def test_build_and_run_share_environment(self):
        options = _options(debug_assertions=True)

        build = build_spec(MANIFEST, options, environ={})
        run = run_spec(MANIFEST, options, "a/", ["c1", "c2"], environ={})

        assert build.env == run.env
        assert run.argv[-2:] == ("c1", "c2")
