"""Fuzz project tests: discovery, manifests, init/add/list, run."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from cargo_fuzz import project as project_module
from cargo_fuzz.command import RunOptions
from cargo_fuzz.errors import BuildError, FuzzError, ProjectError
from cargo_fuzz.project import FuzzProject, collect_targets, find_package, is_fuzz_manifest

ROOT_MANIFEST = """
[package]
name = "my-crate"
version = "0.1.0"
"""


@pytest.fixture
def crate(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A cargo package as the current directory."""
    root = tmp_path / "my-crate"
    (root / "src").mkdir(parents=True)
    (root / "Cargo.toml").write_text(ROOT_MANIFEST, encoding="utf-8")
    monkeypatch.chdir(root)
    return root


@pytest.fixture
def fuzz_project(crate: Path) -> FuzzProject:
    FuzzProject.init("fuzzer_script_1")
    return FuzzProject.open()


class TestManifest:
    def test_is_fuzz_manifest(self):
        assert is_fuzz_manifest({"package": {"metadata": {"cargo-fuzz": True}}})
        assert not is_fuzz_manifest({"package": {"metadata": {"cargo-fuzz": "yes"}}})
        assert not is_fuzz_manifest({"package": {"name": "x"}})
        assert not is_fuzz_manifest({})

    def test_collect_targets(self):
        manifest = {"bin": [{"name": "a"}, {"path": "x.rs"}, {"name": 3}, {"name": "b"}]}

        assert collect_targets(manifest) == ["a", "b"]
        assert collect_targets({}) == []
        assert collect_targets({"bin": "nope"}) == []


class TestFindPackage:
    def test_finds_enclosing_package(self, crate: Path):
        nested = crate / "src" / "deep"
        nested.mkdir()

        assert find_package(nested) == crate.resolve()

    def test_skips_fuzz_package(self, fuzz_project: FuzzProject, crate: Path):
        assert find_package(crate / "fuzz" / "fuzzers") == crate.resolve()

    def test_no_package(self, tmp_path: Path):
        with pytest.raises(ProjectError, match="could not find a cargo project"):
            find_package(tmp_path)

    def test_undecodable_manifest(self, tmp_path: Path):
        (tmp_path / "Cargo.toml").write_text("[package\n", encoding="utf-8")

        with pytest.raises(ProjectError, match="could not decode the manifest file"):
            find_package(tmp_path)


class TestInit:
    def test_creates_layout(self, crate: Path):
        FuzzProject.init("fuzzer_script_1")

        fuzz = crate / "fuzz"
        manifest = (fuzz / "Cargo.toml").read_text(encoding="utf-8")
        assert 'name = "my-crate-fuzz"' in manifest
        assert "cargo-fuzz = true" in manifest
        assert "[dependencies.my-crate]" in manifest
        assert 'path = "fuzzers/fuzzer_script_1.rs"' in manifest
        assert "corpus" in (fuzz / ".gitignore").read_text(encoding="utf-8")
        script = (fuzz / "fuzzers" / "fuzzer_script_1.rs").read_text(encoding="utf-8")
        assert "extern crate my_crate;" in script
        assert "fuzz_target!" in script

    def test_twice_fails(self, crate: Path):
        FuzzProject.init("fuzzer_script_1")

        with pytest.raises(ProjectError, match="already"):
            FuzzProject.init("fuzzer_script_1")

    def test_malformed_root_name(self, crate: Path):
        (crate / "Cargo.toml").write_text("[package]\nversion = '1'\n", encoding="utf-8")

        with pytest.raises(ProjectError, match="package.name"):
            FuzzProject.init("t")


class TestOpen:
    def test_lists_targets(self, fuzz_project: FuzzProject, capsys: pytest.CaptureFixture[str]):
        fuzz_project.list_targets()

        assert capsys.readouterr().out == "fuzzer_script_1\n"

    def test_not_a_fuzz_manifest(self, crate: Path):
        (crate / "fuzz").mkdir()
        (crate / "fuzz" / "Cargo.toml").write_text("[package]\nname = 'x'\n", encoding="utf-8")

        with pytest.raises(ProjectError, match="does not look like a cargo-fuzz manifest"):
            FuzzProject.open()

    def test_missing_fuzz_manifest(self, crate: Path):
        with pytest.raises(ProjectError, match="could not read the manifest file"):
            FuzzProject.open()


class TestAdd:
    def test_add_target(self, fuzz_project: FuzzProject, crate: Path):
        fuzz_project.add_target("second")

        reopened = FuzzProject.open()
        assert reopened.targets == ["fuzzer_script_1", "second"]
        assert (crate / "fuzz" / "corpus" / "second").is_dir()
        assert (crate / "fuzz" / "artifacts" / "second").is_dir()
        assert (crate / "fuzz" / "fuzzers" / "second.rs").is_file()

    def test_add_existing_target_fails(self, fuzz_project: FuzzProject):
        with pytest.raises(ProjectError, match="could not add target") as exc_info:
            fuzz_project.add_target("fuzzer_script_1")

        assert "could not create target script file" in str(exc_info.value.__cause__)


class TestPaths:
    def test_artifacts_prefix_ends_with_separator(self, fuzz_project: FuzzProject):
        prefix = fuzz_project.artifacts_for("t")

        assert prefix.endswith(os.sep)
        assert Path(prefix).is_dir()

    def test_corpus_dir(self, fuzz_project: FuzzProject, crate: Path):
        assert fuzz_project.corpus_for("t") == crate.resolve() / "fuzz" / "corpus" / "t"


class TestExecTarget:
    @pytest.fixture
    def calls(self, monkeypatch: pytest.MonkeyPatch) -> dict:
        recorded: dict = {"build_status": 0}

        def fake_spawn_and_wait(spec):
            recorded["build"] = spec
            return recorded["build_status"]

        def fake_run_workers(spec, jobs, **kwargs):
            recorded["run"] = spec
            recorded["jobs"] = jobs
            recorded["kwargs"] = kwargs
            return 0

        monkeypatch.setattr(project_module, "spawn_and_wait", fake_spawn_and_wait)
        monkeypatch.setattr(project_module, "run_workers", fake_run_workers)
        return recorded

    def test_builds_then_runs(self, fuzz_project: FuzzProject, calls: dict):
        options = RunOptions(target="fuzzer_script_1", jobs=4, triple="x86_64-unknown-linux-gnu")

        assert fuzz_project.exec_target(options) == 0

        assert calls["build"].argv[:2] == ("cargo", "build")
        run = calls["run"]
        assert run.argv[:2] == ("cargo", "run")
        assert run.argv[-1] == str(fuzz_project.corpus_for("fuzzer_script_1"))
        assert calls["jobs"] == 4
        assert calls["kwargs"]["allow_exec"] is True

    def test_custom_corpus(self, fuzz_project: FuzzProject, calls: dict):
        options = RunOptions(target="fuzzer_script_1", corpus=("c1", "crash-123"))

        fuzz_project.exec_target(options)

        assert calls["run"].argv[-2:] == ("c1", "crash-123")

    def test_build_failure(self, fuzz_project: FuzzProject, calls: dict):
        calls["build_status"] = 101

        with pytest.raises(BuildError, match="could not build fuzz script"):
            fuzz_project.exec_target(RunOptions(target="fuzzer_script_1"))
        assert "run" not in calls

    def test_pool_failure_is_chained(self, fuzz_project: FuzzProject, monkeypatch: pytest.MonkeyPatch):
        from cargo_fuzz.errors import SpawnError

        def failing_run_workers(spec, jobs, **kwargs):
            raise SpawnError(1, spec.argv)

        monkeypatch.setattr(project_module, "spawn_and_wait", lambda spec: 0)
        monkeypatch.setattr(project_module, "run_workers", failing_run_workers)

        with pytest.raises(FuzzError, match="could not run the processes") as exc_info:
            fuzz_project.exec_target(RunOptions(target="fuzzer_script_1", jobs=2))
        assert isinstance(exc_info.value.__cause__, SpawnError)
