"""Fuzz project management.

A fuzz project lives in ``<root>/fuzz`` next to the cargo package it fuzzes
and is itself a cargo package flagged with ``package.metadata.cargo-fuzz``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import tomli

from . import templates
from .command import RunOptions, build_spec, run_spec
from .config import get_config
from .errors import BuildError, FuzzError, PoolInterrupted, ProjectError
from .runtime import run_workers, spawn_and_wait
from .utils import GREEN, print_message

__all__ = [
    "FuzzProject",
    "collect_targets",
    "find_package",
    "is_fuzz_manifest",
    "load_manifest",
]

logger = logging.getLogger(__name__)


def load_manifest(path: Path) -> dict[str, Any]:
    """Read and decode a Cargo.toml.

    Raises:
        ProjectError: If the file cannot be read or is not valid TOML
    """
    try:
        with open(path, "rb") as f:
            return tomli.load(f)
    except OSError as e:
        raise ProjectError(f"could not read the manifest file: {path}") from e
    except tomli.TOMLDecodeError as e:
        raise ProjectError(f"could not decode the manifest file at {path}") from e


def _table(value: Any, key: str) -> Any:
    if isinstance(value, dict):
        return value.get(key)
    return None


def is_fuzz_manifest(manifest: dict[str, Any]) -> bool:
    metadata = _table(_table(manifest, "package"), "metadata")
    return _table(metadata, "cargo-fuzz") is True


def collect_targets(manifest: dict[str, Any]) -> list[str]:
    """Names of the ``[[bin]]`` entries, in manifest order."""
    bins = _table(manifest, "bin")
    if not isinstance(bins, list):
        return []
    names = (_table(b, "name") for b in bins)
    return [name for name in names if isinstance(name, str)]


def find_package(start: Path | None = None) -> Path:
    """Directory of the first enclosing cargo package that is not a fuzz project."""
    directory = (start or Path.cwd()).resolve()
    for candidate in (directory, *directory.parents):
        manifest_path = candidate / "Cargo.toml"
        if not manifest_path.is_file():
            continue
        if not is_fuzz_manifest(load_manifest(manifest_path)):
            return candidate
    raise ProjectError("could not find a cargo project")


class FuzzProject:
    """The fuzz project of a cargo package.

    Attributes:
        root_project: Path of the package being fuzzed (not the fuzz package)
        targets: Fuzz target names declared in the fuzz manifest
    """

    def __init__(self, root_project: Path, targets: list[str] | None = None) -> None:
        self.root_project = root_project
        self.targets = targets or []

    def __repr__(self) -> str:
        return f"FuzzProject(root_project={self.root_project}, targets={self.targets})"

    @classmethod
    def open(cls, start: Path | None = None) -> "FuzzProject":
        """Open an initialized fuzz project.

        Raises:
            ProjectError: If there is no cargo project or no fuzz manifest
        """
        project = cls(find_package(start))
        manifest = load_manifest(project.manifest_path)
        if not is_fuzz_manifest(manifest):
            raise ProjectError(
                f"manifest `{project.manifest_path}` does not look like a cargo-fuzz manifest. "
                "Add following lines to override:\n"
                "[package.metadata]\ncargo-fuzz = true"
            )
        project.targets = collect_targets(manifest)
        return project

    @classmethod
    def init(cls, target: str, start: Path | None = None) -> "FuzzProject":
        """Create the fuzz directory, its manifest and a first target."""
        project = cls(find_package(start))
        root_project_name = project.root_project_name()
        fuzz_dir = project.path

        try:
            fuzz_dir.mkdir()
            (fuzz_dir / "fuzzers").mkdir()
            (fuzz_dir / "Cargo.toml").write_text(
                templates.toml_template(root_project_name), encoding="utf-8"
            )
            (fuzz_dir / ".gitignore").write_text(templates.gitignore_template(), encoding="utf-8")
        except FileExistsError as e:
            raise ProjectError(f"{fuzz_dir} already exists, the project is already initialized") from e
        except OSError as e:
            raise ProjectError(f"could not create the fuzz project at {fuzz_dir}") from e

        try:
            project.create_target_template(target)
        except FuzzError as e:
            raise ProjectError(f"could not create template file for target {target!r}") from e
        logger.debug(f"Initialized fuzz project at {fuzz_dir}")
        return project

    @property
    def path(self) -> Path:
        return self.root_project / "fuzz"

    @property
    def manifest_path(self) -> Path:
        return self.path / "Cargo.toml"

    def target_path(self, target: str) -> Path:
        return self.path / "fuzzers" / f"{target}.rs"

    def corpus_for(self, target: str) -> Path:
        path = self.path / "corpus" / target
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ProjectError(f"could not make a corpus directory at {path}") from e
        return path

    def artifacts_for(self, target: str) -> str:
        """Artifact prefix for libFuzzer, with the trailing separator it needs."""
        path = self.path / "artifacts" / target
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ProjectError(f"could not make a artifact directory at {path}") from e
        return os.path.join(path, "")

    def root_project_name(self) -> str:
        manifest_path = self.root_project / "Cargo.toml"
        name = _table(_table(load_manifest(manifest_path), "package"), "name")
        if not isinstance(name, str):
            raise ProjectError(f"{manifest_path} (package.name) is malformed")
        return name

    def list_targets(self) -> None:
        for target in self.targets:
            print_message(target, GREEN)

    def add_target(self, target: str) -> None:
        # Corpus and artifact directories first, like a target that has run
        self.corpus_for(target)
        self.artifacts_for(target)
        try:
            self.create_target_template(target)
        except FuzzError as e:
            raise ProjectError(f"could not add target {target!r}") from e

    def create_target_template(self, target: str) -> None:
        """Write the target script and register it as a ``[[bin]]``."""
        target_path = self.target_path(target)
        crate_name = self.root_project_name().replace("-", "_")
        try:
            with open(target_path, "x", encoding="utf-8") as script:
                script.write(templates.target_template(crate_name))
        except OSError as e:
            raise ProjectError(f"could not create target script file at {target_path}") from e

        try:
            with open(self.manifest_path, "a", encoding="utf-8") as manifest:
                manifest.write(templates.toml_bin_template(target))
        except OSError as e:
            raise ProjectError(f"could not register target in {self.manifest_path}") from e
        self.targets.append(target)

    def exec_target(self, options: RunOptions) -> int:
        """Build the target, then fuzz it with ``options.jobs`` workers.

        Returns:
            Exit code for the cargo-fuzz process
        """
        config = get_config()
        artifacts = self.artifacts_for(options.target)
        corpus = list(options.corpus) or [os.fspath(self.corpus_for(options.target))]

        build = build_spec(self.manifest_path, options)
        try:
            status = spawn_and_wait(build)
        except OSError as e:
            raise BuildError(f"could not execute: {build.display()}") from e
        if status != 0:
            raise BuildError(f"could not build fuzz script: {build.display()}")

        run = run_spec(self.manifest_path, options, artifacts, corpus)
        context = "could not execute command" if options.jobs == 1 else "could not run the processes"
        try:
            return run_workers(
                run,
                options.jobs,
                allow_exec=config.allow_exec,
                term_timeout=config.term_timeout,
            )
        except PoolInterrupted:
            raise
        except FuzzError as e:
            raise FuzzError(f"{context}: {run.display()}") from e
