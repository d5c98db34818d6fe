"""File templates written by ``init`` and ``add``."""

from __future__ import annotations

__all__ = [
    "gitignore_template",
    "target_template",
    "toml_bin_template",
    "toml_template",
]


def toml_template(root_project_name: str) -> str:
    """Manifest of the fuzz package, depending on the project under test."""
    return f"""
[package]
name = "{root_project_name}-fuzz"
version = "0.0.1"
authors = ["Automatically generated"]
publish = false

[package.metadata]
cargo-fuzz = true

[dependencies.{root_project_name}]
path = ".."
[dependencies.libfuzzer-sys]
git = "https://github.com/rust-fuzz/libfuzzer-sys.git"

# Prevent this from interfering with workspaces
[workspace]
members = ["."]
"""


def toml_bin_template(target: str) -> str:
    return f"""
[[bin]]
name = "{target}"
path = "fuzzers/{target}.rs"
"""


def gitignore_template() -> str:
    return """
target
libfuzzer
corpus
artifacts
"""


def target_template(crate_name: str) -> str:
    """Fuzz target script; ``crate_name`` must already be a valid identifier."""
    return f"""#![no_main]
#[macro_use] extern crate libfuzzer_sys;
extern crate {crate_name};

fuzz_target!(|data: &[u8]| {{
    // fuzzed code goes here
}});
"""
