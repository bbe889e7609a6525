"""Shared fixtures and utilities for pin-flake-inputs tests."""

import json
import shutil
import tempfile
from pathlib import Path

import pytest
import structlog

FIXTURES_DIR = Path(__file__).parent / 'fixtures'

REV_A = 'b6a8526db03f735b89dd5ff348f53f752e7ddc8e'
REV_B = '1ff3798f4b98e6db8f36ac9e975a4a1b4cc02959'


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo any logging configuration a test (or the CLI) applied."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def temp_flake_dir():
    """Create a temporary directory for flake tests."""
    d = tempfile.mkdtemp(prefix='pinflake_test_')
    yield Path(d)
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def fixture_flake(temp_flake_dir):
    """Copy a named fixture flake into a temp directory and return the directory."""

    def _copy(name: str) -> Path:
        target = temp_flake_dir / name
        shutil.copytree(FIXTURES_DIR / name, target)
        (target / 'flake-expected.nix').unlink(missing_ok=True)
        return target

    return _copy


def expected_flake(name: str) -> str:
    """Read the expected pinned flake.nix of a fixture."""
    return (FIXTURES_DIR / name / 'flake-expected.nix').read_text()


def make_lock(nodes: dict, root_inputs: dict | None = None) -> dict:
    """Build a version 7 lock whose root inputs default to one per node."""
    if root_inputs is None:
        root_inputs = {name: name for name in nodes}
    return {
        'nodes': {'root': {'inputs': root_inputs}, **nodes},
        'root': 'root',
        'version': 7,
    }


def github_node(owner: str, repo: str, rev: str, ref: str | None = None) -> dict:
    original = {'owner': owner, 'repo': repo, 'type': 'github'}
    if ref:
        original['ref'] = ref
    return {
        'locked': {
            'lastModified': 1700000000,
            'narHash': 'sha256-AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA=',
            'owner': owner,
            'repo': repo,
            'rev': rev,
            'type': 'github',
        },
        'original': original,
    }


def write_flake(flake_dir: Path, flake_nix: str, lock: dict) -> None:
    """Write flake.nix and flake.lock into flake_dir."""
    (flake_dir / 'flake.nix').write_text(flake_nix)
    (flake_dir / 'flake.lock').write_text(json.dumps(lock, indent=2) + '\n')


# Sample flake configurations for testing
SIMPLE_FLAKE = """{
  inputs.nixpkgs.url = "github:NixOS/nixpkgs/nixos-unstable";

  outputs = { self, nixpkgs }: {
    packages.x86_64-linux.default = nixpkgs.legacyPackages.x86_64-linux.hello;
  };
}
"""

# Inline forge input, block input with follows, and a flake = false input
MIXED_FLAKE = """{
  inputs = {
    nixpkgs.url = "github:NixOS/nixpkgs/nixos-unstable";
    dotfiles = {
      url = "github:nalabelle/dotfiles";
      inputs.nixpkgs.follows = "nixpkgs";
    };
    wallpapers = {
      url = "github:nalabelle/wallpapers";
      flake = false;
    };
  };

  outputs = { ... }: { };
}
"""
