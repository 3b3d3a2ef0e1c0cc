"""Shared test fixtures for repodevkit tests."""

from pathlib import Path
from typing import List, Optional

import pytest

from helpers import Pkg, write_tree
from repodevkit import config as config_mod
from repodevkit.backends import LocalBackend
from repodevkit.knife import RepoKnife
from repodevkit.tree import RecipeTree


@pytest.fixture
def store(tmp_path: Path) -> Path:
    d = tmp_path / "store"
    d.mkdir()
    return d


@pytest.fixture
def tree_dir(tmp_path: Path) -> Path:
    return tmp_path / "tree"


@pytest.fixture
def specs() -> config_mod.Config:
    return config_mod.from_dict({})


@pytest.fixture
def make_knife(store: Path, tree_dir: Path, specs: config_mod.Config):
    """Build a knife over the local store and a tree written from Pkg entries."""

    def _make(pkgs: List[Pkg], spec: Optional[config_mod.Config] = None) -> RepoKnife:
        write_tree(tree_dir, pkgs)
        tree = RecipeTree()
        tree.load(str(tree_dir))
        return RepoKnife(spec or specs, LocalBackend(str(store)), tree)

    return _make
