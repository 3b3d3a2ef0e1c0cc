import logging
from pathlib import Path

import pytest
import yaml

from helpers import Pkg, metadata_doc, write_artifact
from repodevkit import config as config_mod
from repodevkit.config import PackageFilter
from repodevkit.lister import RepoList


def _fps(pkgs):
    return [p.fingerprint for p in pkgs]


class TestAvailablesAndMissings:
    def test_missing_list(self, store: Path, make_knife) -> None:
        write_artifact(store, "cat", "a", "1.0")
        lister = RepoList(make_knife([Pkg("cat", "c"), Pkg("cat", "a"), Pkg("cat", "b")]))
        assert _fps(lister.availables()) == ["cat/a-1.0"]
        assert _fps(lister.missings()) == ["cat/b-1.0", "cat/c-1.0"]

    def test_every_version_of_the_tree_is_considered(self, store: Path, make_knife) -> None:
        write_artifact(store, "cat", "a", "1.0")
        lister = RepoList(make_knife([Pkg("cat", "a", "1.0"), Pkg("cat", "a", "2.0")]))
        assert _fps(lister.missings()) == ["cat/a-2.0"]

    def test_orphaned_artifacts_are_not_available(self, store: Path, make_knife) -> None:
        write_artifact(store, "cat", "a", "1.0", payload=False)
        lister = RepoList(make_knife([Pkg("cat", "a")]))
        assert lister.availables() == []
        assert _fps(lister.missings()) == ["cat/a-1.0"]

    def test_slotted_artifact_is_not_missing(self, store: Path, make_knife) -> None:
        (store / "python-3.11.package.tar").write_bytes(b"x")
        doc = yaml.safe_load(metadata_doc("dev-lang", "python", "3.11", path="python-3.11.package.tar"))
        doc["compilespec"]["package"]["slot"] = "3.11"
        (store / "python-3.11.metadata.yaml").write_text(yaml.safe_dump(doc))
        lister = RepoList(make_knife([Pkg("dev-lang", "python", "3.11", slot="3.11")]))
        assert _fps(lister.availables()) == ["dev-lang/python-3.11"]
        assert lister.missings() == []


class TestIgnoreList:
    def _lister(self, make_knife, filters):
        spec = config_mod.from_dict({"list": {"exclude_pkgs": filters}})
        pkgs = [Pkg("sys-devel", "gcc", "11.3"), Pkg("sys-devel", "gcc", "12.2"), Pkg("sys-libs", "glibc", "2.37")]
        return RepoList(make_knife(pkgs, spec=spec))

    def test_filters_come_from_specs(self, make_knife) -> None:
        lister = self._lister(make_knife, [{"name": "gcc", "category": "sys-devel"}])
        assert lister.filters == [PackageFilter("gcc", "sys-devel", ">=0")]
        assert _fps(lister.missings()) == ["sys-libs/glibc-2.37"]

    def test_selector_restricts_versions(self, make_knife) -> None:
        lister = self._lister(make_knife, [{"name": "gcc", "category": "sys-devel", "version": ">=12"}])
        assert _fps(lister.missings()) == ["sys-devel/gcc-11.3", "sys-libs/glibc-2.37"]

    def test_name_and_category_must_both_match(self, make_knife) -> None:
        lister = self._lister(make_knife, [{"name": "gcc", "category": "sys-libs"}])
        assert len(lister.missings()) == 3

    def test_unparsable_selector_means_ignored(self, make_knife, caplog: pytest.LogCaptureFixture) -> None:
        lister = self._lister(make_knife, [{"name": "glibc", "category": "sys-libs", "version": ">=2.x."}])
        with caplog.at_level(logging.WARNING, logger="repodevkit"):
            missing = _fps(lister.missings())
        assert missing == ["sys-devel/gcc-11.3", "sys-devel/gcc-12.2"]
        assert any("cannot parse selector" in r.getMessage() for r in caplog.records)

    def test_unparsable_candidate_means_ignored(self, make_knife) -> None:
        spec = config_mod.from_dict({"list": {"exclude_pkgs": [{"name": "odd", "category": "app-misc"}]}})
        lister = RepoList(make_knife([Pkg("app-misc", "odd", "not.a.version!"), Pkg("app-misc", "ok")], spec=spec))
        assert _fps(lister.missings()) == ["app-misc/ok-1.0"]

    def test_explicit_filters_override_specs(self, make_knife) -> None:
        lister = self._lister(make_knife, [{"name": "gcc", "category": "sys-devel"}])
        lister.filters = []
        assert len(lister.missings()) == 3


class TestMissingsOrdered:
    def test_chain_in_build_order(self, make_knife) -> None:
        knife = make_knife(
            [
                Pkg("cat", "a", build_requires=["cat/b"]),
                Pkg("cat", "b", build_requires=["cat/c"]),
                Pkg("cat", "c"),
                Pkg("cat", "d", build_requires=["cat/b"]),
            ]
        )
        ordered = _fps(RepoList(knife).missings_ordered())
        assert ordered == ["cat/c-1.0", "cat/b-1.0", "cat/a-1.0", "cat/d-1.0"]

    def test_with_resolve(self, make_knife) -> None:
        knife = make_knife(
            [
                Pkg("cat", "a", build_requires=["cat/b"]),
                Pkg("cat", "b", build_requires=["cat/c"]),
                Pkg("cat", "c"),
                Pkg("cat", "d", build_requires=["cat/b"]),
            ]
        )
        ordered = _fps(RepoList(knife).missings_ordered(with_resolve=True))
        assert ordered.index("cat/c-1.0") < ordered.index("cat/b-1.0")
        assert ordered.index("cat/b-1.0") < ordered.index("cat/a-1.0")
        assert ordered.index("cat/b-1.0") < ordered.index("cat/d-1.0")

    def test_available_packages_are_left_out(self, store: Path, make_knife) -> None:
        write_artifact(store, "cat", "c", "1.0")
        knife = make_knife([Pkg("cat", "a", build_requires=["cat/c"]), Pkg("cat", "c")])
        assert _fps(RepoList(knife).missings_ordered()) == ["cat/a-1.0"]

    def test_runtime_requires_do_not_order(self, make_knife) -> None:
        knife = make_knife([Pkg("cat", "a"), Pkg("cat", "b", requires=["cat/a"])])
        assert sorted(_fps(RepoList(knife).missings_ordered())) == ["cat/a-1.0", "cat/b-1.0"]
