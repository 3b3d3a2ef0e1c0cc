from pathlib import Path

from helpers import Pkg, write_artifact
from repodevkit.backends import LocalBackend
from repodevkit.cleaner import RepoCleaner
from repodevkit.errors import BackendIOError


class FlakyBackend(LocalBackend):
    """Local backend refusing to remove some keys."""

    def __init__(self, path: str, refuse):
        super().__init__(path)
        self.refuse = set(refuse)

    def remove(self, key: str) -> None:
        if key in self.refuse:
            raise BackendIOError(f"refused {key}")
        super().remove(key)


class TestRepoCleaner:
    def test_dry_run_removes_nothing(self, store: Path, make_knife) -> None:
        (store / "stray.txt").write_text("x")
        write_artifact(store, "cat", "gone", "1.0")
        report = RepoCleaner(make_knife([]), dry_run=True).run()
        assert report["dry_run"] is True
        assert set(report["candidates"]) == {"stray.txt", "gone-1.0.metadata.yaml", "gone-1.0.package.tar"}
        assert sorted(p.name for p in store.iterdir()) == [
            "gone-1.0.metadata.yaml",
            "gone-1.0.package.tar",
            "stray.txt",
        ]

    def test_removes_candidates(self, store: Path, make_knife) -> None:
        (store / "stray.txt").write_text("x")
        write_artifact(store, "cat", "a", "1.0")
        write_artifact(store, "cat", "b", "1.0", metadata=False)
        report = RepoCleaner(make_knife([Pkg("cat", "a")])).run()
        assert report["ok"] is True
        assert set(report["removed"]) == {"stray.txt", "b-1.0.package.tar"}
        assert report["failed"] == []
        assert sorted(p.name for p in store.iterdir()) == ["a-1.0.metadata.yaml", "a-1.0.package.tar"]

    def test_second_run_is_a_no_op(self, store: Path, make_knife) -> None:
        (store / "stray.txt").write_text("x")
        knife = make_knife([])
        RepoCleaner(knife).run()
        report = RepoCleaner(knife).run()
        assert report["candidates"] == []
        assert report["removed"] == []

    def test_failed_removal_does_not_stop_the_run(self, store: Path, make_knife) -> None:
        (store / "one.txt").write_text("x")
        (store / "two.txt").write_text("x")
        knife = make_knife([])
        knife.backend = FlakyBackend(str(store), refuse=["one.txt"])
        report = RepoCleaner(knife).run()
        assert report["removed"] == ["two.txt"]
        assert [f["key"] for f in report["failed"]] == ["one.txt"]
        assert "refused" in report["failed"][0]["reason"]
        assert (store / "one.txt").exists()
        assert not (store / "two.txt").exists()

    def test_report_carries_summary(self, store: Path, make_knife) -> None:
        report = RepoCleaner(make_knife([])).run()
        assert report["summary"]["processed"] == 0
        assert report["run_id"]
