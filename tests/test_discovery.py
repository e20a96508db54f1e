import os
import tempfile
import unittest
from pathlib import Path

from tsi_rebuild.config import RunConfig
from tsi_rebuild.discovery import (
    DiscoveryError,
    JobDescriptor,
    build_jobs,
    discover_databases,
    parse_shard_id,
)


def _make_layout(root: Path, layout: dict[str, list[str]]) -> None:
    for db, shards in layout.items():
        autogen = root / db / "autogen"
        autogen.mkdir(parents=True)
        for shard in shards:
            (autogen / shard).mkdir()


class ParseShardIdTests(unittest.TestCase):
    def test_integers(self) -> None:
        self.assertEqual(parse_shard_id("12"), 12)
        self.assertEqual(parse_shard_id("007"), 7)
        self.assertEqual(parse_shard_id("+4"), 4)
        self.assertEqual(parse_shard_id("-3"), -3)

    def test_malformed_names_become_zero(self) -> None:
        # Kept on purpose: a bad name schedules shard 0 rather than failing the run.
        for raw in ("abc", "", " 1", "1_0", "1.5"):
            with self.subTest(raw=raw):
                with self.assertLogs("tsi_rebuild.discovery", level="WARNING"):
                    self.assertEqual(parse_shard_id(raw), 0)


class DiscoverDatabasesTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _config(self, **kwargs) -> RunConfig:
        return RunConfig(data_dir=str(self.root), **kwargs)

    def test_discovers_databases_and_shards(self) -> None:
        _make_layout(self.root, {"db2": ["0"], "db1": ["1", "0"]})
        databases = discover_databases(self._config())
        self.assertEqual([(d.name, d.shards) for d in databases], [("db1", [0, 1]), ("db2", [0])])

    def test_ignores_plain_files(self) -> None:
        _make_layout(self.root, {"db1": ["3"]})
        (self.root / "notes.txt").write_text("x", encoding="utf-8")
        (self.root / "db1" / "autogen" / "fields.idx").write_text("x", encoding="utf-8")
        databases = discover_databases(self._config())
        self.assertEqual([(d.name, d.shards) for d in databases], [("db1", [3])])

    @unittest.skipUnless(hasattr(os, "symlink"), "symlinks unavailable")
    def test_does_not_follow_symlinked_databases(self) -> None:
        _make_layout(self.root, {"db1": ["0"]})
        os.symlink(self.root / "db1", self.root / "alias")
        names = [d.name for d in discover_databases(self._config())]
        self.assertEqual(names, ["db1"])

    def test_excludes_internal_database(self) -> None:
        _make_layout(self.root, {"_internal": ["1"], "telegraf": ["2"]})
        names = [d.name for d in discover_databases(self._config())]
        self.assertEqual(names, ["telegraf"])

    def test_database_filter_includes_internal(self) -> None:
        _make_layout(self.root, {"_internal": ["1"], "telegraf": ["2"]})
        databases = discover_databases(self._config(database="_internal"))
        self.assertEqual([(d.name, d.shards) for d in databases], [("_internal", [1])])

    def test_shard_filter_applies_to_every_database(self) -> None:
        _make_layout(self.root, {"db1": ["7"], "db2": ["8", "9"]})
        databases = discover_databases(self._config(shards=("0", "1", "2")))
        self.assertEqual({d.name: d.shards for d in databases}, {"db1": [0, 1, 2], "db2": [0, 1, 2]})

    def test_malformed_shard_directory_yields_shard_zero(self) -> None:
        _make_layout(self.root, {"db1": ["abc", "5"]})
        with self.assertLogs("tsi_rebuild.discovery", level="WARNING"):
            databases = discover_databases(self._config())
        self.assertEqual(databases[0].shards, [5, 0])
        self.assertIn(JobDescriptor("db1", 0), build_jobs(databases))

    def test_duplicate_shards_are_not_merged(self) -> None:
        _make_layout(self.root, {"db1": []})
        databases = discover_databases(self._config(shards=("4", "4")))
        self.assertEqual(build_jobs(databases), [JobDescriptor("db1", 4), JobDescriptor("db1", 4)])

    def test_missing_data_dir_is_fatal(self) -> None:
        with self.assertRaises(DiscoveryError) as ctx:
            discover_databases(RunConfig(data_dir=str(self.root / "missing")))
        self.assertEqual(ctx.exception.path, str(self.root / "missing"))

    def test_missing_autogen_is_fatal_even_with_shard_filter(self) -> None:
        (self.root / "db1").mkdir()
        with self.assertRaises(DiscoveryError):
            discover_databases(self._config(shards=("1",)))

    def test_unknown_filtered_database_is_fatal(self) -> None:
        _make_layout(self.root, {"db1": ["0"]})
        with self.assertRaises(DiscoveryError):
            discover_databases(self._config(database="nope"))

    def test_empty_data_dir_yields_no_jobs(self) -> None:
        self.assertEqual(build_jobs(discover_databases(self._config())), [])


if __name__ == "__main__":
    unittest.main()
