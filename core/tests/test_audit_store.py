"""Tests for AuditStore: per-node records, JSONL appends and read-back."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from plangraph.runtime.audit_schemas import AuditRecord
from plangraph.runtime.audit_store import AuditStore, node_filename

# ---------------------------------------------------------------------------
# Directory mode
# ---------------------------------------------------------------------------


class TestDirectoryMode:
    def test_write_and_load_node_record(self, tmp_path: Path):
        store = AuditStore(directory=tmp_path / "audit")
        record = AuditRecord(
            node="search",
            node_type="tool",
            inputs={"query": "tides"},
            output={"hits": 3},
            run_id="run-1",
            graph="research",
        )

        path = store.write_node_record(record)

        assert path == tmp_path / "audit" / "search.json"
        loaded = store.load_node_record("search")
        assert loaded is not None
        assert loaded.output == {"hits": 3}
        assert loaded.run_id == "run-1"

    def test_rerun_overwrites_node_file(self, tmp_path: Path):
        store = AuditStore(directory=tmp_path)
        store.write(AuditRecord(node="a", output=1))
        store.write(AuditRecord(node="a", output=2))

        assert store.load_node_record("a").output == 2
        assert len(list(tmp_path.iterdir())) == 1

    def test_missing_and_corrupt_records(self, tmp_path: Path):
        store = AuditStore(directory=tmp_path)
        (tmp_path / "broken.json").write_text("{not json")

        assert store.load_node_record("never_ran") is None
        assert store.load_node_record("broken") is None

    def test_unsafe_node_names(self):
        assert node_filename("p1/step:2") == "p1%2Fstep%3A2.json"
        assert node_filename("100%") == "100%25.json"

    def test_similar_names_get_separate_files(self, tmp_path: Path):
        store = AuditStore(directory=tmp_path)
        for node in ["a/b", "a_b", "a%2Fb"]:
            store.write(AuditRecord(node=node, output=node))

        assert len(list(tmp_path.iterdir())) == 3
        assert store.load_node_record("a/b").output == "a/b"
        assert store.load_node_record("a_b").output == "a_b"
        assert store.load_node_record("a%2Fb").output == "a%2Fb"

    def test_direct_write_without_directory(self, tmp_path: Path):
        store = AuditStore(file=tmp_path / "audit.jsonl")
        with pytest.raises(ValueError, match="no directory"):
            store.write_node_record(AuditRecord(node="a"))
        with pytest.raises(ValueError, match="no file"):
            AuditStore(directory=tmp_path).append_record(AuditRecord(node="a"))


# ---------------------------------------------------------------------------
# File mode
# ---------------------------------------------------------------------------


class TestFileMode:
    def test_append_and_load_records(self, tmp_path: Path):
        store = AuditStore(file=tmp_path / "nested" / "audit.jsonl")
        store.write(AuditRecord(node="a", output={"x": 1}))
        store.write(AuditRecord(node="b", output={"y": 2}))

        records = store.load_records()

        assert [r.node for r in records] == ["a", "b"]
        assert records[1].output == {"y": 2}

    def test_corrupt_lines_are_skipped(self, tmp_path: Path):
        audit_file = tmp_path / "audit.jsonl"
        store = AuditStore(file=audit_file)
        store.write(AuditRecord(node="a"))
        with open(audit_file, "a") as f:
            f.write("{truncated\n\n")
        store.write(AuditRecord(node="b"))

        assert [r.node for r in store.load_records()] == ["a", "b"]

    def test_each_line_is_one_json_object(self, tmp_path: Path):
        audit_file = tmp_path / "audit.jsonl"
        AuditStore(file=audit_file).write(AuditRecord(node="a", inputs={"text": "line\nbreak"}))

        lines = audit_file.read_text().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["inputs"]["text"] == "line\nbreak"


class TestBothSinks:
    def test_enabled(self, tmp_path: Path):
        assert not AuditStore().enabled
        assert AuditStore(directory=tmp_path).enabled

    def test_write_goes_to_both(self, tmp_path: Path):
        store = AuditStore(directory=tmp_path / "nodes", file=tmp_path / "audit.jsonl")
        store.write(AuditRecord(node="a"))

        assert (tmp_path / "nodes" / "a.json").exists()
        assert len(store.load_records()) == 1
        assert store.load_records()[0].timestamp.endswith("+00:00")
