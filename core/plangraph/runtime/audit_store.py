"""File-based audit trail for node completions.

Two sinks, usable together:

- directory: one ``{node}.json`` file per completed node (rewritten if the
  node runs again in a later run)
- file: one JSON object per line appended for every completion

Writes are synchronous and small; they happen on the scheduler's completion
continuation, so records for one run never interleave mid-line.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

from plangraph.runtime.audit_schemas import AuditRecord

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME = re.compile(r"[%\\/:*?\"<>|]")


def node_filename(node: str) -> str:
    """File name used for a node's record in directory mode.

    Characters that are not portable in file names are written as ``%XX``
    (``%`` included), so distinct node names never share a file.
    """
    return _UNSAFE_FILENAME.sub(lambda m: f"%{ord(m.group(0)):02X}", node) + ".json"


class AuditStore:
    """Persists AuditRecords to a directory and/or a JSONL file."""

    def __init__(self, directory: str | Path | None = None, file: str | Path | None = None):
        self.directory = Path(directory) if directory else None
        self.file = Path(file) if file else None

    @property
    def enabled(self) -> bool:
        return self.directory is not None or self.file is not None

    # -------------------------------------------------------------------
    # Write
    # -------------------------------------------------------------------

    def write(self, record: AuditRecord) -> None:
        """Write ``record`` to every configured sink."""
        if self.directory is not None:
            self.write_node_record(record)
        if self.file is not None:
            self.append_record(record)

    def write_node_record(self, record: AuditRecord) -> Path:
        if self.directory is None:
            raise ValueError("AuditStore has no directory configured")
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / node_filename(record.node)
        path.write_text(_dumps(record, indent=2), encoding="utf-8")
        return path

    def append_record(self, record: AuditRecord) -> None:
        if self.file is None:
            raise ValueError("AuditStore has no file configured")
        self.file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.file, "a", encoding="utf-8") as f:
            f.write(_dumps(record) + "\n")

    # -------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------

    def load_node_record(self, node: str) -> AuditRecord | None:
        if self.directory is None:
            return None
        path = self.directory / node_filename(node)
        if not path.exists():
            return None
        try:
            return AuditRecord(**json.loads(path.read_text(encoding="utf-8")))
        except (json.JSONDecodeError, OSError, ValueError) as e:
            logger.warning("Failed to read audit record %s: %s", path, e)
            return None

    def load_records(self) -> list[AuditRecord]:
        """Read the JSONL file back. Skips corrupt lines."""
        if self.file is None or not self.file.exists():
            return []
        records = []
        for line in self.file.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                records.append(AuditRecord(**json.loads(line)))
            except (json.JSONDecodeError, ValueError) as e:
                logger.warning("Skipping corrupt audit line in %s: %s", self.file, e)
        return records


def _dumps(record: AuditRecord, indent: int | None = None) -> str:
    # Node inputs/outputs may hold arbitrary objects; stringify what JSON can't encode
    return json.dumps(record.model_dump(), indent=indent, ensure_ascii=False, default=str)
