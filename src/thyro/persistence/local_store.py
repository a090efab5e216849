"""Durable local persistence: one markdown file per record, JSONL for lists.

Layout:
    ~/.thyro/data/
    ├── profile.md            # Profile record in YAML frontmatter
    ├── config.md             # UserConfig record in YAML frontmatter
    ├── session.md            # Anonymous session (owner id, tokens)
    ├── symptom_log.jsonl     # Append-only auxiliary lists
    └── appointments.jsonl

Every failure is logged and swallowed: a record that cannot be read is
indistinguishable from one that was never written.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import frontmatter

from thyro.models import Entity, EntityKind, decode_entity

logger = logging.getLogger(__name__)

RECORD_SUFFIX = ".md"
LIST_SUFFIX = ".jsonl"


class LocalStore:
    """Whole-record snapshots on disk, keyed by record kind."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    # ── Paths ─────────────────────────────────────────────────

    def _record_path(self, name: str) -> Path:
        return self.root / f"{name}{RECORD_SUFFIX}"

    def _list_path(self, name: str) -> Path:
        return self.root / f"{name}{LIST_SUFFIX}"

    def _write_atomic(self, path: Path, text: str) -> None:
        tmp = path.parent / f".{path.name}.tmp"
        tmp.write_text(text, encoding="utf-8")
        tmp.replace(path)

    def _unlink(self, path: Path) -> bool:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to delete %s: %s", path.name, e)
            return False
        return True

    # ── Entity records ────────────────────────────────────────

    def save(self, kind: EntityKind, entity: Entity) -> bool:
        """Overwrite the record for ``kind``. Returns False if nothing was written."""
        try:
            record = entity.to_record()
        except Exception as e:
            logger.warning("Failed to serialize %s: %s", kind.value, e)
            return False
        return self.save_record(kind.value, record)

    def load(self, kind: EntityKind) -> Entity | None:
        record = self.load_record(kind.value)
        if record is None:
            return None
        try:
            return decode_entity(kind, record)
        except ValueError as e:
            logger.warning("Discarding unreadable %s record: %s", kind.value, e)
            return None

    def delete(self, kind: EntityKind) -> None:
        self.delete_record(kind.value)

    # ── Raw records ───────────────────────────────────────────

    def save_record(self, name: str, record: dict[str, Any]) -> bool:
        post = frontmatter.Post(f"# {name}\n")
        post.metadata.update(record)
        try:
            self._write_atomic(self._record_path(name), frontmatter.dumps(post) + "\n")
        except Exception as e:
            logger.warning("Failed to save %s: %s", name, e)
            return False
        logger.debug("Saved %s", name)
        return True

    def load_record(self, name: str) -> dict[str, Any] | None:
        path = self._record_path(name)
        if not path.exists():
            return None
        try:
            post = frontmatter.loads(path.read_text(encoding="utf-8"))
        except Exception as e:
            logger.warning("Failed to load %s: %s", name, e)
            return None
        if not post.metadata:
            return None
        return dict(post.metadata)

    def delete_record(self, name: str) -> None:
        self._unlink(self._record_path(name))

    # ── Auxiliary lists ───────────────────────────────────────

    def append_entry(self, name: str, entry: dict[str, Any]) -> bool:
        try:
            line = json.dumps(entry, ensure_ascii=False)
            with self._list_path(name).open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except (TypeError, ValueError, OSError) as e:
            logger.warning("Failed to append to %s: %s", name, e)
            return False
        return True

    def read_entries(self, name: str) -> list[dict[str, Any]]:
        path = self._list_path(name)
        if not path.exists():
            return []
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            logger.warning("Failed to read %s: %s", name, e)
            return []
        entries = []
        for lineno, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                logger.warning("Skipping corrupt line %d in %s", lineno, path.name)
                continue
            if isinstance(entry, dict):
                entries.append(entry)
        return entries

    def replace_entries(self, name: str, entries: list[dict[str, Any]]) -> bool:
        try:
            text = "".join(json.dumps(e, ensure_ascii=False) + "\n" for e in entries)
            self._write_atomic(self._list_path(name), text)
        except (TypeError, ValueError, OSError) as e:
            logger.warning("Failed to rewrite %s: %s", name, e)
            return False
        return True

    def delete_entries(self, name: str) -> None:
        self._unlink(self._list_path(name))

    # ── Account reset ─────────────────────────────────────────

    def purge(self) -> int:
        """Remove every record and list. Returns the number of files removed."""
        removed = 0
        for pattern in (f"*{RECORD_SUFFIX}", f"*{LIST_SUFFIX}"):
            for path in self.root.glob(pattern):
                if self._unlink(path):
                    removed += 1
        if removed:
            logger.info("Purged %d local files from %s", removed, self.root)
        return removed
