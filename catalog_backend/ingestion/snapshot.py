"""
JSON snapshot of the home-category rolling lists.

Shape: one top-level key per category name, each holding an array of Content
objects in their camelCase wire form. Writes go to a temp file in the same
directory and are renamed into place.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from collections.abc import Mapping, Sequence
from pathlib import Path

from catalog_backend.models.content import Content

logger = logging.getLogger(__name__)


class SnapshotError(RuntimeError):
    pass


class HomeSnapshotStore:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def read(self) -> dict[str, tuple[Content, ...]]:
        """
        Return the lists stored in the snapshot, keyed by category name.

        A missing file yields `{}`. Unreadable or malformed files raise `SnapshotError`.
        """

        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise SnapshotError(f"Could not read snapshot {self.path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise SnapshotError(f"Snapshot {self.path} is not a JSON object.")

        lists: dict[str, tuple[Content, ...]] = {}
        for name, items in raw.items():
            if not isinstance(items, list):
                raise SnapshotError(f"Snapshot {self.path}: category {name!r} is not a list.")
            lists[str(name)] = tuple(Content.from_dict(item) for item in items if isinstance(item, dict))
        return lists

    def write(self, lists: Mapping[str, Sequence[Content]]) -> None:
        payload = {name: [content.to_dict() for content in items] for name, items in lists.items()}
        directory = self.path.parent
        temp_name: str | None = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", delete=False, dir=str(directory), suffix=".tmp"
            ) as tf:
                temp_name = tf.name
                json.dump(payload, tf, ensure_ascii=False, indent=2)
                tf.flush()
                os.fsync(tf.fileno())
            os.replace(temp_name, self.path)
            temp_name = None
        except OSError as exc:
            raise SnapshotError(f"Could not write snapshot {self.path}: {exc}") from exc
        finally:
            if temp_name and os.path.exists(temp_name):
                os.remove(temp_name)
        logger.info(f"Wrote home snapshot to {self.path} ({sum(len(v) for v in lists.values())} items)")

    async def load(self) -> dict[str, tuple[Content, ...]]:
        return await asyncio.to_thread(self.read)

    async def save(self, lists: Mapping[str, Sequence[Content]]) -> None:
        await asyncio.to_thread(self.write, lists)
