#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Cached chapter list (``chapters.json``).

When the file exists it is used as-is and the chapter list is not rediscovered.
Writes go through a temporary file in the same directory and ``os.replace``.
"""

from __future__ import annotations

import json
import logging
import os
import pathlib
import tempfile
from dataclasses import asdict, dataclass
from typing import List, Optional, Sequence

LOG = logging.getLogger("slashdl.store")


class CatalogStoreError(RuntimeError):
    pass


@dataclass(frozen=True)
class Chapter:
    title: str
    link: str


class CatalogStore:
    def __init__(self, path: pathlib.Path):
        self.path = pathlib.Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Optional[List[Chapter]]:
        """Return the cached chapters, or None when there is no cache yet."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CatalogStoreError(f"{self.path} is not valid JSON: {exc}") from exc
        if not isinstance(data, list):
            raise CatalogStoreError(f"{self.path} must contain a JSON array.")

        chapters: List[Chapter] = []
        for i, item in enumerate(data):
            if not isinstance(item, dict) or not isinstance(item.get("title"), str) or not isinstance(item.get("link"), str):
                raise CatalogStoreError(f"Entry #{i} in {self.path} is not a {{title, link}} object.")
            chapters.append(Chapter(title=item["title"], link=item["link"]))
        return chapters

    def save(self, chapters: Sequence[Chapter]) -> None:
        payload = json.dumps([asdict(c) for c in chapters], indent=2, ensure_ascii=False)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_name, self.path)
        except BaseException:
            pathlib.Path(tmp_name).unlink(missing_ok=True)
            raise
        LOG.info("Saved %d chapters to %s", len(chapters), self.path)
