#!/usr/bin/env python3
"""
Compare the cached chapter list with the download folders and write a CSV with
the state of each chapter (downloaded, empty folder, missing or local only).
"""

from __future__ import annotations

import csv
import pathlib
from dataclasses import dataclass
from typing import Dict, Iterable, List

from .pages import assign_directories
from .store import Chapter

DOWNLOADED = "downloaded"
EMPTY = "empty"
MISSING = "missing"
LOCAL_ONLY = "local_only"


@dataclass
class ChapterStatus:
    title: str
    status: str
    pages: int = 0
    link: str = ""
    local_name: str = ""


def collect_local_chapters(root: pathlib.Path) -> Dict[str, int]:
    """Map every chapter folder under ``root`` to its number of saved images."""
    if not root.exists():
        return {}
    folders: Dict[str, int] = {}
    for entry in root.iterdir():
        if entry.name.startswith(".") or not entry.is_dir():
            continue
        folders[entry.name] = sum(1 for f in entry.iterdir() if f.suffix.lower() == ".jpg")
    return folders


def compare(chapters: Iterable[Chapter], root: pathlib.Path) -> List[ChapterStatus]:
    local = collect_local_chapters(root)
    seen = set()
    out: List[ChapterStatus] = []
    chapters = list(chapters)
    for chapter, name in zip(chapters, assign_directories(chapters)):
        seen.add(name)
        if name not in local:
            status, pages = MISSING, 0
        else:
            pages = local[name]
            status = DOWNLOADED if pages else EMPTY
        out.append(
            ChapterStatus(
                title=chapter.title.strip(),
                status=status,
                pages=pages,
                link=chapter.link,
                local_name=name if name in local else "",
            )
        )
    for name in sorted(set(local) - seen):
        out.append(ChapterStatus(title="", status=LOCAL_ONLY, pages=local[name], local_name=name))
    return out


def generate_csv_report(statuses: Iterable[ChapterStatus], output_path: pathlib.Path) -> pathlib.Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", newline="", encoding="utf-8") as csvfile:
        writer = csv.writer(csvfile)
        writer.writerow(["title", "status", "pages", "link", "local_name"])
        for s in statuses:
            writer.writerow([s.title, s.status, s.pages, s.link, s.local_name])
    return output_path
