#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Page-by-page image download for every chapter in the catalog.
# - Reads the page count from the reader's "Page N / TOTAL" indicator
# - Opens each page (?p=<n>), waits for the <img> of the container tagged data-page=<n>
# - Saves the image response as <n>.jpg; failed pages get exactly one more pass

from __future__ import annotations

import logging
import pathlib
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Set

from playwright.async_api import Page
from tqdm import tqdm

from .consent import ConsentContext, ConsentGate
from .store import Chapter
from .utils import abs_url, sanitize_filename, with_query

LOG = logging.getLogger("slashdl.pages")

NAVIGATION_TIMEOUT_MS = 60_000
PAGE_COUNT_TIMEOUT_MS = 10_000
CONTAINER_TIMEOUT_MS = 30_000

PAGE_INDICATOR_SELECTOR = ".reader-header-action__text"
PAGE_CONTAINER_SELECTOR = ".reader-view__container"
PAGE_COUNT_RE = re.compile(r"(?:Page|Страница)\s*(\d+)\s*/\s*(\d+)", re.I)
SINGLE_IMAGE_NAME = "image.jpg"


class PageCountError(RuntimeError):
    """The page indicator is missing or unreadable; the chapter cannot be paginated."""


class PageFetchError(RuntimeError):
    pass


@dataclass
class ChapterResult:
    title: str
    directory: pathlib.Path
    total_pages: Optional[int] = None
    saved: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    skipped: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.skipped is None and not self.failed


def chapter_dir_name(title: str) -> str:
    return sanitize_filename(title.strip())


def page_url(base_link: str, index: int) -> str:
    if index <= 1:
        return base_link
    return with_query(base_link, p=index)


def parse_page_count(text: Optional[str]) -> int:
    m = PAGE_COUNT_RE.search(text or "")
    if not m:
        raise PageCountError(f"Unrecognised page indicator: {text!r}")
    total = int(m.group(2))
    if total <= 0:
        raise PageCountError(f"Page indicator reports no pages: {text!r}")
    return total


def image_selector(index: int) -> str:
    return f"{PAGE_CONTAINER_SELECTOR}[data-page='{index}'] img"


def assign_directories(chapters: Sequence[Chapter]) -> List[str]:
    """Folder name for each chapter, in order.

    Distinct titles can sanitize to the same name ("Глава 1?" and "Глава 1:");
    later ones get a " (2)", " (3)" ... suffix so no chapter writes into
    another's folder.
    """
    taken: Set[str] = set()
    names: List[str] = []
    for chapter in chapters:
        base = chapter_dir_name(chapter.title)
        name, n = base, 1
        while name.casefold() in taken:
            n += 1
            name = f"{base} ({n})"
        if name != base:
            LOG.warning("Folder %s is already used; saving %s into %s", base, chapter.title.strip(), name)
        taken.add(name.casefold())
        names.append(name)
    return names


class PageDownloader:
    def __init__(
        self,
        page: Page,
        gate: ConsentGate,
        root: pathlib.Path,
        single_image: bool = False,
        progress: bool = True,
    ):
        self.page = page
        self.gate = gate
        self.root = pathlib.Path(root)
        self.single_image = single_image
        self.progress = progress

    async def download_all(self, chapters: Sequence[Chapter]) -> List[ChapterResult]:
        results: List[ChapterResult] = []
        folders = assign_directories(chapters)
        for number, (chapter, folder) in enumerate(zip(chapters, folders), start=1):
            LOG.info("=== Chapter %d/%d: %s ===", number, len(chapters), chapter.title.strip())
            try:
                res = await self.download_chapter(chapter, self.root / folder)
            except Exception as exc:
                LOG.exception("Chapter %s failed unexpectedly", chapter.title.strip())
                res = ChapterResult(
                    title=chapter.title,
                    directory=self.root / folder,
                    skipped=f"unexpected error: {exc}",
                )
            results.append(res)
        done = sum(1 for r in results if r.success)
        LOG.info("Finished: %d/%d chapters complete.", done, len(results))
        return results

    async def download_chapter(self, chapter: Chapter, out_dir: Optional[pathlib.Path] = None) -> ChapterResult:
        out_dir = out_dir or self.root / chapter_dir_name(chapter.title)
        out_dir.mkdir(parents=True, exist_ok=True)
        result = ChapterResult(title=chapter.title, directory=out_dir)

        await self.page.goto(chapter.link, wait_until="networkidle", timeout=NAVIGATION_TIMEOUT_MS)
        await self.gate.dismiss_once(self.page, ConsentContext.READER)

        if self.single_image:
            targets = [1]
        else:
            try:
                result.total_pages = await self.read_page_count()
            except PageCountError as exc:
                LOG.warning("Skipping chapter %s: %s", chapter.title.strip(), exc)
                result.skipped = str(exc)
                return result
            targets = list(range(1, result.total_pages + 1))
            LOG.info("Chapter %s has %d pages.", chapter.title.strip(), result.total_pages)

        failed = await self._run_pass(chapter, out_dir, targets, "Saving")
        if failed:
            LOG.info("Retrying %d failed pages: %s", len(failed), sorted(failed))
            failed = await self._run_pass(chapter, out_dir, sorted(failed), "Retrying")

        result.failed = sorted(failed)
        result.saved = [i for i in targets if i not in failed]
        if result.failed:
            LOG.error("Unrecoverable pages in %s: %s", chapter.title.strip(), result.failed)
        else:
            LOG.info("All %d pages of %s were saved.", len(targets), chapter.title.strip())
        return result

    async def read_page_count(self) -> int:
        try:
            indicator = await self.page.wait_for_selector(PAGE_INDICATOR_SELECTOR, timeout=PAGE_COUNT_TIMEOUT_MS)
        except Exception as exc:
            raise PageCountError(f"Page indicator not found: {exc}") from exc
        if indicator is None:
            raise PageCountError("Page indicator not found.")
        return parse_page_count(await indicator.text_content())

    async def _run_pass(
        self, chapter: Chapter, out_dir: pathlib.Path, indices: Sequence[int], desc: str
    ) -> Set[int]:
        failed: Set[int] = set()
        bar = tqdm(total=len(indices), ncols=80, desc=desc, disable=not self.progress)
        try:
            for index in indices:
                try:
                    await self.fetch_page(chapter, index, out_dir)
                except Exception as exc:
                    LOG.warning("Page %d of %s failed: %s", index, chapter.title.strip(), exc)
                    failed.add(index)
                bar.update(1)
        finally:
            bar.close()
        return failed

    async def fetch_page(self, chapter: Chapter, index: int, out_dir: pathlib.Path) -> pathlib.Path:
        page = self.page
        await page.goto(page_url(chapter.link, index), wait_until="networkidle", timeout=NAVIGATION_TIMEOUT_MS)
        # Wait on this page's own container; a stale container from the previous
        # page can still be attached right after navigation.
        img = await page.wait_for_selector(image_selector(index), timeout=CONTAINER_TIMEOUT_MS)
        if img is None:
            raise PageFetchError(f"No image for page {index}")
        src = (
            await img.get_attribute("src")
            or await img.get_attribute("data-original")
            or await img.get_attribute("data-src")
        )
        if not src:
            raise PageFetchError(f"Image for page {index} has no src")
        image_url = abs_url(src, page.url)

        response = await page.goto(image_url, timeout=NAVIGATION_TIMEOUT_MS)
        if response is None or not response.ok:
            status = response.status if response is not None else "no response"
            raise PageFetchError(f"Image request for page {index} failed ({status})")
        data = await response.body()

        name = SINGLE_IMAGE_NAME if self.single_image else f"{index}.jpg"
        out_file = out_dir / name
        out_file.write_bytes(data)
        LOG.debug("Saved %s (%d bytes)", out_file, len(data))
        return out_file
