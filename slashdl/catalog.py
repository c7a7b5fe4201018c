#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Chapter list discovery. The list is a vue-recycle-scroller, so only the rows in
# view exist in the DOM; we scroll in fixed steps and sample what is rendered.

from __future__ import annotations

import asyncio
import json
import logging
from typing import Awaitable, Callable, Dict, List

from playwright.async_api import Page

from .consent import ConsentContext, ConsentGate
from .store import CatalogStore, Chapter
from .utils import with_query

LOG = logging.getLogger("slashdl.catalog")

NAVIGATION_TIMEOUT_MS = 60_000
SCROLL_INCREMENT = 350
SCROLL_PAUSE_SEC = 2.0
EXHAUSTIVE_STABLE_PASSES = 3
EXHAUSTIVE_MAX_PASSES = 200

ROW_LINK_SELECTOR = ".vue-recycle-scroller__item-view a"

SCROLL_HEIGHT_JS = "() => document.body.scrollHeight"
SCROLL_BY_JS = "(step) => window.scrollBy(0, step)"
COLLECT_ROWS_JS = """
(selector) => Array.from(document.querySelectorAll(selector)).map(a => ({
  title: a.textContent,
  link: a.href,
}))
"""


async def _collect_rows(page: Page, found: Dict[str, Chapter]) -> int:
    """Record rendered rows not seen yet. Keyed on the trimmed title; the first row keeps its text."""
    rows = await page.evaluate(COLLECT_ROWS_JS, ROW_LINK_SELECTOR)
    LOG.debug("Rendered rows: %s", json.dumps(rows, ensure_ascii=False))
    added = 0
    for row in rows or []:
        title = row.get("title") or ""
        key = title.strip()
        if not key or key in found:
            continue
        found[key] = Chapter(title=title, link=row.get("link") or "")
        LOG.info("Adding chapter %s -> %s", key, found[key].link)
        added += 1
    return added


async def discover_catalog(
    page: Page,
    link: str,
    store: CatalogStore,
    gate: ConsentGate,
    increment: int = SCROLL_INCREMENT,
    settle: float = SCROLL_PAUSE_SEC,
    exhaustive: bool = False,
    max_passes: int = EXHAUSTIVE_MAX_PASSES,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> List[Chapter]:
    """Scroll the chapter list, collect unique chapters and save them to ``store``.

    Termination compares an offset that grows by ``increment`` per pass with the
    current ``scrollHeight``. If the list keeps growing faster than the offset,
    rows can be missed; ``exhaustive`` keeps scrolling until the height and the
    set of titles stop changing, for at most ``max_passes`` extra passes.
    """
    LOG.info("Collecting chapters...")
    await page.goto(with_query(link, section="chapters"), wait_until="networkidle", timeout=NAVIGATION_TIMEOUT_MS)

    await gate.dismiss(page, ConsentContext.CATALOG)

    found: Dict[str, Chapter] = {}
    offset = 0
    scroll_height = await page.evaluate(SCROLL_HEIGHT_JS)

    while offset < scroll_height:
        await page.evaluate(SCROLL_BY_JS, increment)
        await sleep(settle)
        await _collect_rows(page, found)
        scroll_height = await page.evaluate(SCROLL_HEIGHT_JS)
        offset += increment

    if exhaustive:
        stable = passes = 0
        while stable < EXHAUSTIVE_STABLE_PASSES:
            if passes >= max_passes:
                LOG.warning("Chapter list still changing after %d extra passes; stopping.", passes)
                break
            passes += 1
            await page.evaluate(SCROLL_BY_JS, increment)
            await sleep(settle)
            added = await _collect_rows(page, found)
            height = await page.evaluate(SCROLL_HEIGHT_JS)
            if added or height != scroll_height:
                stable = 0
            else:
                stable += 1
            scroll_height = height

    chapters = list(found.values())
    LOG.info("Found %d chapters.", len(chapters))
    store.save(chapters)
    return chapters
