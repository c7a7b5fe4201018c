#!/usr/bin/env python3
# -*- coding: utf-8 -*-
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List

from playwright.async_api import BrowserContext, Page, async_playwright

from .auth import authenticate
from .catalog import discover_catalog
from .config import Settings
from .consent import ConsentGate
from .pages import ChapterResult, PageDownloader
from .store import CatalogStore, Chapter

LOG = logging.getLogger("slashdl.pipeline")

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124 Safari/537.36"
)


@dataclass(frozen=True)
class RunOptions:
    refresh_catalog: bool = False
    exhaustive_scroll: bool = False
    single_image: bool = False


async def load_or_discover(
    page: Page, settings: Settings, store: CatalogStore, gate: ConsentGate, options: RunOptions
) -> List[Chapter]:
    if options.refresh_catalog:
        LOG.info("Ignoring cached chapter list %s; it is replaced once discovery finishes.", store.path)
        return await discover_catalog(page, settings.manga_link, store, gate, exhaustive=options.exhaustive_scroll)
    chapters = store.load()
    if chapters is not None:
        LOG.info("%s found, loading %d chapters from it.", store.path.name, len(chapters))
        return chapters
    LOG.info("%s not found, collecting chapters from the site.", store.path.name)
    return await discover_catalog(page, settings.manga_link, store, gate, exhaustive=options.exhaustive_scroll)


async def acquire(page: Page, settings: Settings, options: RunOptions = RunOptions()) -> List[ChapterResult]:
    """Log in, resolve the chapter list and download every page, all on ``page``."""
    store = CatalogStore(settings.chapters_file)
    gate = ConsentGate()

    await authenticate(page, settings.credentials, login_url=settings.login_url)
    chapters = await load_or_discover(page, settings, store, gate, options)

    downloader = PageDownloader(page, gate, settings.output_dir, single_image=options.single_image)
    return await downloader.download_all(chapters)


def run_download_job(settings: Settings, options: RunOptions = RunOptions()) -> List[ChapterResult]:
    async def runner() -> List[ChapterResult]:
        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=settings.headless)
            ctx: BrowserContext = await browser.new_context(user_agent=USER_AGENT)
            try:
                page = await ctx.new_page()
                return await acquire(page, settings, options)
            finally:
                await ctx.close()
                await browser.close()

    return asyncio.run(runner())
