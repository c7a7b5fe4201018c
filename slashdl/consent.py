#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Adult-content warning popup.

The site shows the same warning on the chapter list and inside the reader, with a
different DOM in each place. Dismissal is best effort: a popup that never shows
up is the normal case once the account has accepted it.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from playwright.async_api import Page

LOG = logging.getLogger("slashdl.consent")

HEADER_TIMEOUT_MS = 15_000
WARNING_TITLES = frozenset({"Attention", "Warning", "Внимание", "Предупреждение"})


class ConsentContext(enum.Enum):
    CATALOG = "catalog"
    READER = "reader"


class ConsentOutcome(enum.Enum):
    HANDLED = "handled"
    NOT_PRESENT = "not-present"


@dataclass(frozen=True)
class ConsentLocators:
    header: str
    checkbox: str
    confirm: str


_CATALOG_POPUP = "body > div.popup-root > div:nth-child(2) > div.popup__inner > div"
_READER_POPUP = "div.reader-popup .popup__inner"

LOCATORS: Dict[ConsentContext, ConsentLocators] = {
    ConsentContext.CATALOG: ConsentLocators(
        header=f"{_CATALOG_POPUP} > div.popup-header > div",
        checkbox=f"{_CATALOG_POPUP} > div.popup-body > div.form-group._offset > label > input",
        confirm=f"{_CATALOG_POPUP} > div.popup-body > div.flex.btns._stretch > button.btn.is-filled.variant-primary.size-lg",
    ),
    ConsentContext.READER: ConsentLocators(
        header=f"{_READER_POPUP} .popup-header .popup-title",
        checkbox=f"{_READER_POPUP} .popup-body label.form-checkbox > input",
        confirm=f"{_READER_POPUP} .popup-body .btns button.variant-primary",
    ),
}


class ConsentGate:
    def __init__(self, timeout_ms: int = HEADER_TIMEOUT_MS):
        self.timeout_ms = timeout_ms
        self._handled: Dict[ConsentContext, bool] = {kind: False for kind in ConsentContext}

    def attempted(self, kind: ConsentContext) -> bool:
        return self._handled[kind]

    async def dismiss(self, page: Page, kind: ConsentContext) -> ConsentOutcome:
        locators = LOCATORS[kind]
        LOG.info("Checking for the %s warning popup...", kind.value)
        try:
            header = await page.wait_for_selector(locators.header, state="visible", timeout=self.timeout_ms)
            text = (await header.text_content() or "").strip() if header else ""
            if text not in WARNING_TITLES:
                LOG.info("No warning popup (header text: %r).", text)
                return ConsentOutcome.NOT_PRESENT

            LOG.info("Found warning popup titled %r.", text)
            await page.click(locators.checkbox)
            LOG.info("Adult content checkbox ticked.")
            await page.click(locators.confirm)
            LOG.info("Warning popup confirmed.")
            return ConsentOutcome.HANDLED
        except Exception as exc:
            LOG.info("Warning popup not handled (%s): %s", kind.value, exc)
            return ConsentOutcome.NOT_PRESENT

    async def dismiss_once(self, page: Page, kind: ConsentContext) -> Optional[ConsentOutcome]:
        """Dismiss on the first call for ``kind``; later calls return None untouched."""
        if self._handled[kind]:
            return None
        self._handled[kind] = True
        return await self.dismiss(page, kind)
