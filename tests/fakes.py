"""In-memory stand-ins for the Playwright page used by the download pipeline."""

from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager, contextmanager
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import parse_qs, urlparse, urlunparse

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from slashdl import catalog, pages


class FakeElement:
    def __init__(self, text: Optional[str] = None, attrs: Optional[Dict[str, str]] = None) -> None:
        self.text = text
        self.attrs = attrs or {}

    async def text_content(self) -> Optional[str]:
        return self.text

    async def get_attribute(self, name: str) -> Optional[str]:
        return self.attrs.get(name)


class FakeResponse:
    def __init__(self, data: bytes = b"", status: int = 200) -> None:
        self.data = data
        self.status = status

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    async def body(self) -> bytes:
        return self.data


class RecordingSleep:
    """Awaitable replacement for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


@contextmanager
def preserved_root_logging():
    """Undo the handlers and levels that ``cli.main`` installs on the root logger."""
    root = logging.getLogger()
    pkg = logging.getLogger("slashdl")
    handlers, level, pkg_level = list(root.handlers), root.level, pkg.level
    try:
        yield
    finally:
        for handler in list(root.handlers):
            if handler not in handlers:
                root.removeHandler(handler)
                handler.close()
        root.setLevel(level)
        pkg.setLevel(pkg_level)


class FakeConsentPage:
    """Page that shows (or never shows) the warning popup header."""

    def __init__(self, header_text: Optional[str]) -> None:
        self.header_text = header_text
        self.clicks: List[str] = []

    async def wait_for_selector(self, selector: str, **kwargs: Any) -> FakeElement:
        if self.header_text is None:
            raise PlaywrightTimeoutError(f"Timeout waiting for {selector}")
        return FakeElement(self.header_text)

    async def click(self, selector: str, **kwargs: Any) -> None:
        self.clicks.append(selector)


class FakeCatalogPage:
    """Virtualised list: only rows near the current scroll position are rendered.

    ``rows`` are ``(title, link)`` pairs laid out ``row_height`` pixels apart.
    ``late_rows`` maps a collect-call number to rows that start rendering from
    that call on, without changing the reported height.
    """

    def __init__(
        self,
        rows: Sequence[Tuple[str, str]],
        row_height: int = 100,
        viewport: int = 700,
        buffer: int = 400,
        late_rows: Optional[Dict[int, Sequence[Tuple[str, str]]]] = None,
    ) -> None:
        self.rows = list(rows)
        self.row_height = row_height
        self.viewport = viewport
        self.buffer = buffer
        self.late_rows = dict(late_rows or {})
        self.height = len(self.rows) * row_height
        self.scroll_y = 0
        self.collect_calls = 0
        self.extra: List[Tuple[str, str]] = []
        self.visits: List[str] = []
        self.url = ""

    async def goto(self, url: str, **kwargs: Any) -> FakeResponse:
        self.visits.append(url)
        self.url = url
        return FakeResponse()

    async def wait_for_selector(self, selector: str, **kwargs: Any) -> FakeElement:
        raise PlaywrightTimeoutError(f"Timeout waiting for {selector}")

    async def click(self, selector: str, **kwargs: Any) -> None:
        raise AssertionError("no popup expected")

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        if script == catalog.SCROLL_HEIGHT_JS:
            return self.height
        if script == catalog.SCROLL_BY_JS:
            self.scroll_y += arg
            return None
        if script == catalog.COLLECT_ROWS_JS:
            assert arg == catalog.ROW_LINK_SELECTOR
            self.collect_calls += 1
            self.extra.extend(self.late_rows.pop(self.collect_calls, ()))
            top, bottom = self.scroll_y - self.buffer, self.scroll_y + self.viewport + self.buffer
            visible = [
                {"title": title, "link": link}
                for i, (title, link) in enumerate(self.rows)
                if top <= i * self.row_height < bottom
            ]
            visible.extend({"title": t, "link": l} for t, l in self.extra)
            return visible
        raise AssertionError(f"unexpected script: {script!r}")


IMAGE_HOST = "https://img.test"
INDEX_RE = re.compile(r"\[data-page='(\d+)'\]")


class FakeReaderPage:
    """Chapter reader.

    ``chapters`` maps a chapter link to the page indicator text (None when the
    indicator never renders). ``fail_plan`` maps ``(link, page)`` to how many
    waits for that page's image time out before it shows up. Images are only
    reachable through a wait on the page-indexed selector, and carry their URL
    in ``src_attr``.
    """

    def __init__(
        self,
        chapters: Dict[str, Optional[str]],
        fail_plan: Optional[Dict[Tuple[str, int], int]] = None,
        broken_images: Optional[Dict[Tuple[str, int], int]] = None,
        src_attr: str = "src",
    ) -> None:
        self.chapters = chapters
        self.src_attr = src_attr
        self.fail_plan = dict(fail_plan or {})
        self.broken_images = dict(broken_images or {})
        self.url = ""
        self.visits: List[str] = []
        self.waited: List[str] = []
        self.clicks: List[str] = []

    def _location(self) -> Tuple[str, int]:
        p = urlparse(self.url)
        index = int(parse_qs(p.query).get("p", ["1"])[0])
        return urlunparse(p._replace(query="", fragment="")), index

    async def goto(self, url: str, **kwargs: Any) -> FakeResponse:
        self.visits.append(url)
        self.url = url
        if url.startswith(IMAGE_HOST):
            _, chapter_key, name = url.rsplit("/", 2)
            index = int(name.split(".")[0])
            key = (f"https://site.test/read/{chapter_key}", index)
            if self.broken_images.get(key, 0) > 0:
                self.broken_images[key] -= 1
                return FakeResponse(status=503)
            return FakeResponse(f"{chapter_key}-{index}".encode())
        return FakeResponse(b"<html></html>")

    async def wait_for_selector(self, selector: str, **kwargs: Any) -> FakeElement:
        self.waited.append(selector)
        if selector == pages.PAGE_INDICATOR_SELECTOR:
            text = self.chapters.get(self._location()[0])
            if text is None:
                raise PlaywrightTimeoutError(f"Timeout waiting for {selector}")
            return FakeElement(text)
        m = INDEX_RE.search(selector)
        if m and selector == pages.image_selector(int(m.group(1))):
            wanted = int(m.group(1))
            link, current = self._location()
            key = (link, wanted)
            if wanted == current and self.fail_plan.get(key, 0) > 0:
                self.fail_plan[key] -= 1
            elif wanted == current:
                chapter_key = link.rsplit("/", 1)[1]
                return FakeElement(attrs={self.src_attr: f"{IMAGE_HOST}/{chapter_key}/{wanted}.jpg"})
        raise PlaywrightTimeoutError(f"Timeout waiting for {selector}")

    async def click(self, selector: str, **kwargs: Any) -> None:
        self.clicks.append(selector)


class FakeLoginPage:
    """Login form. ``failures`` lists, per attempt, the exception raised by goto (None = ok)."""

    def __init__(self, failures: Sequence[Optional[BaseException]] = ()) -> None:
        self.failures = list(failures)
        self.attempts = 0
        self.calls: List[Tuple[str, ...]] = []

    async def goto(self, url: str, **kwargs: Any) -> FakeResponse:
        self.attempts += 1
        self.calls.append(("goto", url))
        if self.failures:
            exc = self.failures.pop(0)
            if exc is not None:
                raise exc
        return FakeResponse()

    async def wait_for_selector(self, selector: str, **kwargs: Any) -> FakeElement:
        self.calls.append(("wait", selector))
        return FakeElement()

    async def fill(self, selector: str, value: str, **kwargs: Any) -> None:
        self.calls.append(("fill", selector, value))

    async def click(self, selector: str, **kwargs: Any) -> None:
        self.calls.append(("click", selector))

    @asynccontextmanager
    async def expect_navigation(self, **kwargs: Any):
        self.calls.append(("expect_navigation",))
        yield None

    async def wait_for_load_state(self, state: str = "load", **kwargs: Any) -> None:
        self.calls.append(("load_state", state))
