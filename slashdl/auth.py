#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Login flow for slashlib: credentials form, secondary confirmation, network idle.

from __future__ import annotations

import asyncio
import enum
import logging
import re
from typing import Awaitable, Callable, Optional

from playwright.async_api import Error as PlaywrightError, Page

from .config import DEFAULT_LOGIN_URL, Credentials

LOG = logging.getLogger("slashdl.auth")

LOGIN_INPUT_SELECTOR = 'input[name="login"]'
PASSWORD_INPUT_SELECTOR = 'input[name="password"]'
SUBMIT_BUTTON_SELECTOR = 'button.btn.btn_variant-primary.btn_filled.btn_block.btn_size-lg[type="submit"]'
CONFIRM_BUTTON_SELECTOR = "button.btn:nth-child(5)"

NAVIGATION_TIMEOUT_MS = 60_000
MAX_ATTEMPTS = 3
RETRY_DELAY_SEC = 2.0

NET_ERROR_RE = re.compile(r"net::(ERR_[A-Z_]+)")
RETRYABLE_NET_ERRORS = frozenset({"ERR_CONNECTION_RESET"})


class AuthError(RuntimeError):
    """Login failed for a non-transient reason or ran out of attempts."""


class RetryDecision(enum.Enum):
    RETRY = "retry"
    FATAL = "fatal"


def net_error_code(exc: BaseException) -> Optional[str]:
    message = getattr(exc, "message", None) or str(exc)
    m = NET_ERROR_RE.search(message or "")
    return m.group(1) if m else None


def classify_auth_failure(exc: BaseException) -> RetryDecision:
    """Only a reset connection is worth another login attempt."""
    if isinstance(exc, ConnectionResetError):
        return RetryDecision.RETRY
    if isinstance(exc, PlaywrightError) and net_error_code(exc) in RETRYABLE_NET_ERRORS:
        return RetryDecision.RETRY
    return RetryDecision.FATAL


async def _login_once(page: Page, credentials: Credentials, login_url: str) -> None:
    await page.goto(login_url, wait_until="networkidle", timeout=NAVIGATION_TIMEOUT_MS)

    await page.wait_for_selector(LOGIN_INPUT_SELECTOR, state="visible")
    await page.fill(LOGIN_INPUT_SELECTOR, credentials.username)

    await page.wait_for_selector(PASSWORD_INPUT_SELECTOR, state="visible")
    await page.fill(PASSWORD_INPUT_SELECTOR, credentials.password)

    async with page.expect_navigation(wait_until="networkidle", timeout=NAVIGATION_TIMEOUT_MS):
        await page.click(SUBMIT_BUTTON_SELECTOR)

    await page.wait_for_selector(CONFIRM_BUTTON_SELECTOR, state="visible")
    async with page.expect_navigation(wait_until="networkidle", timeout=NAVIGATION_TIMEOUT_MS):
        await page.click(CONFIRM_BUTTON_SELECTOR)

    await page.wait_for_load_state("networkidle")


async def authenticate(
    page: Page,
    credentials: Credentials,
    login_url: str = DEFAULT_LOGIN_URL,
    attempts: int = MAX_ATTEMPTS,
    delay: float = RETRY_DELAY_SEC,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        LOG.info("Logging in as %s (attempt %d/%d)...", credentials.username, attempt, attempts)
        try:
            await _login_once(page, credentials, login_url)
        except Exception as exc:
            if classify_auth_failure(exc) is RetryDecision.FATAL:
                LOG.error("Login failed: %s", exc)
                raise AuthError(f"Login failed: {exc}") from exc
            if attempt >= attempts:
                LOG.error("Login failed after %d attempts: %s", attempts, exc)
                raise AuthError(f"Login failed after {attempts} attempts: {exc}") from exc
            LOG.warning("Connection reset during login (attempt %d); retrying in %.1fs.", attempt, delay)
            await sleep(delay)
        else:
            LOG.info("Logged in successfully.")
            return
