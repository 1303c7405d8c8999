"""Reduce policy pages to normalized plain text for hashing and prompting."""

from __future__ import annotations

import asyncio
import logging
import re

from bs4 import BeautifulSoup, FeatureNotFound
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

logger = logging.getLogger(__name__)

MIN_DISTILLED_CHARS = 200
RENDER_LOAD_TIMEOUT = 15.0
RENDER_SETTLE_DELAY = 1.2

ZERO_WIDTH_PATTERN = re.compile(r"[\u200b\u200c\u200d\u2060\ufeff]")
HORIZONTAL_SPACE_PATTERN = re.compile(r"[\t\f\r\xa0 ]+")
LINE_BREAK_PATTERN = re.compile(r"\s*\n\s*")
HIDDEN_TAGS = ["script", "style", "noscript", "template"]

BODY_TEXT_SCRIPT = "() => document.body ? (document.body.innerText || document.body.textContent || '') : ''"


def normalize_whitespace(text: str) -> str:
    """Collapse horizontal whitespace and repeated line breaks, then trim."""
    cleaned = ZERO_WIDTH_PATTERN.sub("", str(text))
    cleaned = HORIZONTAL_SPACE_PATTERN.sub(" ", cleaned)
    cleaned = LINE_BREAK_PATTERN.sub("\n", cleaned)
    return cleaned.strip()


def distill(markup_or_text: str) -> str:
    """Extract the visible body text of an HTML document (or plain text)."""
    if not isinstance(markup_or_text, str) or not markup_or_text:
        return ""
    try:
        soup = BeautifulSoup(markup_or_text, "lxml")
    except FeatureNotFound:
        logger.warning("lxml parser unavailable; using undistilled input")
        return markup_or_text

    for tag in soup.find_all(HIDDEN_TAGS):
        tag.decompose()
    container = soup.body or soup
    return normalize_whitespace(container.get_text(separator=" "))


async def distill_rendered(
    url: str,
    *,
    load_timeout_s: float = RENDER_LOAD_TIMEOUT,
    settle_delay_s: float = RENDER_SETTLE_DELAY,
) -> str:
    """Render a JavaScript-heavy page in a throwaway browser and return its visible text.

    The load wait is bounded; once it elapses extraction proceeds with whatever
    the page has rendered. Failures yield an empty string.
    """
    try:
        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=True)
            try:
                context = await browser.new_context()
                page = await context.new_page()
                try:
                    await page.goto(url, wait_until="load", timeout=load_timeout_s * 1000)
                except PlaywrightTimeoutError:
                    logger.info("Render of %s did not finish loading in %.1fs", url, load_timeout_s)
                await asyncio.sleep(settle_delay_s)
                text = await page.evaluate(BODY_TEXT_SCRIPT)
            finally:
                await browser.close()
    except PlaywrightError as exc:
        logger.warning("Rendered distillation failed for %s: %s", url, exc)
        return ""
    return normalize_whitespace(text or "")
