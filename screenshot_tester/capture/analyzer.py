"""Visual analyzer: reads page state into snapshots and scores change between them."""

from __future__ import annotations

import logging

from playwright.async_api import Page

from screenshot_tester.models.snapshot import VisualDiff, VisualSnapshot

logger = logging.getLogger(__name__)

# Element count change (percent) above which two samples differ significantly
ELEMENT_CHANGE_THRESHOLD = 20
# Text change (percent) above which two samples differ significantly
TEXT_CHANGE_THRESHOLD = 30
# Elements below this count mean nothing meaningful has rendered yet
MIN_RENDERED_ELEMENTS = 10

_ERROR_CAPTURE_SCRIPT = """
(() => {
    window.__capturedErrors = [];
    window.addEventListener('error', (event) => {
        window.__capturedErrors.push(event.message);
    });
    const originalConsoleError = console.error;
    console.error = (...args) => {
        window.__capturedErrors.push(args.join(' '));
        originalConsoleError.apply(console, args);
    };
})();
"""

_SNAPSHOT_SCRIPT = """(minElements) => {
    const doc = document;
    const body = doc.body;

    const textContent = body ? body.innerText.trim() : '';
    const hasContent = textContent.length > 0;
    const elementCount = doc.querySelectorAll('*').length;
    const imageCount = doc.querySelectorAll('img').length;

    // Short error texts only; long ones are usually stack dumps
    const errorMessages = [];
    doc.querySelectorAll('.error, .alert-danger, [class*="error"], [id*="error"]').forEach(el => {
        const text = el.innerText ? el.innerText.trim() : '';
        if (text && text.length < 200) {
            errorMessages.push(text);
        }
    });
    const capturedErrors = window.__capturedErrors || [];

    const loadingSelectors = [
        '.spinner', '.loader', '.loading',
        '[class*="spinner"]', '[class*="loader"]', '[class*="loading"]',
        '.progress', '.skeleton',
        'div[role="progressbar"]'
    ];
    const loadingIndicators = [];
    loadingSelectors.forEach(selector => {
        const count = doc.querySelectorAll(selector).length;
        if (count > 0) {
            loadingIndicators.push(`${selector} (${count})`);
        }
    });
    if (textContent.toLowerCase().includes('loading')) {
        loadingIndicators.push('Loading text detected');
    }

    return {
        has_content: hasContent,
        is_blank: !hasContent || elementCount < minElements,
        text_content: textContent.substring(0, 500),
        element_count: elementCount,
        image_count: imageCount,
        has_errors: errorMessages.length > 0 || capturedErrors.length > 0,
        error_messages: [...errorMessages, ...capturedErrors],
        loading_indicators: loadingIndicators,
    };
}"""

_TIMINGS_SCRIPT = """() => {
    const entries = performance.getEntriesByType ? performance.getEntriesByType('navigation') : [];
    const nav = entries[0];
    if (!nav) return {};
    return {
        domContentLoaded: Math.round(nav.domContentLoadedEventEnd - nav.domContentLoadedEventStart),
        load: Math.round(nav.loadEventEnd - nav.loadEventStart),
        firstPaint: Math.round(nav.responseStart - nav.requestStart),
        domInteractive: Math.round(nav.domInteractive - nav.responseEnd),
    };
}"""


class VisualAnalyzer:
    """Produces VisualSnapshots from a live page and diffs consecutive snapshots."""

    async def inject_error_capture(self, page: Page) -> None:
        """Install the in-page error buffer. Must run before navigation."""
        try:
            await page.add_init_script(_ERROR_CAPTURE_SCRIPT)
        except Exception as e:
            logger.warning("Failed to inject error capture: %s", e)

    async def analyze_page(self, page: Page) -> VisualSnapshot:
        """Read the page's current visual state.

        A page that cannot be evaluated (crashed, closed mid-navigation) yields a
        blank snapshot carrying an error message instead of raising.
        """
        try:
            data = await page.evaluate(_SNAPSHOT_SCRIPT, MIN_RENDERED_ELEMENTS)
        except Exception as e:
            logger.warning("Analysis failed: %s", e)
            return VisualSnapshot(
                has_content=False,
                is_blank=True,
                has_errors=True,
                error_messages=["Failed to analyze page"],
            )
        snapshot = VisualSnapshot(**data)
        snapshot.performance_timings = await self._get_performance_timings(page)
        return snapshot

    async def _get_performance_timings(self, page: Page) -> dict:
        try:
            return await page.evaluate(_TIMINGS_SCRIPT) or {}
        except Exception:
            return {}

    def compare_snapshots(self, previous: VisualSnapshot, current: VisualSnapshot) -> VisualDiff:
        """Score the change from ``previous`` to ``current``."""
        changed: list[str] = []

        if previous.is_blank and not current.is_blank:
            changed.append("Content appeared")
        if not previous.is_blank and current.is_blank:
            changed.append("Content disappeared")

        element_change = abs(current.element_count - previous.element_count)
        if previous.element_count > 0:
            element_change_pct = element_change / previous.element_count * 100
        else:
            element_change_pct = 100.0
        if element_change_pct > ELEMENT_CHANGE_THRESHOLD:
            changed.append(f"Element count changed by {round(element_change_pct)}%")

        if previous.loading_indicators and not current.loading_indicators:
            changed.append("Loading indicators removed")
        if not previous.loading_indicators and current.loading_indicators:
            changed.append("Loading indicators appeared")

        if not previous.has_errors and current.has_errors:
            changed.append("Errors detected")

        change_percentage = 100 - text_similarity(previous.text_content, current.text_content)

        return VisualDiff(
            has_significant_change=bool(changed) or change_percentage > TEXT_CHANGE_THRESHOLD,
            change_percentage=change_percentage,
            changed_elements=changed,
        )


def text_similarity(a: str, b: str) -> float:
    """Similarity of two strings in percent, from normalized edit distance."""
    if a == b:
        return 100.0
    if not a or not b:
        return 0.0
    longer = max(len(a), len(b))
    return (longer - levenshtein_distance(a, b)) / longer * 100


def levenshtein_distance(a: str, b: str) -> int:
    """Minimum number of single-character edits turning ``a`` into ``b``."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            cost = 0 if ca == cb else 1
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + cost,
            ))
        previous = current
    return previous[-1]
