"""
HTML -> PDF conversion with headless Chromium.

Routes are sync, so this uses the Playwright sync API and launches a fresh
browser per document.
"""
from typing import Optional

import structlog
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeout
from playwright.sync_api import sync_playwright

from ..config import settings
from ..errors import ServiceError


logger = structlog.get_logger(__name__)


class RenderError(ServiceError):
    """The headless browser could not produce a PDF."""
    status_code = 502


class PdfRenderer:
    def render_pdf(self, html: str) -> bytes:
        raise NotImplementedError


class PlaywrightPdfRenderer(PdfRenderer):
    def __init__(
        self,
        page_format: Optional[str] = None,
        margin_mm: Optional[int] = None,
        timeout_ms: Optional[int] = None,
        executable_path: Optional[str] = None,
    ):
        self.page_format = page_format or settings.pdf_page_format
        self.margin_mm = settings.pdf_margin_mm if margin_mm is None else margin_mm
        self.timeout_ms = timeout_ms or settings.pdf_render_timeout_ms
        self.executable_path = executable_path or settings.chromium_executable

    def render_pdf(self, html: str) -> bytes:
        margin = f"{self.margin_mm}mm"
        try:
            with sync_playwright() as p:
                browser = p.chromium.launch(
                    headless=True,
                    executable_path=self.executable_path,
                    args=["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage", "--disable-gpu"],
                )
                try:
                    page = browser.new_page()
                    page.set_content(html, wait_until="networkidle", timeout=self.timeout_ms)
                    pdf = page.pdf(
                        format=self.page_format,
                        print_background=True,
                        margin={"top": margin, "right": margin, "bottom": margin, "left": margin},
                    )
                finally:
                    browser.close()
        except PlaywrightTimeout as exc:
            logger.error("pdf_render_timeout", timeout_ms=self.timeout_ms)
            raise RenderError(f"PDF rendering timed out after {self.timeout_ms}ms") from exc
        except PlaywrightError as exc:
            logger.error("pdf_render_failed", error=str(exc))
            raise RenderError(f"PDF rendering failed: {exc}") from exc
        logger.info("pdf_rendered", bytes=len(pdf))
        return pdf


def get_pdf_renderer() -> PdfRenderer:
    return PlaywrightPdfRenderer()
