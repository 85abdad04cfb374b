"""Deliverable PDF packaging.

Renders the deliverable from a fixed HTML template (title, order id,
content body) and converts it to PDF with WeasyPrint. The file lands at
``<DOWNLOADS_DIR>/bundle-<order id>.pdf`` and is served by whatever file
server is mounted on that directory under ``/downloads/``.
"""

import contextlib
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from pathlib import Path
from typing import Callable, Optional

from django.conf import settings
from django.template.loader import render_to_string

from .domain import Order, PackagerPort
from .errors import PackagingError

log = logging.getLogger(__name__)

# WeasyPrint is imported lazily inside render_pdf(); importing it pulls in
# the whole Pango stack.


def render_pdf(html: str) -> bytes:
    """Convert an HTML document to PDF bytes with WeasyPrint."""
    try:
        from weasyprint import HTML
    except ImportError as e:
        raise PackagingError(
            "WeasyPrint is required for PDF generation. Install with: pip install weasyprint"
        ) from e
    return HTML(string=html).write_pdf()


class PdfPackager(PackagerPort):
    """Packager writing one PDF per order into the downloads directory.

    Rendering and writing run on a worker thread bounded by
    ``PACKAGING_TIMEOUT_SECS``. Files are written to a temporary name and
    renamed into place, so a reader never sees a half-written deliverable.
    """

    TEMPLATE = "orders/deliverable.html"
    TITLE = "Ultimate Digital Bundle - Deliverable"
    PUBLIC_PREFIX = "/downloads"

    def __init__(
        self,
        downloads_dir: str | os.PathLike | None = None,
        timeout: float | None = None,
        renderer: Optional[Callable[[str], bytes]] = None,
    ):
        self.downloads_dir = Path(downloads_dir or settings.DOWNLOADS_DIR)
        self.timeout = timeout or getattr(settings, "PACKAGING_TIMEOUT_SECS", 30.0)
        self.renderer = renderer or render_pdf

    def get_filename(self, order: Order) -> str:
        return f"bundle-{order.id}.pdf"

    def render_html(self, order: Order, content: str) -> str:
        return render_to_string(
            self.TEMPLATE,
            {"title": self.TITLE, "order_id": order.id, "content": content or "No content"},
        )

    def package(self, order: Order, content: str) -> str:
        filename = self.get_filename(order)
        html = self.render_html(order, content)
        abandoned = threading.Event()

        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="packager")
        future = pool.submit(self._write, filename, html, abandoned)
        try:
            future.result(timeout=self.timeout)
        except FuturesTimeout:
            abandoned.set()
            raise PackagingError(f"packaging exceeded {self.timeout}s", order_id=order.id)
        finally:
            pool.shutdown(wait=False)

        log.info("deliverable written", extra={"order_id": order.id, "stage": "packaging", "file": filename})
        return f"{self.PUBLIC_PREFIX}/{filename}"

    def _write(self, filename: str, html: str, abandoned: threading.Event) -> None:
        try:
            pdf = self.renderer(html)
        except PackagingError:
            raise
        except Exception as e:
            raise PackagingError(f"rendering failed: {e}") from e
        if abandoned.is_set():
            return

        target = self.downloads_dir / filename
        partial = target.with_name(filename + ".part")
        try:
            self.downloads_dir.mkdir(parents=True, exist_ok=True)
            partial.write_bytes(pdf)
            os.replace(partial, target)
        except OSError as e:
            with contextlib.suppress(OSError):
                partial.unlink(missing_ok=True)
            raise PackagingError(f"cannot write deliverable: {e.strerror or e}") from e
