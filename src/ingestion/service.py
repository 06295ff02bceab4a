import html
import io
import logging
from typing import Optional

import httpx
from docx import Document as DocxDocument
from docx.table import Table
from docx.text.paragraph import Paragraph
from fastapi.concurrency import run_in_threadpool

from src.contracts.schemas import RenderedVersion, VersionRead
from src.uploads.service import FileStorage

logger = logging.getLogger(__name__)

FETCH_TIMEOUT_SECONDS = 15.0


class DocumentRenderer:
    """Turns a contract version into HTML for display."""

    def __init__(self, files: FileStorage):
        self.files = files

    async def render(self, version: VersionRead, is_latest: bool) -> RenderedVersion:
        def result(source: str, body: str) -> RenderedVersion:
            return RenderedVersion(
                version_id=version.id,
                version_number=version.version_number,
                is_latest=is_latest,
                source=source,
                html=body,
            )

        if version.content and version.content.strip():
            return result("content", version.content)

        if not version.file_url:
            return result("empty", "")

        if not (version.file_name or version.file_url).lower().endswith(".docx"):
            label = html.escape(version.file_name or version.file_url)
            return result("file", f'<p><a href="{html.escape(version.file_url)}">{label}</a></p>')

        try:
            data = await self._fetch(version.file_url)
            body = await run_in_threadpool(self.docx_to_html, data)
        except Exception as e:
            logger.error(f"Could not render {version.file_url} for version {version.id}: {e}", exc_info=True)
            body = f'<p class="render-error">Could not render document: {html.escape(str(e))}</p>'
        return result("file", body)

    async def _fetch(self, url: str) -> bytes:
        path = self.files.local_path(url)
        if path is not None:
            return await run_in_threadpool(path.read_bytes)

        async with httpx.AsyncClient(timeout=FETCH_TIMEOUT_SECONDS, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.content

    @staticmethod
    def _heading_level(paragraph: Paragraph) -> Optional[int]:
        style = paragraph.style.name if paragraph.style is not None else ""
        if style == "Title":
            return 1
        if style.startswith("Heading "):
            suffix = style[len("Heading "):]
            if suffix.isdigit():
                return min(int(suffix), 6)
        return None

    def docx_to_html(self, file_content: bytes) -> str:
        """Headings, paragraphs and tables of a Word document, in document order."""
        doc = DocxDocument(io.BytesIO(file_content))
        parts = []
        for block in doc.iter_inner_content():
            if isinstance(block, Paragraph):
                text = block.text.strip()
                if not text:
                    continue
                level = self._heading_level(block)
                tag = f"h{level}" if level else "p"
                parts.append(f"<{tag}>{html.escape(text)}</{tag}>")
            elif isinstance(block, Table):
                rows = []
                for row in block.rows:
                    cells = "".join(f"<td>{html.escape(cell.text.strip())}</td>" for cell in row.cells)
                    rows.append(f"<tr>{cells}</tr>")
                parts.append(f"<table>{''.join(rows)}</table>")
        return "\n".join(parts)
