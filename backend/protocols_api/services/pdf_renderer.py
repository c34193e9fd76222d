"""
Clinical history PDF rendering (PyMuPDF).

Layout of the generated document:
- "HISTORIA CLÍNICA" heading, centered
- header lines (protocol, visit, date)
- the narrative text, justified, flowing over as many pages as needed
- the physician's signature block at the bottom of the last page
- a diagonal line voiding the unused space between the text and the signature
"""

import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import fitz  # PyMuPDF

logger = logging.getLogger(__name__)


@dataclass
class Signature:
    """Physician signing the document."""
    name: str
    license_number: Optional[str] = None
    image_data_url: Optional[str] = None  # data:image/...;base64,...


@dataclass
class ClinicalHistoryDocument:
    title: str
    header_lines: List[str] = field(default_factory=list)
    body: str = ""
    signature: Optional[Signature] = None


def decode_data_url(data_url: str) -> Optional[bytes]:
    """Image bytes of a base64 data URL, or None when it cannot be decoded."""
    if not data_url or "," not in data_url:
        return None
    try:
        return base64.b64decode(data_url.split(",", 1)[1], validate=True)
    except (binascii.Error, ValueError):
        return None


class ClinicalHistoryRenderer:
    """Renders a ClinicalHistoryDocument to PDF bytes."""

    PAGE_WIDTH, PAGE_HEIGHT = fitz.paper_size("a4")
    MARGIN = 50
    TITLE_SIZE = 16
    HEADER_SIZE = 12
    BODY_SIZE = 11
    LINE_GAP = 5
    BODY_FONT = "helv"
    BOLD_FONT = "hebo"
    TEXT_COLOR = (0, 0, 0)
    VOID_COLOR = (0.4, 0.4, 0.4)
    SIGNATURE_IMAGE_HEIGHT = 70
    SIGNATURE_BLOCK_HEIGHT = 110
    MIN_VOID_HEIGHT = 20

    @property
    def text_width(self) -> float:
        return self.PAGE_WIDTH - 2 * self.MARGIN

    @property
    def bottom(self) -> float:
        return self.PAGE_HEIGHT - self.MARGIN

    def render(self, document: ClinicalHistoryDocument) -> bytes:
        doc = fitz.open()
        page = self._new_page(doc)
        y = self.MARGIN

        # Heading
        y += self.TITLE_SIZE
        title_width = fitz.get_text_length(document.title, fontname=self.BOLD_FONT, fontsize=self.TITLE_SIZE)
        page.insert_text(
            fitz.Point((self.PAGE_WIDTH - title_width) / 2, y),
            document.title,
            fontname=self.BOLD_FONT,
            fontsize=self.TITLE_SIZE,
            color=self.TEXT_COLOR,
        )
        y += self.TITLE_SIZE

        for line in document.header_lines:
            y += self.HEADER_SIZE + self.LINE_GAP
            page.insert_text(
                fitz.Point(self.MARGIN, y),
                line,
                fontname=self.BODY_FONT,
                fontsize=self.HEADER_SIZE,
                color=self.TEXT_COLOR,
            )
        y += 2 * self.HEADER_SIZE

        page, y = self._write_body(doc, page, y, document.body)

        if document.signature is not None:
            # The signature block must fit below the text on the same page
            if y + self.SIGNATURE_BLOCK_HEIGHT > self.bottom:
                page = self._new_page(doc)
                y = self.MARGIN
            signature_top = self.bottom - self.SIGNATURE_BLOCK_HEIGHT
            self._void_space(page, y, signature_top)
            self._write_signature(page, signature_top, document.signature)
        else:
            self._void_space(page, y, self.bottom)

        pdf_bytes = doc.tobytes()
        page_count = doc.page_count
        doc.close()
        logger.info(f"Rendered clinical history PDF: {page_count} pages, {len(pdf_bytes)} bytes")
        return pdf_bytes

    def _new_page(self, doc: fitz.Document) -> fitz.Page:
        return doc.new_page(width=self.PAGE_WIDTH, height=self.PAGE_HEIGHT)

    def _text_length(self, text: str) -> float:
        return fitz.get_text_length(text, fontname=self.BODY_FONT, fontsize=self.BODY_SIZE)

    def wrap_paragraph(self, paragraph: str) -> List[str]:
        """Split a paragraph into lines no wider than the text column."""
        lines = []
        current = ""
        for word in paragraph.split():
            candidate = f"{current} {word}" if current else word
            if current and self._text_length(candidate) > self.text_width:
                lines.append(current)
                current = word
            else:
                current = candidate
        if current:
            lines.append(current)
        return lines

    def _write_body(self, doc: fitz.Document, page: fitz.Page, y: float, body: str):
        line_height = self.BODY_SIZE + self.LINE_GAP
        for paragraph in body.splitlines():
            lines = self.wrap_paragraph(paragraph)
            if not lines:
                y += line_height
                continue
            for index, line in enumerate(lines):
                if y + line_height > self.bottom:
                    page = self._new_page(doc)
                    y = self.MARGIN
                y += line_height
                justify = index < len(lines) - 1
                self._write_line(page, y, line, justify)
        return page, y

    def _write_line(self, page: fitz.Page, y: float, line: str, justify: bool) -> None:
        words = line.split()
        if not justify or len(words) < 2:
            page.insert_text(
                fitz.Point(self.MARGIN, y),
                line,
                fontname=self.BODY_FONT,
                fontsize=self.BODY_SIZE,
                color=self.TEXT_COLOR,
            )
            return

        widths = [self._text_length(word) for word in words]
        gap = (self.text_width - sum(widths)) / (len(words) - 1)
        x = self.MARGIN
        for word, width in zip(words, widths):
            page.insert_text(
                fitz.Point(x, y),
                word,
                fontname=self.BODY_FONT,
                fontsize=self.BODY_SIZE,
                color=self.TEXT_COLOR,
            )
            x += width + gap

    def _void_space(self, page: fitz.Page, top: float, bottom: float) -> None:
        """Strike through the blank area so nothing can be added after signing."""
        top += self.LINE_GAP
        if bottom - top < self.MIN_VOID_HEIGHT:
            return
        shape = page.new_shape()
        shape.draw_line(fitz.Point(self.MARGIN, top), fitz.Point(self.PAGE_WIDTH - self.MARGIN, bottom))
        shape.finish(color=self.VOID_COLOR, width=1)
        shape.commit()

    def _write_signature(self, page: fitz.Page, top: float, signature: Signature) -> None:
        center = self.PAGE_WIDTH / 2
        y = top

        image = decode_data_url(signature.image_data_url) if signature.image_data_url else None
        if image:
            rect = fitz.Rect(center - 80, y, center + 80, y + self.SIGNATURE_IMAGE_HEIGHT)
            try:
                page.insert_image(rect, stream=image, keep_proportion=True)
            except (RuntimeError, ValueError) as e:
                logger.warning(f"Signature image could not be embedded: {e}")
        y += self.SIGNATURE_IMAGE_HEIGHT + self.HEADER_SIZE

        lines = [signature.name]
        if signature.license_number:
            lines.append(f"M.N. {signature.license_number}")
        for line in lines:
            width = self._text_length(line)
            page.insert_text(
                fitz.Point(center - width / 2, y),
                line,
                fontname=self.BODY_FONT,
                fontsize=self.BODY_SIZE,
                color=self.TEXT_COLOR,
            )
            y += self.BODY_SIZE + self.LINE_GAP
