"""
Document renderer collaborator and the catalogue of supported document types.

The job lifecycle treats rendering as a black box: ``DocumentRenderer.render``
receives the document type, the untouched form data and a language code and
either returns the finished PDF bytes or raises ``RenderError``. This module
also owns the per-type knowledge the rest of the backend is not allowed to
have: which form fields a document type requires and how its files are named.

The bundled ``PdfDocumentRenderer`` draws a generic, localized layout with
reportlab: a title block, the scalar form fields as label/value rows, nested
mappings as sub-sections and sequences (goods, price items) as item rows.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, Dict, List, Mapping, Optional, Tuple

from reportlab.lib.pagesizes import A4
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from .errors import RenderError, ValidationError
from .localization import get_text
from .utils import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequiredField:
    """A form field that must be present, under any of its accepted keys."""

    label: str
    aliases: Tuple[str, ...] = ()

    @property
    def keys(self) -> Tuple[str, ...]:
        return (self.label, *self.aliases)

    def lookup(self, form_data: Mapping[str, Any]) -> Any:
        for key in self.keys:
            value = form_data.get(key)
            if isinstance(value, str):
                value = value.strip()
            if value:
                return value
        return None


@dataclass(frozen=True)
class DocumentType:
    name: str
    filename_prefix: str
    required_fields: Tuple[RequiredField, ...] = field(default_factory=tuple)


INVOICE_NUMBER = RequiredField("INVOICE NUMBER", ("invoiceNumber",))

DOCUMENT_TYPES: Dict[str, DocumentType] = {
    doc.name: doc
    for doc in (
        DocumentType("invoice", "INVOICE", (INVOICE_NUMBER,)),
        DocumentType("proforma-invoice", "PROFORMA_INVOICE"),
        DocumentType("packing-list", "PACKING_LIST", (INVOICE_NUMBER,)),
        DocumentType(
            "credit-note",
            "CREDIT_NOTE",
            (INVOICE_NUMBER, RequiredField("CREDIT NOTE NUMBER", ("creditNoteNumber",))),
        ),
        DocumentType(
            "debit-note",
            "DEBIT_NOTE",
            (INVOICE_NUMBER, RequiredField("DEBIT NOTE NUMBER", ("debitNoteNumber",))),
        ),
        DocumentType(
            "order-confirmation",
            "ORDER_CONFIRMATION",
            (RequiredField("ORDER CONFIRMATION NUMBER", ("orderConfirmationNumber",)),),
        ),
        DocumentType("siparis", "SIPARIS", (RequiredField("ORDER NUMBER", ("SİPARİŞ NUMARASI", "orderNumber")),)),
        DocumentType("price-offer", "PRICE_OFFER", (RequiredField("PRICE OFFER NUMBER", ("priceOfferNumber",)),)),
        DocumentType("technical-sheet", "TECHNICAL_SHEET"),
    )
}


def get_document_type(name: str) -> Optional[DocumentType]:
    return DOCUMENT_TYPES.get(name)


def validate_submission(document_type: Optional[str], form_data: Optional[Mapping[str, Any]]) -> None:
    """
    Check a submission before a job is created.

    Raises:
        ValidationError: ``document_type`` is missing, ``form_data`` is not a
            mapping, or a field required by a known document type is absent.

    Note:
        Unknown document types pass: membership in the catalogue is checked
        when the job is generated, so the job fails instead of the request.
    """
    if not document_type:
        raise ValidationError("documentType is required")
    if form_data is None:
        form_data = {}
    if not isinstance(form_data, Mapping):
        raise ValidationError("formData must be an object")

    doc = get_document_type(document_type)
    if doc is None:
        return
    for required in doc.required_fields:
        if required.lookup(form_data) is None:
            raise ValidationError(f"{required.label} is required for {document_type} document type")


def document_filename(document_type: str, suffix: str) -> str:
    """``<PREFIX>_<suffix>.pdf``; the suffix is a job id or a timestamp."""
    doc = get_document_type(document_type)
    prefix = doc.filename_prefix if doc else "DOCUMENT"
    return f"{prefix}_{suffix}.pdf"


class DocumentRenderer(ABC):
    """Turns (document type, form data, language) into document bytes."""

    media_type = "application/pdf"

    def supports(self, document_type: str) -> bool:
        return document_type in DOCUMENT_TYPES

    def font_status(self) -> Dict[str, Any]:
        return {"font": None, "fontPath": None, "customFontLoaded": False}

    @abstractmethod
    def render(self, document_type: str, form_data: Mapping[str, Any], language: str) -> bytes:
        """Render the document or raise ``RenderError``."""


class PdfDocumentRenderer(DocumentRenderer):
    """Generic A4 layout drawn with reportlab. Holds no per-call state."""

    MARGIN = 45
    LINE_HEIGHT = 15
    LABEL_WIDTH = 190

    def __init__(self, font_path: Optional[str] = None) -> None:
        self.font_path = font_path
        self.font = "Helvetica"
        self.bold_font = "Helvetica-Bold"
        if font_path:
            # Built-in Helvetica lacks Turkish glyphs; a TTF fixes that.
            try:
                pdfmetrics.registerFont(TTFont("DocgenSans", font_path))
            except Exception as exc:  # noqa: BLE001
                logger.warning("Could not load font %s, using Helvetica: %s", font_path, exc)
            else:
                self.font = self.bold_font = "DocgenSans"

    def font_status(self) -> Dict[str, Any]:
        return {
            "font": self.font,
            "fontPath": self.font_path,
            "customFontLoaded": self.font != "Helvetica",
        }

    def render(self, document_type: str, form_data: Mapping[str, Any], language: str) -> bytes:
        if not self.supports(document_type):
            raise RenderError(f"Unsupported document type: {document_type}")

        buffer = BytesIO()
        try:
            page = _Page(canvas.Canvas(buffer, pagesize=A4), self, language)
            page.title(get_text(document_type, language))
            page.row(get_text("generatedAt", language), utcnow().strftime("%Y-%m-%d %H:%M UTC"))
            page.gap()
            self._draw_fields(page, form_data, language)
            page.finish()
        except RenderError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise RenderError(f"{document_type} rendering failed: {exc}") from exc
        return buffer.getvalue()

    def _draw_fields(self, page: "_Page", form_data: Mapping[str, Any], language: str) -> None:
        scalars = [(k, v) for k, v in form_data.items() if not isinstance(v, (Mapping, list, tuple))]
        for key, value in scalars:
            page.row(str(key), "" if value is None else str(value))

        for key, value in form_data.items():
            if isinstance(value, Mapping):
                page.gap()
                page.heading(str(key))
                self._draw_fields(page, value, language)
            elif isinstance(value, (list, tuple)):
                page.gap()
                page.heading(f"{get_text('items', language)}: {key}")
                for index, item in enumerate(value, start=1):
                    page.text(f"{index}. {_describe_item(item)}")


def _describe_item(item: Any) -> str:
    if isinstance(item, Mapping):
        return "  |  ".join(f"{k}: {v}" for k, v in item.items() if v not in (None, ""))
    return str(item)


class _Page:
    """Cursor over a reportlab canvas that starts new pages as needed."""

    def __init__(self, pdf: canvas.Canvas, renderer: PdfDocumentRenderer, language: str) -> None:
        self.pdf = pdf
        self.renderer = renderer
        self.language = language
        self.width, self.height = A4
        self.number = 1
        self.y = self.height - renderer.MARGIN

    def _advance(self, lines: int = 1) -> None:
        self.y -= self.renderer.LINE_HEIGHT * lines
        if self.y < self.renderer.MARGIN + self.renderer.LINE_HEIGHT:
            self._footer()
            self.pdf.showPage()
            self.number += 1
            self.y = self.height - self.renderer.MARGIN

    def _footer(self) -> None:
        self.pdf.setFont(self.renderer.font, 8)
        self.pdf.drawRightString(
            self.width - self.renderer.MARGIN,
            self.renderer.MARGIN / 2,
            f"{get_text('page', self.language)} {self.number}",
        )

    def title(self, text: str) -> None:
        self.pdf.setFont(self.renderer.bold_font, 18)
        self.pdf.drawString(self.renderer.MARGIN, self.y, text)
        self._advance(2)

    def heading(self, text: str) -> None:
        self.pdf.setFont(self.renderer.bold_font, 11)
        self.pdf.drawString(self.renderer.MARGIN, self.y, text)
        self._advance()

    def row(self, label: str, value: str) -> None:
        self.pdf.setFont(self.renderer.bold_font, 9)
        self.pdf.drawString(self.renderer.MARGIN, self.y, label)
        self.pdf.setFont(self.renderer.font, 9)
        self.pdf.drawString(self.renderer.MARGIN + self.renderer.LABEL_WIDTH, self.y, value)
        self._advance()

    def text(self, value: str) -> None:
        self.pdf.setFont(self.renderer.font, 9)
        self.pdf.drawString(self.renderer.MARGIN + 10, self.y, value)
        self._advance()

    def gap(self) -> None:
        self._advance()

    def finish(self) -> None:
        self._footer()
        self.pdf.save()


def describe_document_types() -> List[Dict[str, Any]]:
    return [
        {"name": doc.name, "requiredFields": [list(required.keys) for required in doc.required_fields]}
        for doc in DOCUMENT_TYPES.values()
    ]
