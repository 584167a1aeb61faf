# medbill/printing/invoice.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..database.errors import ValidationError
from ..utils.gst import round2
from ..utils.helpers import fmt_money

_log = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
BILL_TEMPLATE = "bill_invoice.html"

# A4 margins for the PDF export
_INVOICE_PDF_CSS = "@page { size: A4; margin: 12mm 10mm; }"


class PdfExportUnavailable(ValidationError):
    """WeasyPrint (the `pdf` extra) is not installed."""


def _env() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(["html"]),
    )
    env.filters["money"] = lambda v: fmt_money(v or 0)
    return env


def _tax_summary(items) -> list[tuple[float, dict]]:
    out: dict[float, dict] = {}
    for it in items:
        row = out.setdefault(float(it["gst_rate"]), {"taxable_value": 0.0, "cgst": 0.0, "sgst": 0.0})
        row["taxable_value"] = round2(row["taxable_value"] + float(it["taxable_value"]))
        row["cgst"] = round2(row["cgst"] + float(it["cgst"]))
        row["sgst"] = round2(row["sgst"] + float(it["sgst"]))
    return sorted(out.items())


def render_bill_html(bill: Mapping, shop: Mapping[str, str], items=None) -> str:
    """
    Render a bill (as returned by BillsRepo.get_bill) to HTML.
    `items` overrides bill["items"], e.g. pending running-bill lines.
    """
    items = list(items if items is not None else bill.get("items", []))
    template = _env().get_template(BILL_TEMPLATE)
    return template.render(bill=bill, shop=shop, items=items, tax_summary=_tax_summary(items))


def export_bill_pdf(html: str, path: Path | str) -> Path:
    try:
        from weasyprint import CSS, HTML
    except ImportError as e:
        raise PdfExportUnavailable("PDF export needs WeasyPrint: pip install weasyprint") from e

    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    HTML(string=html).write_pdf(str(out), stylesheets=[CSS(string=_INVOICE_PDF_CSS)])
    _log.info("Bill PDF written to %s", out)
    return out
