"""
Report Engine — export rows and branded deliverables for a project session.

Outputs:
  - Takeoff Sheet (dimension paper: timesing / dimension / quantity per item)
  - Bill of Quantities (estimation) or Valuation Summary (payment)
  - Grand Summary (estimation only: contingency -> VAT -> grand total)
  - Payment Certificate (payment only: fixed statement + amount in words)
  - Rebar Schedule and Clarifications (when the project carries them)
  - .xlsx workbook of all of the above (xlsxwriter)
  - Payment certificate PDF (reportlab)

Row builders are pure and return plain lists; money and quantities are
rounded to 2 dp here and nowhere upstream.
"""
import os
import re
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

from app.models.boq_schema import (
    AppMode,
    CertificateMetadata,
    LineItem,
    RebarItem,
    Signatures,
    TakeoffMetadata,
    TechnicalQuery,
)
from app.services.certificate_engine import CertificateResult, certificate_title, certification_sentence
from app.services.config import DOWNLOAD_DIR, UNIT_LABELS, UNSEEN_CATEGORY_ORDER
from app.services.grouping_engine import canonical_bill_name
from app.services.perf_monitor import timed
from app.services.valuation_engine import ValuationResult

logger = logging.getLogger("constructai-report")

COMPANY_NAME = "CONSTRUCTAI QUANTITY SURVEYING"
COMPANY_SUB = "Bill of Quantities  |  Valuations  |  Payment Certificates"
SIGNATURE_LINE = "__________________________"

ESTIMATION_HEADER = ["Ref", "Description", "Unit", "Quantity", "Rate", "Amount"]
PAYMENT_HEADER = [
    "Ref", "Description", "Unit",
    "Contract Qty", "Previous Qty", "Current Qty", "Cumulative Qty",
    "Rate",
    "Contract Amt", "Previous Amt", "Current Amt", "Cumulative Amt",
]
REBAR_HEADER = ["Member", "Bar Mark", "Type", "Shape", "No. Mb", "No. Bar", "Total No", "Length", "Total Len", "Weight (kg)"]
CLARIFICATION_HEADER = ["ID", "QUERY / AMBIGUITY", "ASSUMPTION MADE", "IMPACT"]


@dataclass
class Sheet:
    name: str
    rows: List[List[Any]]
    column_widths: List[int] = field(default_factory=list)
    # (first_row, first_col, last_row, last_col)
    merges: List[Tuple[int, int, int, int]] = field(default_factory=list)
    header_row: Optional[int] = None
    bold_rows: List[int] = field(default_factory=list)


def _r(value: float) -> float:
    return round(value, 2)


def _pct(value: float) -> str:
    """15.0 -> '15', 7.5 -> '7.5'."""
    return f"{value:g}"


def ref_letter(counter: int) -> str:
    """A..Z, then wraps back to A."""
    return chr(65 + counter % 26)


def workbook_filename(project_name: str) -> str:
    return f"Takeoff_{re.sub(r'[^A-Za-z0-9_.-]+', '_', project_name.strip())}.xlsx"


# ── Shared blocks ─────────────────────────────────────────────────────────────

def signature_rows(signatures: Signatures) -> List[List[Any]]:
    rows: List[List[Any]] = [[], [], ["APPROVAL SIGNATURES"], []]
    for label, entry in (
        ("PREPARED BY:", signatures.prepared),
        ("CHECKED BY:", signatures.checked),
        ("APPROVED BY:", signatures.approved),
    ):
        rows.append([label, entry.name, "DATE:", entry.date])
        rows.append(["SIGNATURE:", SIGNATURE_LINE])
        rows.append([])
    rows.pop()
    return rows


def _meta_rows(meta: TakeoffMetadata, project_label: str = "PROJECT NAME:") -> List[List[Any]]:
    return [
        [project_label, meta.project_name],
        ["CLIENT:", meta.client],
        ["CONTRACTOR:", meta.contractor],
        ["CONSULTANT:", meta.consultant],
    ]


# ── Takeoff Sheet ─────────────────────────────────────────────────────────────

def takeoff_sheet(
    items: Sequence[LineItem],
    category_order: Dict[str, int],
    meta: TakeoffMetadata,
    signatures: Signatures,
    unit_system: str = "metric",
    today: Optional[str] = None,
) -> Sheet:
    """
    Dimension paper grouped by category, then bill name. *items* may already
    be search/source filtered; *category_order* comes from the full list.
    """
    labels = UNIT_LABELS.get(unit_system, UNIT_LABELS["metric"])
    rows: List[List[Any]] = [["TAKEOFF SHEET"]]
    rows += _meta_rows(meta)
    rows.append(["DATE:", today or date.today().isoformat()])
    rows.append([])
    header_row = len(rows)
    rows.append([
        "TIMESING",
        f"DIMENSION ({labels['dimension']})",
        f"QTY ({labels['quantity']})",
        "DESCRIPTION",
        "SOURCE DRAWING",
    ])

    by_category: Dict[str, Dict[str, List[LineItem]]] = {}
    for item in items:
        bill = canonical_bill_name(item.bill_text)
        by_category.setdefault(item.category, {}).setdefault(bill, []).append(item)

    bold: List[int] = []
    for cat in sorted(by_category, key=lambda c: category_order.get(c, UNSEEN_CATEGORY_ORDER)):
        bold.append(len(rows))
        rows.append(["", "", "", cat.upper(), ""])
        for bill, members in by_category[cat].items():
            rows.append(["", "", "", bill, ""])
            total = 0.0
            for item in members:
                rows.append([
                    item.timesing,
                    item.dimension,
                    item.quantity,
                    item.location_description or "",
                    item.source_ref or "",
                ])
                total += item.quantity
            bold.append(len(rows))
            rows.append(["", "", _r(total), f"Total {bill} ({members[0].unit})", ""])
            rows.append([])

    rows += signature_rows(signatures)
    return Sheet(
        name="Takeoff Sheet",
        rows=rows,
        column_widths=[10, 25, 15, 60, 30],
        merges=[(0, 0, 0, 4)],
        header_row=header_row,
        bold_rows=bold,
    )


# ── Bill of Quantities / Valuation Summary ───────────────────────────────────

def summary_title(mode: AppMode, is_final_account: bool) -> str:
    if mode is AppMode.PAYMENT:
        return "FINAL SUMMARY" if is_final_account else "INTERIM SUMMARY PAGE 1"
    return "BILL OF QUANTITIES"


def boq_sheet(
    valuation: ValuationResult,
    meta: TakeoffMetadata,
    signatures: Signatures,
    currency: str,
    is_final_account: bool = False,
) -> Sheet:
    mode = valuation.mode
    payment = mode is AppMode.PAYMENT
    rows: List[List[Any]] = [[summary_title(mode, is_final_account)]]
    rows += _meta_rows(meta)
    rows.append(["CURRENCY:", currency])
    rows.append([])
    header_row = len(rows)
    rows.append(list(PAYMENT_HEADER if payment else ESTIMATION_HEADER))

    bold: List[int] = []
    counter = 0
    blank_cols = 11 if payment else 5
    for cat in valuation.categories:
        bold.append(len(rows))
        rows.append([cat.upper()] + [""] * blank_cols)
        for gv in valuation.groups:
            g = gv.group
            if g.category != cat:
                continue
            ref = ref_letter(counter)
            counter += 1
            a = gv.amounts
            if payment:
                rows.append([
                    ref, g.name, g.unit,
                    _r(g.total_quantity), _r(g.previous_quantity), _r(g.executed_quantity),
                    _r(g.cumulative_quantity),
                    _r(gv.rate),
                    _r(a.contract), _r(a.previous), _r(a.current), _r(a.cumulative),
                ])
            else:
                rows.append([ref, g.name, g.unit, _r(g.total_quantity), _r(gv.rate), _r(a.contract)])
        if not payment:
            bold.append(len(rows))
            rows.append(["", "Total Carried to Summary", "", "", "", _r(valuation.category_totals[cat].contract)])
        rows.append([])

    if payment:
        m = valuation.markups
        rows.append([])
        for label, amounts in (
            ("SUB TOTAL", valuation.totals),
            (f"ADD: VAT ({_pct(m.vat_pct)}%)", m.vat),
            ("GRAND TOTAL", m.grand_total),
        ):
            bold.append(len(rows))
            rows.append(["", label, "", "", "", "", "", "",
                         _r(amounts.contract), _r(amounts.previous), _r(amounts.current), _r(amounts.cumulative)])

    rows += signature_rows(signatures)
    if payment:
        widths = [5, 40, 8, 12, 12, 12, 12, 10, 15, 15, 15, 15]
    else:
        widths = [5, 40, 8, 12, 12, 15]
    return Sheet(
        name="Valuation Summary" if payment else "Bill of Quantities",
        rows=rows,
        column_widths=widths,
        merges=[(0, 0, 0, len(widths) - 1)],
        header_row=header_row,
        bold_rows=bold,
    )


# ── Grand Summary (estimation) ───────────────────────────────────────────────

def grand_summary_sheet(valuation: ValuationResult, meta: TakeoffMetadata, signatures: Signatures) -> Sheet:
    m = valuation.markups
    rows: List[List[Any]] = [["GRAND SUMMARY"], []]
    rows += _meta_rows(meta)
    rows.append([])
    header_row = len(rows)
    rows.append(["Description", "Amount"])
    for cat in valuation.categories:
        rows.append([cat, _r(valuation.category_totals[cat].contract)])
    rows.append(["", ""])
    first_total = len(rows)
    rows.append(["SUB TOTAL (A)", _r(valuation.totals.contract)])
    rows.append([f"CONTINGENCY ({_pct(m.contingency_pct)}%)", _r(m.contingency.contract)])
    rows.append(["TOTAL AMOUNT (A+B)", _r(m.taxable.contract)])
    rows.append([f"VAT ({_pct(m.vat_pct)}%)", _r(m.vat.contract)])
    rows.append(["GRAND TOTAL", _r(m.grand_total.contract)])
    bold = list(range(first_total, len(rows)))
    rows += signature_rows(signatures)
    return Sheet(
        name="Grand Summary",
        rows=rows,
        column_widths=[40, 15, 15, 15, 15],
        header_row=header_row,
        bold_rows=bold,
    )


# ── Payment Certificate (payment) ────────────────────────────────────────────

def certificate_statement(cert: CertificateResult) -> List[Tuple[str, float]]:
    """The fixed statement lines, deductions carried as negatives."""
    return [
        ("Gross Value of Work Executed (Cumul. Sub Total)", cert.work_executed_cumulative),
        (f"Less: Retention ({_pct(cert.retention_pct)}%)", -cert.retention_amount),
        ("Less: Advance Recovery", -cert.advance_recovery),
        ("Net Value", cert.net_valuation),
        (f"Add: VAT ({_pct(cert.vat_pct)}%) on Net Value", cert.vat_amount),
        ("TOTAL CERTIFIED TO DATE", cert.total_certified),
        ("Less: Previous Payments (Certified to Date)", -cert.previous_payments),
        ("NET AMOUNT DUE THIS CERTIFICATE", cert.amount_due),
    ]


def certificate_sheet(
    cert: CertificateResult,
    meta: TakeoffMetadata,
    cert_meta: CertificateMetadata,
    signatures: Signatures,
    currency: str,
    is_final_account: bool = False,
) -> Sheet:
    rows: List[List[Any]] = [[certificate_title(is_final_account)]]
    rows += _meta_rows(meta, project_label="PROJECT:")
    rows.append(["DATE:", cert_meta.valuation_date])
    rows.append([])
    header_row = len(rows)
    rows.append(["DESCRIPTION", "", f"AMOUNT ({currency})"])
    for label, amount in certificate_statement(cert):
        rows.append([label, "", _r(amount)])
    bold = [header_row + 6, header_row + 8]
    rows.append([])
    sentence_row = len(rows)
    rows.append([certification_sentence(cert.amount_due, currency)])
    rows += signature_rows(signatures)
    return Sheet(
        name="Payment Certificate",
        rows=rows,
        column_widths=[40, 5, 20],
        merges=[(0, 0, 0, 2), (sentence_row, 0, sentence_row, 2)],
        header_row=header_row,
        bold_rows=bold,
    )


# ── Rebar Schedule / Clarifications ──────────────────────────────────────────

def rebar_sheet(rebar_items: Sequence[RebarItem], meta: TakeoffMetadata, signatures: Signatures) -> Sheet:
    rows: List[List[Any]] = [["REBAR SCHEDULE"]]
    rows += _meta_rows(meta, project_label="PROJECT:")
    rows.append([])
    header_row = len(rows)
    rows.append(list(REBAR_HEADER))
    for r in rebar_items:
        rows.append([
            r.member, r.id, r.bar_type, r.shape_code, r.no_of_members, r.bars_per_member,
            r.total_bars, _r(r.length_per_bar), _r(r.total_length), _r(r.total_weight),
        ])
    rows += signature_rows(signatures)
    return Sheet(
        name="Rebar Schedule",
        rows=rows,
        column_widths=[14, 9, 7, 7, 8, 8, 9, 9, 11, 12],
        header_row=header_row,
    )


def clarifications_sheet(queries: Sequence[TechnicalQuery], meta: TakeoffMetadata) -> Sheet:
    rows: List[List[Any]] = [["CLARIFICATIONS & ASSUMPTIONS"], ["PROJECT:", meta.project_name], []]
    header_row = len(rows)
    rows.append(list(CLARIFICATION_HEADER))
    for tq in queries:
        rows.append([tq.id, tq.query, tq.assumption, tq.impact_level])
    return Sheet(
        name="Clarifications",
        rows=rows,
        column_widths=[10, 60, 60, 15],
        header_row=header_row,
    )


# ── PDF helpers ───────────────────────────────────────────────────────────────

def _draw_header(c, page_w, page_h, title: str):
    from reportlab.lib.units import cm
    c.setFillColorRGB(0.06, 0.09, 0.16)
    c.rect(0, page_h - 3*cm, page_w, 3*cm, fill=1, stroke=0)
    c.setFillColorRGB(1, 1, 1)
    c.setFont("Helvetica-Bold", 13)
    c.drawString(1.5*cm, page_h - 1.4*cm, COMPANY_NAME)
    c.setFont("Helvetica", 8)
    c.drawString(1.5*cm, page_h - 2.0*cm, COMPANY_SUB)
    c.setFont("Helvetica-Bold", 11)
    c.drawRightString(page_w - 1.5*cm, page_h - 1.4*cm, title)
    c.setStrokeColorRGB(0.96, 0.62, 0.04)
    c.setLineWidth(2)
    c.line(0, page_h - 3*cm, page_w, page_h - 3*cm)
    c.setLineWidth(1)
    c.setStrokeColorRGB(0, 0, 0)


def _draw_footer(c, page_w, page_num: int):
    from reportlab.lib.units import cm
    c.setFillColorRGB(0.5, 0.5, 0.5)
    c.setFont("Helvetica", 7)
    c.drawString(1.5*cm, 0.8*cm, f"Generated {date.today().isoformat()}")
    c.drawRightString(page_w - 1.5*cm, 0.8*cm, f"Page {page_num}")
    c.setStrokeColorRGB(0.7, 0.7, 0.7)
    c.line(1.5*cm, 1.2*cm, page_w - 1.5*cm, 1.2*cm)


def _ensure_dir(path: str):
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)


# ── Engine ────────────────────────────────────────────────────────────────────

class ReportEngine:
    """Builds every export document for one ProjectSession."""

    def __init__(self, session):
        self.session = session

    def build_sheets(self, search_term: str = "", source_filter: str = "All", snapshot=None) -> List[Sheet]:
        s = self.session
        snap = snapshot or s.recompute()
        settings = s.settings
        currency = settings.project_currency

        sheets = [
            takeoff_sheet(
                s.store.filtered(search_term, source_filter),
                s.store.category_appearance_order(),
                s.takeoff_meta,
                s.signatures,
                unit_system=settings.unit_system,
            ),
            boq_sheet(snap.valuation, s.takeoff_meta, s.signatures, currency, settings.is_final_account),
        ]
        if s.mode is AppMode.ESTIMATION:
            sheets.append(grand_summary_sheet(snap.valuation, s.takeoff_meta, s.signatures))
        else:
            sheets.append(certificate_sheet(
                snap.certificate, s.takeoff_meta, s.cert_meta, s.signatures, currency, settings.is_final_account,
            ))
        if s.rebar_items:
            sheets.append(rebar_sheet(s.rebar_items, s.takeoff_meta, s.signatures))
        if s.technical_queries:
            sheets.append(clarifications_sheet(s.technical_queries, s.takeoff_meta))
        return sheets

    # ── Excel workbook ────────────────────────────────────────────────────────

    @timed
    def generate_workbook(self, path: Optional[str] = None, search_term: str = "", source_filter: str = "All") -> str:
        import xlsxwriter

        path = path or os.path.join(DOWNLOAD_DIR, self.session.id, workbook_filename(self.session.takeoff_meta.project_name))
        _ensure_dir(path)
        sheets = self.build_sheets(search_term, source_filter)
        wb = xlsxwriter.Workbook(path)
        try:
            title_fmt = wb.add_format({"bold": True, "font_size": 14, "align": "center", "font_color": "#0F172A"})
            hdr = wb.add_format({"bold": True, "bg_color": "#0F172A", "font_color": "#FFFFFF",
                                 "border": 1, "font_size": 10})
            bold_fmt = wb.add_format({"bold": True})
            money = wb.add_format({"num_format": "#,##0.00"})
            money_bold = wb.add_format({"num_format": "#,##0.00", "bold": True})
            wrap = wb.add_format({"text_wrap": True, "bold": True})

            for sheet in sheets:
                ws = wb.add_worksheet(sheet.name)
                for col, width in enumerate(sheet.column_widths):
                    ws.set_column(col, col, width)

                merged = {m[0]: m for m in sheet.merges}
                bold_rows = set(sheet.bold_rows)
                for r, row in enumerate(sheet.rows):
                    if r in merged and row:
                        fr, fc, lr, lc = merged[r]
                        ws.merge_range(fr, fc, lr, lc, row[0], title_fmt if r == 0 else wrap)
                        continue
                    is_bold = r in bold_rows
                    for c, value in enumerate(row):
                        if isinstance(value, bool) or value is None:
                            ws.write_string(r, c, "" if value is None else str(value))
                        elif isinstance(value, (int, float)):
                            ws.write_number(r, c, value, money_bold if is_bold else money)
                        elif r == sheet.header_row:
                            ws.write_string(r, c, value, hdr)
                        else:
                            ws.write_string(r, c, value, bold_fmt if is_bold else None)
        except Exception as e:
            logger.error(f"Workbook generation failed: {e}", extra={"session_id": self.session.id})
            raise
        finally:
            wb.close()
        logger.info(f"Workbook generated: {path}", extra={"session_id": self.session.id})
        return path

    # ── Payment certificate PDF ───────────────────────────────────────────────

    @timed
    def generate_certificate_pdf(self, path: Optional[str] = None) -> str:
        from reportlab.pdfgen import canvas as rl_canvas
        from reportlab.lib.pagesizes import A4
        from reportlab.lib.units import cm
        from reportlab.lib.utils import simpleSplit

        s = self.session
        settings = s.settings
        currency = settings.project_currency
        cert = s.recompute().certificate
        title = certificate_title(settings.is_final_account)

        path = path or os.path.join(DOWNLOAD_DIR, s.id, f"Certificate_{s.cert_meta.cert_no}.pdf")
        _ensure_dir(path)
        page_w, page_h = A4
        c = rl_canvas.Canvas(path, pagesize=A4)
        try:
            _draw_header(c, page_w, page_h, title)
            _draw_footer(c, page_w, 1)

            y = page_h - 4.3*cm
            c.setFillColorRGB(0.06, 0.09, 0.16)
            c.setFont("Helvetica-Bold", 16)
            c.drawString(1.5*cm, y, f"{title} No. {s.cert_meta.cert_no}")
            y -= 0.9*cm
            c.setFont("Helvetica", 9)
            c.setFillColorRGB(0.25, 0.25, 0.25)
            for label, value in (
                ("Project", s.cert_meta.project_title or s.takeoff_meta.project_name),
                ("Client", s.cert_meta.client_name),
                ("Contractor", s.cert_meta.contractor_name),
                ("Contract Ref", s.cert_meta.contract_ref),
                ("Valuation Date", s.cert_meta.valuation_date),
            ):
                c.drawString(1.5*cm, y, f"{label}:")
                c.drawString(5*cm, y, str(value))
                y -= 0.5*cm

            y -= 0.6*cm
            c.setFont("Helvetica-Bold", 10)
            c.setFillColorRGB(0.06, 0.09, 0.16)
            c.drawString(1.5*cm, y, "DESCRIPTION")
            c.drawRightString(page_w - 1.5*cm, y, f"AMOUNT ({currency})")
            y -= 0.3*cm
            c.line(1.5*cm, y, page_w - 1.5*cm, y)
            y -= 0.6*cm

            for label, amount in certificate_statement(cert):
                emphasis = label.isupper()
                c.setFont("Helvetica-Bold" if emphasis else "Helvetica", 10)
                c.drawString(1.5*cm, y, label)
                c.drawRightString(page_w - 1.5*cm, y, f"{_r(amount):,.2f}")
                y -= 0.6*cm

            y -= 0.5*cm
            c.setFont("Helvetica-Oblique", 10)
            sentence = certification_sentence(cert.amount_due, currency)
            for line in simpleSplit(sentence, "Helvetica-Oblique", 10, page_w - 3*cm):
                c.drawString(1.5*cm, y, line)
                y -= 0.5*cm

            y -= 1.5*cm
            col_w = (page_w - 3*cm) / 3
            c.setFont("Helvetica", 9)
            for i, (label, entry) in enumerate((
                ("Prepared by", s.signatures.prepared),
                ("Checked by", s.signatures.checked),
                ("Approved by", s.signatures.approved),
            )):
                x = 1.5*cm + i * col_w
                c.line(x, y, x + col_w - 0.8*cm, y)
                c.drawString(x, y - 0.45*cm, f"{label}: {entry.name}")
                c.drawString(x, y - 0.9*cm, f"Date: {entry.date}")
        except Exception as e:
            logger.error(f"Certificate PDF failed: {e}", extra={"session_id": s.id})
            raise
        finally:
            c.save()
        logger.info(f"Certificate PDF generated: {path}", extra={"session_id": s.id})
        return path
