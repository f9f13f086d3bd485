"""
CMA and Flip Analysis PDF reports.

Generates print-friendly PDF summaries of a CMA report or a flip
analysis. Uses ReportLab for deterministic PDF generation.

CMA report structure:
1. Title and subject property
2. Value estimate and confidence
3. Comparables table
4. Summary statistics
5. Value history

Flip report structure:
1. Title and subject property
2. ARV and neighborhood ceiling
3. Financial model (cash and financed)
4. Strategy scores and verdict
5. Risk factors
"""

from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Optional, Sequence, Tuple
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_LEFT
from reportlab.lib.pagesizes import LETTER
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from utils.formatting import format_currency, format_percent
from valuation.cma import CmaReport
from valuation.flip import FlipAnalysis
from valuation.models import SubjectProperty


# =============================================================================
# Report Generation Result Types
# =============================================================================

@dataclass
class ReportSuccess:
    """Returned when PDF generation succeeds."""
    path: Path
    title: str


# =============================================================================
# Color Palette - Clean, print-friendly style
# =============================================================================

class Palette:
    """
    Color palette optimised for print.
    White background with charcoal text for readability.
    """
    BLACK = colors.Color(0.1, 0.1, 0.1)
    CHARCOAL = colors.Color(0.2, 0.2, 0.22)
    SLATE = colors.Color(0.35, 0.38, 0.42)
    GRAY = colors.Color(0.5, 0.5, 0.5)
    LIGHT_GRAY = colors.Color(0.85, 0.85, 0.85)
    PALE_GRAY = colors.Color(0.95, 0.95, 0.95)
    WHITE = colors.white

    ACCENT = colors.Color(0.15, 0.25, 0.4)

    # Verdict indicators
    SUCCESS = colors.Color(0.15, 0.4, 0.25)
    WARNING = colors.Color(0.5, 0.4, 0.15)
    DANGER = colors.Color(0.55, 0.15, 0.15)


# =============================================================================
# Style Configuration
# =============================================================================

def get_report_styles() -> dict:
    """Create paragraph styles for CMA and flip reports."""
    styles = getSampleStyleSheet()

    styles.add(ParagraphStyle(
        name='ReportTitle',
        parent=styles['Normal'],
        fontSize=18,
        leading=23,
        textColor=Palette.CHARCOAL,
        alignment=TA_LEFT,
        fontName='Helvetica-Bold',
        spaceAfter=3*mm,
    ))

    styles.add(ParagraphStyle(
        name='ReportSubtitle',
        parent=styles['Normal'],
        fontSize=10,
        leading=14,
        textColor=Palette.SLATE,
        fontName='Helvetica',
        spaceAfter=6*mm,
    ))

    styles.add(ParagraphStyle(
        name='SectionTitle',
        parent=styles['Normal'],
        fontSize=13,
        leading=17,
        textColor=Palette.CHARCOAL,
        fontName='Helvetica-Bold',
        spaceBefore=14,
        spaceAfter=8,
    ))

    styles.add(ParagraphStyle(
        name='Body',
        parent=styles['Normal'],
        fontSize=9.5,
        leading=13,
        textColor=Palette.BLACK,
        fontName='Helvetica',
    ))

    styles.add(ParagraphStyle(
        name='Verdict',
        parent=styles['Normal'],
        fontSize=12,
        leading=16,
        textColor=Palette.ACCENT,
        fontName='Helvetica-Bold',
        spaceBefore=4,
        spaceAfter=4,
    ))

    styles.add(ParagraphStyle(
        name='Note',
        parent=styles['Normal'],
        fontSize=7.5,
        leading=10,
        textColor=Palette.GRAY,
        fontName='Helvetica',
    ))

    return styles


def _table_style(header_rows: int = 1) -> TableStyle:
    commands = [
        ('FONTNAME', (0, 0), (-1, -1), 'Helvetica'),
        ('FONTSIZE', (0, 0), (-1, -1), 8),
        ('TEXTCOLOR', (0, 0), (-1, -1), Palette.CHARCOAL),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('GRID', (0, 0), (-1, -1), 0.5, Palette.LIGHT_GRAY),
        ('TOPPADDING', (0, 0), (-1, -1), 2*mm),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 2*mm),
        ('LEFTPADDING', (0, 0), (-1, -1), 2*mm),
        ('RIGHTPADDING', (0, 0), (-1, -1), 2*mm),
    ]
    if header_rows:
        commands += [
            ('FONTNAME', (0, 0), (-1, header_rows - 1), 'Helvetica-Bold'),
            ('BACKGROUND', (0, 0), (-1, header_rows - 1), Palette.CHARCOAL),
            ('TEXTCOLOR', (0, 0), (-1, header_rows - 1), Palette.WHITE),
            ('ROWBACKGROUNDS', (0, header_rows), (-1, -1), [Palette.WHITE, Palette.PALE_GRAY]),
        ]
    return TableStyle(commands)


def _key_value_table(rows: Sequence[Tuple[str, str]], col_widths=(60*mm, 60*mm)) -> Table:
    table = Table([list(r) for r in rows], colWidths=list(col_widths), hAlign='LEFT')
    style = _table_style(header_rows=0)
    style.add('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold')
    style.add('BACKGROUND', (0, 0), (0, -1), Palette.PALE_GRAY)
    table.setStyle(style)
    return table


# =============================================================================
# Report Generator Class
# =============================================================================

class ReportGenerator:
    """
    Generates CMA and flip analysis PDFs.

    Usage:
        generator = ReportGenerator()
        result = generator.generate_cma_report(report)

    The generator produces deterministic output - the same input will
    always produce the same PDF.
    """

    PAGE_WIDTH, PAGE_HEIGHT = LETTER
    MARGIN_LEFT = 16*mm
    MARGIN_RIGHT = 16*mm
    MARGIN_TOP = 16*mm
    MARGIN_BOTTOM = 20*mm

    # Output directory
    OUTPUT_DIR = Path("reports")

    def __init__(self, output_dir: Optional[Path] = None):
        """Initialize the report generator with styles."""
        self.styles = get_report_styles()
        self.output_dir = Path(output_dir) if output_dir else self.OUTPUT_DIR

    # =========================================================================
    # Public API
    # =========================================================================

    def generate_cma_report(self, report: CmaReport) -> ReportSuccess:
        """Write a CMA report PDF to the output directory."""
        title = f"Comparative Market Analysis - {report.report_id}"
        path = self._write(f"{report.report_id}.pdf", self.cma_to_buffer(report))
        return ReportSuccess(path=path, title=title)

    def generate_flip_report(self, analysis: FlipAnalysis) -> ReportSuccess:
        """Write a flip analysis PDF to the output directory."""
        name = f"FLIP-{analysis.subject.listing_id}-{analysis.run_date:%Y%m%d}"
        title = f"Flip Analysis - {analysis.subject.listing_id}"
        path = self._write(f"{name}.pdf", self.flip_to_buffer(analysis))
        return ReportSuccess(path=path, title=title)

    def cma_to_buffer(self, report: CmaReport) -> bytes:
        """Generate CMA PDF and return as bytes (for testing or streaming)."""
        story = []
        story.extend(self._build_title(
            "Comparative Market Analysis",
            f"{report.report_id} | prepared {report.updated_at:%B %d, %Y}",
        ))
        story.extend(self._build_subject(report.subject))
        story.extend(self._build_estimate(report))
        story.extend(self._build_comparables(report))
        story.extend(self._build_summary(report))
        story.extend(self._build_history(report))
        return self._render(story, f"CMA - {report.report_id}")

    def flip_to_buffer(self, analysis: FlipAnalysis) -> bytes:
        """Generate flip PDF and return as bytes (for testing or streaming)."""
        story = []
        story.extend(self._build_title(
            "Flip Analysis",
            f"{analysis.subject.listing_id} | run {analysis.run_date:%B %d, %Y}",
        ))
        story.extend(self._build_subject(analysis.subject))
        story.extend(self._build_arv(analysis))
        story.extend(self._build_financials(analysis))
        story.extend(self._build_strategies(analysis))
        story.extend(self._build_risk(analysis))
        return self._render(story, f"Flip Analysis - {analysis.subject.listing_id}")

    # =========================================================================
    # Document Assembly
    # =========================================================================

    def _write(self, filename: str, content: bytes) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        output_path = self.output_dir / filename
        output_path.write_bytes(content)
        return output_path

    def _render(self, story: list, title: str) -> bytes:
        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=LETTER,
            leftMargin=self.MARGIN_LEFT,
            rightMargin=self.MARGIN_RIGHT,
            topMargin=self.MARGIN_TOP,
            bottomMargin=self.MARGIN_BOTTOM,
            title=title,
            author="BMN Valuation Engine",
            invariant=1,
        )
        doc.build(story, onFirstPage=self._draw_page_frame, onLaterPages=self._draw_page_frame)
        return buffer.getvalue()

    def _draw_page_frame(self, canvas_obj: canvas.Canvas, doc):
        """Draw footer - disclaimer left, page number right."""
        canvas_obj.saveState()
        canvas_obj.setFont('Helvetica', 7)
        canvas_obj.setFillColor(Palette.GRAY)
        canvas_obj.drawString(
            self.MARGIN_LEFT,
            self.MARGIN_BOTTOM - 10*mm,
            "Estimates are indicative and not an appraisal.",
        )
        canvas_obj.drawRightString(
            self.PAGE_WIDTH - self.MARGIN_RIGHT,
            self.MARGIN_BOTTOM - 10*mm,
            f"{doc.page}",
        )
        canvas_obj.restoreState()

    # =========================================================================
    # Shared Sections
    # =========================================================================

    def _build_title(self, title: str, subtitle: str) -> list:
        return [
            Paragraph(title, self.styles['ReportTitle']),
            Paragraph(escape(subtitle), self.styles['ReportSubtitle']),
        ]

    def _build_subject(self, subject: SubjectProperty) -> list:
        """Subject property facts (overrides applied)."""
        effective = subject.effective()
        location = ", ".join(p for p in (effective.address, effective.city, effective.zip_code) if p)

        rows = [
            ("Listing", effective.listing_id),
            ("Address", location or "-"),
            ("Type", effective.property_sub_type or effective.property_type),
            ("Beds / Baths", f"{_text(effective.bedrooms)} / {_text(effective.bathrooms)}"),
            ("Living area", f"{effective.living_area:,} sqft" if effective.living_area else "-"),
            ("Lot", f"{effective.lot_size_acres} acres" if effective.lot_size_acres is not None else "-"),
            ("Year built", _text(effective.year_built)),
            ("List price", format_currency(effective.list_price)),
        ]
        if subject.overrides:
            rows.append(("Overrides", ", ".join(sorted(subject.overrides))))

        return [
            Paragraph("Subject Property", self.styles['SectionTitle']),
            _key_value_table(rows),
        ]

    # =========================================================================
    # CMA Sections
    # =========================================================================

    def _build_estimate(self, report: CmaReport) -> list:
        estimate = report.estimate
        label = "After-Repair Value" if report.is_arv_mode else "Estimated Value"
        elements = [Paragraph(label, self.styles['SectionTitle'])]

        if not estimate.has_value:
            elements.append(Paragraph(
                "No comparable sales were selected, so no value range is available.",
                self.styles['Body'],
            ))
            return elements

        rows = [
            ("Low", format_currency(estimate.low)),
            ("Mid", format_currency(estimate.mid)),
            ("High", format_currency(estimate.high)),
            ("Confidence", f"{estimate.confidence_level.value.title()} ({estimate.confidence_score:.1f})"),
            ("Comparables used", str(estimate.comparables_count)),
        ]
        elements.append(_key_value_table(rows))
        return elements

    def _build_comparables(self, report: CmaReport) -> list:
        elements = [Paragraph("Comparables", self.styles['SectionTitle'])]

        if not report.comparables:
            elements.append(Paragraph("No comparables matched the selection filters.", self.styles['Body']))
            return elements

        rows = [["Listing", "Distance", "Sale price", "Adjustment", "Adjusted", "Score", "Used"]]
        for comp in report.comparables:
            distance = f"{comp.distance_miles:.2f} mi" if comp.distance_miles is not None else "-"
            rows.append([
                comp.listing_id,
                distance,
                format_currency(comp.sale_price),
                format_currency(comp.adjustment_total),
                format_currency(comp.adjusted_price),
                f"{comp.comparability_score:.1f} {comp.comparability_grade}",
                "Yes" if comp.is_selected else "No",
            ])

        table = Table(rows, colWidths=[30*mm, 20*mm, 26*mm, 26*mm, 26*mm, 20*mm, 14*mm], repeatRows=1)
        table.setStyle(_table_style())
        elements.append(table)

        radius = report.run.selection.radius_miles
        scope = f"within {radius} miles" if radius is not None else "citywide"
        elements.append(Spacer(1, 3*mm))
        elements.append(Paragraph(
            f"Comparables selected {scope} from {report.run.selection.pool_size} candidates.",
            self.styles['Note'],
        ))
        return elements

    def _build_summary(self, report: CmaReport) -> list:
        summary = report.summary
        grades = ", ".join(f"{g}: {n}" for g, n in summary.grade_distribution.items()) or "-"
        rows = [
            ("Selected / total", f"{summary.selected_comparables} / {summary.total_comparables}"),
            ("Average sale price", format_currency(summary.avg_sale_price)),
            ("Median adjusted price", format_currency(summary.median_adjusted_price)),
            ("Adjusted range", f"{format_currency(summary.min_adjusted_price)} - "
                               f"{format_currency(summary.max_adjusted_price)}"),
            ("Average distance", f"{summary.avg_distance_miles} mi" if summary.avg_distance_miles is not None else "-"),
            ("Average days on market", _text(summary.avg_days_on_market)),
            ("Grades", grades),
        ]
        return [
            Paragraph("Summary", self.styles['SectionTitle']),
            _key_value_table(rows),
        ]

    def _build_history(self, report: CmaReport) -> list:
        rows = [["Recorded", "Mid", "Confidence", "Comps", "Note"]]
        for entry in report.history:
            rows.append([
                f"{entry.recorded_at:%Y-%m-%d %H:%M}",
                format_currency(entry.mid),
                entry.confidence_level,
                str(entry.comparables_count),
                entry.note,
            ])
        table = Table(rows, colWidths=[36*mm, 30*mm, 26*mm, 16*mm, 40*mm], repeatRows=1)
        table.setStyle(_table_style())
        return [Paragraph("Value History", self.styles['SectionTitle']), table]

    # =========================================================================
    # Flip Sections
    # =========================================================================

    def _build_arv(self, analysis: FlipAnalysis) -> list:
        estimate = analysis.run.estimate
        rows = [
            ("ARV", format_currency(analysis.arv)),
            ("ARV range", f"{format_currency(estimate.low)} - {format_currency(estimate.high)}"),
            ("Confidence", f"{estimate.confidence_level.value.title()} ({estimate.confidence_score:.1f})"),
            ("Neighborhood ceiling", format_currency(analysis.neighborhood_ceiling)),
            ("Rehab estimate", format_currency(analysis.rehab.total)),
        ]
        return [
            Paragraph("After-Repair Value", self.styles['SectionTitle']),
            _key_value_table(rows),
        ]

    def _build_financials(self, analysis: FlipAnalysis) -> list:
        elements = [Paragraph("Financial Model", self.styles['SectionTitle'])]
        fm = analysis.financials

        if fm is None:
            elements.append(Paragraph(
                "Financials were not computed: no ARV, list price or rehab estimate.",
                self.styles['Body'],
            ))
            return elements

        rows = [
            ["", "Cash", "Financed"],
            ["Profit", format_currency(fm.cash_profit), format_currency(fm.financed_profit)],
            ["Cash in", format_currency(fm.cash_investment), format_currency(fm.cash_invested)],
            ["ROI", format_percent(fm.cash_roi, fraction=True), format_percent(fm.cash_on_cash_roi, fraction=True)],
            ["Annualized ROI", "-", format_percent(fm.annualized_roi, fraction=True)],
        ]
        table = Table(rows, colWidths=[40*mm, 40*mm, 40*mm], hAlign='LEFT')
        table.setStyle(_table_style())
        elements.append(table)
        elements.append(Spacer(1, 4*mm))

        elements.append(_key_value_table([
            ("Purchase price", format_currency(fm.purchase_price)),
            ("Hold period", f"{fm.hold_months} months"),
            ("Holding costs", format_currency(fm.holding_costs)),
            ("Sale costs", format_currency(fm.sale_costs)),
            ("MAO (70% rule)", format_currency(fm.mao_classic)),
            ("MAO (cost-adjusted)", format_currency(fm.mao_adjusted)),
            ("Breakeven ARV", format_currency(fm.breakeven_arv)),
        ]))
        return elements

    def _build_strategies(self, analysis: FlipAnalysis) -> list:
        score = analysis.score
        elements = [Paragraph("Deal Score", self.styles['SectionTitle'])]

        if score.disqualified:
            verdict = f"Disqualified: {escape(score.reason or '')}"
            color = Palette.DANGER
        else:
            verdict = f"Best strategy: {score.best_strategy.value.upper()} (grade {score.deal_risk_grade})"
            color = Palette.SUCCESS if score.deal_risk_grade in ("A", "B") else Palette.WARNING
        style = ParagraphStyle(name='VerdictColored', parent=self.styles['Verdict'], textColor=color)
        elements.append(Paragraph(verdict, style))

        rows = [["Strategy", "Score", "Viable", "Note"]]
        for strategy in score.strategies:
            rows.append([
                strategy.strategy.value.title(),
                f"{strategy.score:.1f}" if strategy.score is not None else "-",
                "Yes" if strategy.viable else "No",
                strategy.reason or "",
            ])
        table = Table(rows, colWidths=[28*mm, 20*mm, 18*mm, 80*mm], hAlign='LEFT')
        table.setStyle(_table_style())
        elements.append(table)
        elements.append(Spacer(1, 4*mm))

        elements.append(_key_value_table([
            ("Financial", f"{score.financial_score:.1f}"),
            ("Property", f"{score.property_score:.1f}"),
            ("Location", f"{score.location_score:.1f}"),
            ("Market", f"{score.market_score:.1f}"),
            ("Total", f"{score.total_score:.1f}"),
        ]))
        return elements

    def _build_risk(self, analysis: FlipAnalysis) -> list:
        if analysis.risk is None:
            return []
        rows = [["Factor", "Score"]]
        for name, value in analysis.risk.factors.items():
            rows.append([name.replace("_", " ").title(), f"{value:.0f}"])
        rows.append(["Overall", f"{analysis.risk.score:.1f} ({analysis.risk.grade})"])
        table = Table(rows, colWidths=[50*mm, 30*mm], hAlign='LEFT')
        table.setStyle(_table_style())
        return [Paragraph("Risk Factors", self.styles['SectionTitle']), table]


def _text(value) -> str:
    return "-" if value is None else str(value)


# =============================================================================
# Convenience Functions
# =============================================================================

def generate_cma_pdf(report: CmaReport, output_dir: Optional[Path] = None) -> ReportSuccess:
    """Generate a CMA report PDF."""
    return ReportGenerator(output_dir).generate_cma_report(report)


def generate_flip_pdf(analysis: FlipAnalysis, output_dir: Optional[Path] = None) -> ReportSuccess:
    """Generate a flip analysis PDF."""
    return ReportGenerator(output_dir).generate_flip_report(analysis)
