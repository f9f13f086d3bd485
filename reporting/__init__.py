"""
Reporting module for the valuation engine.

Renders CMA reports and flip analyses as PDFs and exposes the
command-line interface.

Usage:
    from reporting import ReportGenerator

    generator = ReportGenerator()
    result = generator.generate_cma_report(report)
"""

from .pdf_generator import (
    Palette,
    ReportGenerator,
    ReportSuccess,
    generate_cma_pdf,
    generate_flip_pdf,
    get_report_styles,
)

__all__ = [
    "Palette",
    "ReportGenerator",
    "ReportSuccess",
    "generate_cma_pdf",
    "generate_flip_pdf",
    "get_report_styles",
]

__version__ = "1.0"
