"""
Tests for request schemas, the CLI and PDF reports.

Tests covering:
1. JSON request parsing and conversion to engine records
2. CLI exit codes and output
3. PDF generation for CMA reports and flip analyses
"""

import json
import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pydantic import ValidationError as SchemaError

from reporting.cli import main, parse_cma_request, parse_flip_request, run_cma, run_flip
from reporting.pdf_generator import ReportGenerator, ReportSuccess, generate_cma_pdf
from valuation.errors import ValidationError
from valuation.models import ListingStatus, MarketTrend
from valuation.policy import EnginePolicy


REFERENCE_DATE = date(2024, 6, 1)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def request_data():
    """A CMA/flip request as it would arrive in a JSON file."""
    comparables = []
    for i, price in enumerate((310000, 320000, 330000, 320000, 315000)):
        comparables.append({
            "listing_id": f"COMP-{i}",
            "city": "Reading",
            "latitude": 42.5 + 0.001 * (i + 1),
            "longitude": -71.1,
            "bedrooms": 3,
            "bathrooms": 2.0,
            "living_area": 1800,
            "lot_size_acres": 0.25,
            "year_built": 2015,
            "garage_spaces": 1,
            "status": "closed",
            "close_price": price,
            "close_date": (REFERENCE_DATE - timedelta(days=30 + i * 7)).isoformat(),
            "days_on_market": 21,
            "remarks": "Renovated throughout" if i % 2 == 0 else "",
        })

    return {
        "subject": {
            "listing_id": "SUBJ-1",
            "city": "Reading",
            "address": "12 Oak Street",
            "latitude": 42.5,
            "longitude": -71.1,
            "bedrooms": 3,
            "bathrooms": 2.0,
            "living_area": 1800,
            "lot_size_acres": 0.25,
            "year_built": 2015,
            "garage_spaces": 1,
            "list_price": 200000,
            "days_on_market": 30,
        },
        "comparables": comparables,
        "reference_date": REFERENCE_DATE.isoformat(),
    }


@pytest.fixture
def write_request(tmp_path):
    """Factory fixture writing a request JSON file."""
    def _write(data, name: str = "request.json") -> Path:
        path = tmp_path / name
        path.write_text(json.dumps(data))
        return path
    return _write


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ("LOG_LEVEL", "DEBUG", "POLICY_FILE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("REPORTS_DIR", str(tmp_path / "reports"))
    return monkeypatch


@pytest.fixture
def cma_report(request_data):
    return run_cma(parse_cma_request(request_data))


@pytest.fixture
def flip_analysis(request_data):
    data = dict(request_data, rehab_cost=40000, hold_months=6)
    return run_flip(parse_flip_request(data))


# =============================================================================
# Request Schemas
# =============================================================================

class TestRequestSchemas:
    """Tests for JSON request conversion."""

    def test_subject_record(self, request_data):
        subject = parse_cma_request(request_data).subject_record()

        assert subject.listing_id == "SUBJ-1"
        assert subject.list_price == Decimal("200000")
        assert subject.overrides == {}

    def test_pool_records(self, request_data):
        pool = parse_cma_request(request_data).pool()

        assert len(pool) == 5
        assert pool[0].status == ListingStatus.CLOSED
        assert pool[0].close_date == date(2024, 5, 2)
        assert pool[0].is_renovated

    def test_unknown_status_raises(self, request_data):
        request_data["comparables"][0]["status"] = "Withdrawn"

        with pytest.raises(ValidationError) as exc:
            parse_cma_request(request_data).pool()

        assert exc.value.field == "status"

    def test_missing_subject_rejected(self):
        with pytest.raises(SchemaError):
            parse_cma_request({"comparables": []})

    def test_negative_area_rejected_on_conversion(self, request_data):
        request_data["subject"]["living_area"] = -5

        with pytest.raises(ValidationError):
            parse_cma_request(request_data).subject_record()

    def test_filters(self, request_data):
        request_data["filters"] = {"statuses": ["Closed", "pending"], "max_price": 325000}

        filters = parse_cma_request(request_data).filters_record()

        assert filters.statuses == (ListingStatus.CLOSED, ListingStatus.PENDING)
        assert filters.max_price == Decimal("325000")

    def test_no_filters(self, request_data):
        assert parse_cma_request(request_data).filters_record() is None

    def test_market_trend_derived(self, request_data):
        request_data["market"] = {"city": "Reading", "months_supply": 7.5}

        market = parse_flip_request(request_data).market_record()

        assert market.trend == MarketTrend.BUYERS

    def test_market_trend_explicit(self, request_data):
        request_data["market"] = {"city": "Reading", "months_supply": 7.5, "trend": "Sellers"}

        market = parse_flip_request(request_data).market_record()

        assert market.trend == MarketTrend.SELLERS

    def test_policy_layered_over_base(self, request_data):
        request_data["policy"] = {"costs": {"commission_rate": 0.05}}
        base = EnginePolicy.from_dict({"deal": {"min_list_price": 150000}})

        policy = parse_flip_request(request_data).policy_record(base)

        assert policy.costs.commission_rate == Decimal("0.05")
        assert policy.deal.min_list_price == Decimal("150000")

    def test_empty_policy_keeps_base(self, request_data):
        base = EnginePolicy.from_dict({"deal": {"min_list_price": 150000}})

        assert parse_cma_request(request_data).policy_record(base) is base


# =============================================================================
# CLI
# =============================================================================

class TestCli:
    """Tests for the command line entry point."""

    def test_cma_to_stdout(self, clean_env, write_request, request_data, capsys):
        exit_code = main(["cma", str(write_request(request_data))])

        assert exit_code == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["subject"]["listing_id"] == "SUBJ-1"
        assert payload["estimate"]["comparables_count"] == 5
        assert payload["is_arv_mode"] is False

    def test_cma_arv_flag(self, clean_env, write_request, request_data, capsys):
        exit_code = main(["cma", str(write_request(request_data)), "--arv"])

        assert exit_code == 0
        assert json.loads(capsys.readouterr().out)["is_arv_mode"] is True

    def test_flip_to_file(self, clean_env, write_request, request_data, tmp_path):
        output = tmp_path / "flip.json"
        request_data.update(rehab_cost=40000, hold_months=6)

        exit_code = main(["flip", str(write_request(request_data)), "-o", str(output)])

        assert exit_code == 0
        payload = json.loads(output.read_text())
        assert payload["financials"]["rehab_cost"] == "40000.00"
        assert payload["score"]["disqualified"] is False

    def test_pdf_written_to_reports_dir(self, clean_env, write_request, request_data, tmp_path, capsys):
        exit_code = main(["cma", str(write_request(request_data)), "--pdf"])

        assert exit_code == 0
        pdfs = list((tmp_path / "reports").glob("*.pdf"))
        assert len(pdfs) == 1
        assert pdfs[0].read_bytes().startswith(b"%PDF")

    def test_missing_file(self, clean_env, tmp_path, capsys):
        exit_code = main(["cma", str(tmp_path / "absent.json")])

        assert exit_code == 1
        assert "File not found" in capsys.readouterr().err

    def test_invalid_json(self, clean_env, tmp_path, capsys):
        path = tmp_path / "broken.json"
        path.write_text("{")

        assert main(["flip", str(path)]) == 1
        assert "Invalid JSON" in capsys.readouterr().err

    def test_schema_error(self, clean_env, write_request, capsys):
        exit_code = main(["cma", str(write_request({"subject": {}}))])

        assert exit_code == 1
        assert "Invalid request" in capsys.readouterr().err

    def test_engine_validation_error(self, clean_env, write_request, request_data, capsys):
        request_data["rehab_cost"] = -1

        assert main(["flip", str(write_request(request_data))]) == 1
        assert "rehab_cost" in capsys.readouterr().err

    def test_bad_policy_override(self, clean_env, write_request, request_data, capsys):
        request_data["policy"] = {"costs": {"no_such_rate": 1}}

        assert main(["cma", str(write_request(request_data))]) == 1

    def test_requires_command(self):
        with pytest.raises(SystemExit):
            main([])


# =============================================================================
# PDF Reports
# =============================================================================

class TestPdfGeneration:
    """Tests for the ReportLab generator."""

    def test_cma_buffer_is_pdf(self, cma_report):
        content = ReportGenerator().cma_to_buffer(cma_report)

        assert content.startswith(b"%PDF")
        assert len(content) > 1000

    def test_flip_buffer_is_pdf(self, flip_analysis):
        content = ReportGenerator().flip_to_buffer(flip_analysis)

        assert content.startswith(b"%PDF")

    def test_disqualified_flip_renders(self, request_data):
        request_data["comparables"] = []
        analysis = run_flip(parse_flip_request(request_data))

        content = ReportGenerator().flip_to_buffer(analysis)

        assert analysis.disqualified
        assert content.startswith(b"%PDF")

    def test_deterministic_output(self, cma_report):
        generator = ReportGenerator()

        assert generator.cma_to_buffer(cma_report) == generator.cma_to_buffer(cma_report)

    def test_generate_cma_report(self, cma_report, tmp_path):
        result = generate_cma_pdf(cma_report, tmp_path)

        assert isinstance(result, ReportSuccess)
        assert result.path == tmp_path / f"{cma_report.report_id}.pdf"
        assert result.path.exists()

    def test_generate_flip_report(self, flip_analysis, tmp_path):
        result = ReportGenerator(tmp_path).generate_flip_report(flip_analysis)

        assert result.path.name == "FLIP-SUBJ-1-20240601.pdf"
        assert result.title == "Flip Analysis - SUBJ-1"
