"""Regex field extraction and date parsing."""

from datetime import date

import pytest

from docverify.services.parser import (
    detect_coverage,
    extract_fields,
    parse_date,
    sanitize_policy_number,
    sanitize_text,
)


def test_extracts_sample_certificate(sample_coi_text):
    fields = extract_fields(sample_coi_text)

    assert fields.policy_number == "GL-123456789"
    assert fields.issuer == "Lone Star General Insurance Co."
    assert fields.effective_from == date(2024, 4, 1)
    assert fields.effective_to == date(2025, 4, 1)
    assert fields.coverage == ["General Liability", "Workers Compensation"]


def test_extracts_short_policy_label_and_carrier(expired_coi_text):
    fields = extract_fields(expired_coi_text)

    assert fields.policy_number == "WC-55512"
    assert fields.issuer == "Gulf Coast Casualty Company"
    assert fields.effective_from == date(2023, 1, 1)
    assert fields.effective_to == date(2023, 12, 31)


def test_empty_text_yields_empty_fields():
    fields = extract_fields("   ")
    assert fields.policy_number is None
    assert fields.issuer is None
    assert fields.coverage == []


def test_issuer_falls_back_to_produced_by():
    text = "Produced by: Hill Country Agency LLC\nPolicy Number: BD-7788"
    fields = extract_fields(text)
    assert fields.issuer == "Hill Country Agency LLC"


@pytest.mark.parametrize("raw", ["04/01/2024", "04-01-24", "April 1, 2024", "April 1st, 2024"])
def test_parse_date_formats_agree(raw):
    assert parse_date(raw) == date(2024, 4, 1)


@pytest.mark.parametrize("raw", ["invalid", "", None, "13/45/2024"])
def test_parse_date_returns_none(raw):
    assert parse_date(raw) is None


@pytest.mark.parametrize("raw, expected", [
    ("April 2024", date(2024, 4, 1)),
    ("2025", date(2025, 1, 1)),
    ("Dec 2023", date(2023, 12, 1)),
])
def test_parse_date_partial_dates_are_deterministic(raw, expected):
    assert parse_date(raw) == expected


def test_partial_expiration_date_does_not_depend_on_run_day():
    fields = extract_fields("Policy Number: GL-998877\nExpiration Date: June 2025\nCoverage: Umbrella")
    assert fields.effective_to == date(2025, 6, 1)


def test_parse_date_numeric_fallback_infers_century():
    assert parse_date("valid thru 12/31/99 only") == date(1999, 12, 31)
    assert parse_date("ref 01-15-30 end") == date(2030, 1, 15)


def test_sanitize_policy_number():
    assert sanitize_policy_number(" gl 12-34 ") == "GL12-34"
    assert sanitize_policy_number("ab") is None
    assert sanitize_policy_number(None) is None
    assert sanitize_policy_number("ab1", min_length=3) == "AB1"


def test_sanitize_text_drops_short_values():
    assert sanitize_text("  Acme \n Mutual ") == "Acme Mutual"
    assert sanitize_text("AB") is None


def test_detect_coverage_dedupes_labels():
    text = "Workers Compensation ... worker's compensation, Umbrella, surety BOND"
    assert detect_coverage(text) == ["Workers Compensation", "Umbrella", "Bond"]
