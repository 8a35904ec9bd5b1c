"""Combine regex and language-model extraction results."""

from typing import Optional

from docverify.schemas.verification import ExtractedFields, ModelExtraction
from docverify.services.parser import parse_date, sanitize_policy_number, sanitize_text


def merge_fields(
    regex_fields: ExtractedFields, model_fields: Optional[ModelExtraction],
) -> ExtractedFields:
    """Regex values win; model values only fill gaps. Coverage is unioned."""
    coverage = list(regex_fields.coverage)
    if model_fields is None:
        return regex_fields.model_copy(update={"coverage": coverage})

    for label in model_fields.coverage:
        if label and label not in coverage:
            coverage.append(label)

    return ExtractedFields(
        issuer=regex_fields.issuer or sanitize_text(model_fields.issuer),
        policy_number=(
            regex_fields.policy_number or sanitize_policy_number(model_fields.policy_number)
        ),
        effective_from=regex_fields.effective_from or parse_date(model_fields.effective_from),
        effective_to=regex_fields.effective_to or parse_date(model_fields.effective_to),
        coverage=coverage,
    )
