from __future__ import annotations

import pytest

from app.services.csv_rows import CsvValidationError, normalize_header, parse_batch_csv


def _csv(rows: int, header: str = "make,model,year") -> str:
    lines = [header] + [f"Toyota,Model{number},2020" for number in range(rows)]
    return "\n".join(lines) + "\n"


def test_parses_rows_in_order() -> None:
    rows = parse_batch_csv(_csv(3))

    assert [row.model for row in rows] == ["Model0", "Model1", "Model2"]
    assert rows[0].make == "Toyota"


def test_headers_are_normalized_and_aliased() -> None:
    text = "Make, Body Style ,Aspect,BG\nHonda,SUV,16:9,hub\n"

    (row,) = parse_batch_csv(text)

    assert row.make == "Honda"
    assert row.body_style == "SUV"
    assert row.aspect_ratio == "16:9"
    assert row.background == "hub"


@pytest.mark.parametrize(
    ("header", "expected"),
    [("Aspect Ratio", "aspect_ratio"), ("aspectratio", "aspect_ratio"), ("BodyStyle", "body_style"), ("Trim", "trim")],
)
def test_normalize_header(header, expected) -> None:
    assert normalize_header(header) == expected


def test_byte_order_mark_is_ignored() -> None:
    (row,) = parse_batch_csv("\ufeffmake,model\nKia,Rio\n")

    assert row.make == "Kia"


def test_blank_lines_are_skipped() -> None:
    rows = parse_batch_csv("make,model\n\nKia,Rio\n,\nMazda,3\n")

    assert [row.make for row in rows] == ["Kia", "Mazda"]


def test_header_only_is_rejected() -> None:
    with pytest.raises(CsvValidationError) as excinfo:
        parse_batch_csv("make,model\n")

    assert excinfo.value.message == "CSV must have at least two rows (header + data)"


def test_field_count_mismatch_is_malformed() -> None:
    with pytest.raises(CsvValidationError) as excinfo:
        parse_batch_csv("make,model\nKia,Rio,extra\nMazda\n")

    assert excinfo.value.message == "Malformed CSV"
    kinds = [detail["type"] for detail in excinfo.value.details]
    assert kinds == ["TooManyFields", "TooFewFields"]


def test_unclosed_quote_is_malformed() -> None:
    with pytest.raises(CsvValidationError) as excinfo:
        parse_batch_csv('make,model\nFord,Focus\nKia,"Rio\n')

    assert excinfo.value.message == "Malformed CSV"
    assert [detail["type"] for detail in excinfo.value.details] == ["Quotes"]


def test_quoted_fields_with_commas_are_kept_whole() -> None:
    rows = parse_batch_csv('make,model\nLand Rover,"Range Rover, HSE"\n')

    assert rows[0].model == "Range Rover, HSE"


def test_fifty_rows_are_accepted() -> None:
    assert len(parse_batch_csv(_csv(50))) == 50


def test_fifty_one_rows_are_rejected() -> None:
    with pytest.raises(CsvValidationError) as excinfo:
        parse_batch_csv(_csv(51))

    assert excinfo.value.message == "Row limit exceeded (50 max)"


def test_row_limit_is_configurable() -> None:
    with pytest.raises(CsvValidationError, match=r"\(2 max\)"):
        parse_batch_csv(_csv(3), max_rows=2)
