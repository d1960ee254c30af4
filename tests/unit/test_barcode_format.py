# tests/unit/test_barcode_format.py
from __future__ import annotations

import pytest

from stockflow.services.barcode_generator import (
    ALPHABET,
    BarcodeGenerator,
    check_char,
    compose_barcode,
    format_barcode_for_display,
    normalize_barcode,
    random_token,
    validate_check_digit,
)
from stockflow.services.inventory_errors import ValidationError


def test_compose_layout_category_sku_token_sequence_check():
    code = compose_barcode(category="Electronics", sku="WIDG-001", token="7k2qz9", box_sequence=12)

    assert code.startswith("ELE" + "WIDG" + "7K2QZ9" + "0012")
    assert len(code) == 3 + 4 + 6 + 4 + 1
    assert code[-1] == check_char(code[:-1])
    assert validate_check_digit(code)


def test_compose_pads_short_or_missing_prefixes():
    code = compose_barcode(category=None, sku="ab", token="AAAAAA", box_sequence=1)
    assert code.startswith("GEN" + "ABXX")

    code = compose_barcode(category="--", sku=None, token="AAAAAA", box_sequence=None)
    assert code.startswith("GEN" + "XXXX" + "AAAAAA" + "0000")


@pytest.mark.parametrize("seq", [-1, 10000])
def test_compose_rejects_out_of_range_sequence(seq):
    with pytest.raises(ValidationError):
        compose_barcode(category="ELE", sku="WIDG", token="AAAAAA", box_sequence=seq)


def test_wrong_check_char_is_detected():
    code = compose_barcode(category="ELE", sku="WIDG", token="Q1W2E3", box_sequence=3)
    bad_check = next(ch for ch in ALPHABET if ch != code[-1])

    assert not validate_check_digit(code[:-1] + bad_check)
    assert not validate_check_digit("")
    assert not validate_check_digit("A")


def test_display_format_round_trips_through_normalize():
    code = compose_barcode(category="ELE", sku="WIDG", token="Q1W2E3", box_sequence=3)
    shown = format_barcode_for_display(code)

    assert "-" in shown
    assert normalize_barcode(shown) == code
    assert normalize_barcode(f" {shown.lower()} ") == code
    assert validate_check_digit(shown)


def test_format_groups_of_four():
    assert format_barcode_for_display("abcdefghij") == "ABCD-EFGH-IJ"


def test_random_token_alphabet_and_length():
    tok = random_token(8)
    assert len(tok) == 8
    assert set(tok) <= set(ALPHABET)


@pytest.mark.parametrize("attempts", [0, -1])
def test_generator_rejects_non_positive_attempt_bound(attempts):
    with pytest.raises(ValidationError):
        BarcodeGenerator(max_attempts=attempts)


def test_generator_attempt_bound_defaults_to_settings(settings_env):
    settings_env(BARCODE_MAX_ATTEMPTS="7")
    assert BarcodeGenerator().max_attempts == 7
    assert BarcodeGenerator(max_attempts=1).max_attempts == 1
