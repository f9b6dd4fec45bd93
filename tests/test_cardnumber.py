"""Tests for card number sanitizing and parsing."""

import pytest

from ws_scraper.cardnumber import (
    CardNumberParts,
    parse_card_number,
    parse_release,
    sanitize_card_number,
)


@pytest.mark.parametrize("raw,expected", [
    ("BD/W63-036SPMa", "BD/W63-036SPMa"),
    ("TSK/S82-E070SSP%2B", "TSK/S82-E070SSP+"),
    ("RWBY/BRO2021-01+PR", "RWBY/BRO2021-01 PR"),
    ("AB/C+D-01+", "AB/C D-01+"),
])
def test_sanitize_card_number(raw, expected):
    assert sanitize_card_number(raw) == expected


@pytest.mark.parametrize("release,expected", [
    ("W63", "63"),
    ("BSL2021", "2021"),
    ("EN-W03", "03"),
    ("WX04", "04"),
    ("TCPR", ""),
    ("", ""),
])
def test_parse_release(release, expected):
    assert parse_release(release) == expected


def test_parse_standard_card_number():
    parts = parse_card_number("BD/W63-036SPMa")
    assert parts == CardNumberParts(
        set_id="BD", release="W63", release_pack_id="63", sequence_id="036SPMa"
    )


def test_parse_hyphenated_release():
    parts = parse_card_number("BD/EN-W03-004")
    assert parts.set_id == "BD"
    assert parts.release == "EN-W03"
    assert parts.release_pack_id == "03"
    assert parts.sequence_id == "004"


def test_parse_trailing_plus():
    parts = parse_card_number(sanitize_card_number("TSK/S82-E070SSP%2B"))
    assert parts.release == "S82"
    assert parts.release_pack_id == "82"
    assert parts.sequence_id == "E070SSP+"


def test_parse_falls_back_to_split():
    # The space left by sanitizing breaks the strict pattern
    parts = parse_card_number("RWBY/BRO2021-01 PR")
    assert parts.set_id == "RWBY"
    assert parts.release == "BRO2021"
    assert parts.release_pack_id == "2021"
    assert parts.sequence_id == "01 PR"


def test_parse_promo_without_pack_id():
    parts = parse_card_number("WS/TCPR-P01")
    assert parts.release == "TCPR"
    assert parts.release_pack_id == ""
    assert parts.sequence_id == "P01"


def test_parse_without_hyphen():
    parts = parse_card_number("XX/ODD NUMBER")
    assert parts.set_id == "XX"
    assert parts.release == ""
    assert parts.sequence_id == ""


def test_parse_without_slash():
    assert parse_card_number("garbage") == CardNumberParts()
