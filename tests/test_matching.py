import pytest

from matching import (
    format_identifier,
    identifiers_match,
    in_selection,
    is_new,
    parse_chapter_selection,
    select_new_chapters,
)
from sources import ChapterRef


def ref(number, name=None):
    return ChapterRef(
        name=name or f"Глава {number}",
        number=number,
        locator=f"https://mangabuff.ru/manga/1-x/{number}",
        source="https://mangabuff.ru/manga/1-x",
    )


@pytest.mark.parametrize("candidate, existing, expected", [
    (12, "12.000", True),
    (12, 12.0, True),
    (12, 12.5, False),
    (7, 7.0009, True),
    (7, 7.01, False),
    (12.5, "12.5", True),
    ("extra", "extra", True),
    ("Extra", "extra", False),
    (1, "1a", False),
    (3, 4, False),
])
def test_identifiers_match(candidate, existing, expected):
    assert identifiers_match(candidate, existing) is expected


def test_is_new_against_catalog_identifiers():
    existing = ["1", "2", "2.5", "extra"]

    assert is_new(3, existing)
    assert not is_new(2.0, existing)
    assert not is_new(2.5004, existing)


def test_format_identifier_is_canonical():
    assert format_identifier(12.0) == "12"
    assert format_identifier(12.5) == "12.5"
    assert format_identifier("extra") == "extra"


def test_select_new_chapters_skips_unnumbered_and_duplicates():
    refs = [ref(1), ref(None, name="Анонс"), ref(2), ref(3), ref(3.0)]

    new = select_new_chapters(refs, ["1"])

    assert [r.number for r in new] == [2, 3]


def test_select_new_chapters_with_nothing_new():
    assert select_new_chapters([ref(1), ref(2)], ["1", "2.000"]) == []


def test_parse_chapter_selection_ranges_and_numbers():
    assert parse_chapter_selection(["1-3", "7", " "]) == {1, 2, 3, 7}


@pytest.mark.parametrize("bad", [["5-1"], ["a"], ["1-b"]])
def test_parse_chapter_selection_rejects_malformed_input(bad):
    with pytest.raises(ValueError):
        parse_chapter_selection(bad)


def test_in_selection():
    selection = {1, 2}

    assert in_selection(ref(2), selection)
    assert not in_selection(ref(2.5), selection)
    assert not in_selection(ref(None, name="Анонс"), selection)
