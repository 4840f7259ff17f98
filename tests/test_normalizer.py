import pytest

from normalizer import ChapterNumberParser, ContentCleaner, GenreNormalizer


def test_clean_text_strips_markup_and_keeps_paragraphs():
    cleaner = ContentCleaner()

    text = cleaner.clean_text("<p>Hunters   and <b>gates</b></p><p>Second<br/>line</p>")

    assert text == "Hunters and gates\nSecond\nline"


def test_clean_text_empty():
    cleaner = ContentCleaner()

    assert cleaner.clean_text(None) is None
    assert cleaner.clean_text("<p> </p>") is None


def test_genres_deduplicated_by_slug():
    genres = GenreNormalizer.normalize_genres(["Sci-Fi", "sci fi", " Drama ", ""])

    assert genres == ["Sci-Fi", "Drama"]


@pytest.mark.parametrize("label,expected", [
    ("Глава 12", 12.0),
    ("Том 2 Глава 12,5", 12.5),
    ("Chapter 7.1 - The Gate", 7.1),
    ("Пролог", None),
    (None, None),
])
def test_number_from_label(label, expected):
    assert ChapterNumberParser.from_label(label) == expected


def test_number_from_url():
    assert ChapterNumberParser.from_url("https://mangashi.org/manga/solo/glava-7/") == 7.0
    assert ChapterNumberParser.from_url("https://mangashi.org/manga/solo/extra/") is None


@pytest.mark.parametrize("value", [None, True, "abc", "nan", "inf"])
def test_to_number_rejects_non_numeric(value):
    assert ChapterNumberParser.to_number(value) is None


def test_default_name():
    assert ChapterNumberParser.default_name(3.0) == "Глава 3"
    assert ChapterNumberParser.default_name(3.5) == "Глава 3.5"
    assert ChapterNumberParser.default_name(None) == "Без названия"


def test_clean_text_paragraph_attributes():
    cleaner = ContentCleaner()

    assert cleaner.clean_text('<p class="lead">Один</p>\n<p>Два</p>') == "Один\nДва"
