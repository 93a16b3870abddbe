from src.functions.device_crawler.core.extraction import TableExtractor

from tests.device_crawler.fixtures import DETAIL_HTML, LISTING_HTML


def test_rows_and_cells_in_document_order():
    rows = list(TableExtractor().extract_rows(LISTING_HTML))

    assert len(rows) == 3
    assert rows[0].texts == ()
    assert rows[1].texts == ("0001", "22/08/03 15:09", "Auto", "Fe")
    assert rows[2].text_at(3) == "Cu"


def test_first_anchor_target_and_text():
    rows = list(TableExtractor().extract_rows(LISTING_HTML))

    link = rows[1].link_at(0)
    assert link.href == "./detail.cgi?id=1"
    assert link.text == "0001"
    assert rows[1].has_link
    assert not rows[0].has_link
    assert rows[1].link_at(1) is None


def test_reparsing_is_deterministic():
    extractor = TableExtractor()

    first = list(extractor.extract_rows(DETAIL_HTML))
    second = list(extractor.extract_rows(DETAIL_HTML))

    assert first == second
    assert len(first) == 4


def test_each_call_returns_fresh_sequence():
    extractor = TableExtractor()
    rows = extractor.extract_rows(DETAIL_HTML)

    assert len(list(rows)) == 4
    assert list(rows) == []
    assert len(list(extractor.extract_rows(DETAIL_HTML))) == 4


def test_out_of_range_columns_use_default():
    row = next(iter(TableExtractor().extract_rows("<table><tr><td>1</td></tr></table>")))

    assert row.text_at(5) == ""
    assert row.text_at(5, default="n/a") == "n/a"
    assert row.link_at(-1) is None


def test_nested_table_cells_are_not_merged_into_outer_row():
    html = "<table><tr><td>outer<table><tr><td>inner</td></tr></table></td><td>x</td></tr></table>"

    rows = list(TableExtractor().extract_rows(html))

    assert rows[0].text_at(1) == "x"
    assert len(rows[0].cells) == 2
    assert rows[1].texts == ("inner",)


def test_empty_html_has_no_rows():
    extractor = TableExtractor()

    assert list(extractor.extract_rows("")) == []
    assert list(extractor.extract_rows(None)) == []
    assert list(extractor.extract_rows("<p>no table</p>")) == []
