"""Tests for URL/asset normalization and spec-table synthesis."""

from normalize import (
    dedup_ordered,
    normalize_image,
    render_spec_html,
    strip_display_suffix,
    synthesize_spec_blocks,
    to_absolute,
)
from records import SpecBlock, SpecRow

from conftest import ORIGIN


def test_to_absolute_joins_relative_paths():
    assert to_absolute(ORIGIN, "/gb/products/foo/") == f"{ORIGIN}/gb/products/foo/"


def test_to_absolute_passes_through_absolute_and_none():
    url = "https://cdn.example.com/img.png"
    assert to_absolute(ORIGIN, url) == url
    assert to_absolute(ORIGIN, None) is None
    assert to_absolute(ORIGIN, "   ") is None


def test_to_absolute_protocol_relative():
    assert to_absolute(ORIGIN, "//cdn.example.com/a.png") == "https://cdn.example.com/a.png"


def test_strip_display_suffix():
    url = f"{ORIGIN}/getmedia/abc/x.png?width=400&height=500"
    assert strip_display_suffix(url) == f"{ORIGIN}/getmedia/abc/x.png?width=400"
    assert strip_display_suffix("https://a/b.png") == "https://a/b.png"


def test_normalize_image_resolves_then_strips():
    assert normalize_image(ORIGIN, "/img/a.png?w=1&height=500") == f"{ORIGIN}/img/a.png?w=1"
    assert normalize_image(ORIGIN, None) is None


def test_dedup_ordered_keeps_first_occurrence():
    urls = ["b", "a", "b", "c", "a", None, ""]
    assert dedup_ordered(urls) == ["b", "a", "c"]


def _two_tables():
    return [
        {
            "title": " Electrical ",
            "rows": [
                [],
                ["Voltage", "230 V"],
                ["Frequency ", " 50 Hz"],
            ],
        },
        {
            "title": "Physical",
            "rows": [
                [],
                ["Weight", "2.1 kg"],
                ["Footnote", ""],
            ],
        },
    ]


def test_synthesize_two_tables_skips_single_cell_row():
    blocks = synthesize_spec_blocks(_two_tables())

    assert [b.table_title for b in blocks] == ["Electrical", "Physical"]
    assert blocks[0].rows == [
        SpecRow(spec_name="Voltage", spec_value="230 V"),
        SpecRow(spec_name="Frequency", spec_value="50 Hz"),
    ]
    assert blocks[1].rows == [SpecRow(spec_name="Weight", spec_value="2.1 kg")]


def test_synthesize_is_idempotent():
    assert synthesize_spec_blocks(_two_tables()) == synthesize_spec_blocks(_two_tables())


def test_synthesize_skips_untitled_tables_and_header_row():
    raw = [
        {"title": None, "rows": [[], ["A", "1"]]},
        {"title": "Only", "rows": [["Header", "Row"], ["B", "2"], ["lonely"]]},
    ]
    blocks = synthesize_spec_blocks(raw)
    assert len(blocks) == 1
    assert blocks[0].rows == [SpecRow(spec_name="B", spec_value="2")]


def test_synthesize_tolerates_garbage():
    assert synthesize_spec_blocks(None) == []
    assert synthesize_spec_blocks([None, "x", {"title": "T"}]) == [SpecBlock(table_title="T")]


def test_render_spec_html_escapes_text():
    blocks = [SpecBlock(table_title="I/O <ports>", rows=[SpecRow(spec_name="USB", spec_value="2 & 3")])]
    rendered = render_spec_html(blocks)
    assert rendered.startswith("<h3>I/O &lt;ports&gt;</h3>")
    assert "<tr><td>USB</td><td>2 &amp; 3</td></tr>" in rendered
    assert rendered.endswith("</tbody></table><br><br>")
    assert render_spec_html([]) == ""
