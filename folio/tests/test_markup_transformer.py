"""Tests for the markup -> HTML transformer."""

import pytest

from folio.features.markup.service import MarkupTransformer, transform
from folio.features.markup.stages import PIPELINE, MarkupStage


@pytest.mark.parametrize(
    "markup,expected",
    [
        ("# Title", "<h1>Title</h1>"),
        ("## Part", "<h2>Part</h2>"),
        ("### Scene", "<h3>Scene</h3>"),
    ],
)
def test_headers(markup, expected):
    assert transform(markup) == expected


def test_four_hashes_is_not_a_header():
    assert transform("#### too deep") == "<p>#### too deep</p>"


def test_emphasis_precedence():
    html = transform("***both*** **bold** *italic*")
    assert html == "<p><strong><em>both</em></strong> <strong>bold</strong> <em>italic</em></p>"


def test_underscore_emphasis_and_words_with_underscores():
    assert transform("__bold__ and _it_") == "<p><strong>bold</strong> and <em>it</em></p>"
    assert transform("snake_case_name") == "<p>snake_case_name</p>"


def test_links_and_unsafe_schemes():
    assert transform("[site](https://example.com)") == '<p><a href="https://example.com">site</a></p>'
    assert 'href="#"' in transform("[x](javascript:alert(1))")


def test_emphasis_markers_inside_a_url_leave_no_tags_in_the_href():
    assert transform("[l](http://x/*a*)") == '<p><a href="http://x/a">l</a></p>'
    assert transform("[l](http://x/**a**)") == '<p><a href="http://x/a">l</a></p>'
    assert 'href="#"' in transform("[x](*javascript:alert(1)*)")


def test_contiguous_list_items_share_one_container():
    html = transform("- a\n- b\n- c")
    assert html == "<ul><li>a</li><li>b</li><li>c</li></ul>"


def test_separated_list_runs_become_independent_lists():
    html = transform("- a\n- b\n\nbetween\n\n- c")
    assert html.count("<ul>") == 2
    assert "<ul><li>a</li><li>b</li></ul>" in html
    assert "<ul><li>c</li></ul>" in html
    assert "<p>between</p>" in html


def test_ordered_list():
    assert transform("1. one\n2. two") == "<ol><li>one</li><li>two</li></ol>"


def test_blockquote():
    assert transform("> quoted line") == "<blockquote>quoted line</blockquote>"


def test_fenced_code_block():
    html = transform("```python\nprint(1)\n```")
    assert html == '<pre><code class="language-python">print(1)</code></pre>'


def test_fenced_code_keeps_newlines():
    html = transform("```\nline one\nline two\n```")
    assert html == "<pre><code>line one\nline two</code></pre>"
    assert "<br>" not in html


def test_unterminated_fence_is_literal_text():
    html = transform("```\ncode without end")
    assert "<pre>" not in html
    assert "```" in html
    assert "code without end" in html


def test_inline_code():
    assert transform("use `x = 1` here") == "<p>use <code>x = 1</code> here</p>"


def test_paragraphs_and_line_breaks():
    assert transform("a\nb\n\nc") == "<p>a<br>b</p>\n<p>c</p>"


def test_crlf_is_normalised():
    assert transform("a\r\nb\r\n\r\nc") == transform("a\nb\n\nc")


def test_author_html_is_escaped():
    html = transform("<script>alert(1)</script> & more")
    assert "<script" not in html
    assert "&lt;script>" in html
    assert "&amp; more" in html


@pytest.mark.parametrize("value", [None, "", 42, b"bytes"])
def test_non_text_or_empty_input_yields_empty_string(value):
    assert transform(value) == ""


def test_transform_is_deterministic():
    text = "# T\n\n**b** and [l](https://x.y)\n\n- one\n- two\n\n```\nc\n```"
    assert transform(text) == transform(text)


def test_failing_stage_is_skipped():
    def boom(_text):
        raise RuntimeError("stage exploded")

    transformer = MarkupTransformer(stages=[PIPELINE[0], MarkupStage("boom", boom), *PIPELINE[1:]])
    assert transformer.transform("**bold**") == "<p><strong>bold</strong></p>"
