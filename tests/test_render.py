from __future__ import annotations

import pytest

from hengpai.render import html_to_markdown


def test_heading_and_paragraph() -> None:
    assert html_to_markdown("<h1>A</h1><p>B</p>") == "# A\n\nB"


def test_heading_levels() -> None:
    assert html_to_markdown("<h3>Deep</h3>") == "### Deep"
    assert html_to_markdown("<h2>  </h2><p>x</p>") == "x"


@pytest.mark.parametrize(
    ("markup", "expected"),
    [
        ("<p><strong>bold</strong> and <em>it</em></p>", "**bold** and *it*"),
        ("<p><b>b</b> <i>i</i></p>", "**b** *i*"),
        ("<p><u>u</u> <mark>m</mark> <del>d</del></p>", "++u++ ==m== ~~d~~"),
        ("<p>use <code>ls</code></p>", "use `ls`"),
        ("<p>a<br/>b</p>", "a\nb"),
    ],
)
def test_inline_markup(markup: str, expected: str) -> None:
    assert html_to_markdown(markup) == expected


def test_links_and_images() -> None:
    markup = '<p><a href="http://x">site</a><a href="http://y"></a></p><p><img src="a.png" alt="pic"/></p>'
    assert html_to_markdown(markup) == "[site](http://x)\n\n![pic](a.png)"


def test_nested_lists_are_flattened() -> None:
    markup = "<ul><li>one<ul><li>two</li></ul></li><li>three</li></ul>"
    assert html_to_markdown(markup) == "- one\n- two\n- three"


def test_ordered_list() -> None:
    assert html_to_markdown("<ol><li>a</li><li>b</li></ol>") == "1. a\n2. b"


def test_blockquote() -> None:
    markup = "<blockquote><p>q1</p><p>q2</p></blockquote>"
    assert html_to_markdown(markup) == "> q1\n>\n> q2"


def test_preformatted_block_keeps_indentation() -> None:
    markup = "<p>before</p><pre>x = 1\n  y = 2</pre>"
    assert html_to_markdown(markup) == "before\n\n```\nx = 1\n  y = 2\n```"


def test_table_gets_separator_after_first_row() -> None:
    markup = (
        "<table><tr><th>h1</th><th>h2</th></tr>"
        "<tr><td>a|b</td><td>c</td></tr></table>"
    )
    assert html_to_markdown(markup) == "| h1 | h2 |\n| --- | --- |\n| a\\|b | c |"


def test_horizontal_rule() -> None:
    assert html_to_markdown("<p>a</p><hr/><p>b</p>") == "a\n\n---\n\nb"


def test_entities_are_decoded() -> None:
    assert html_to_markdown("<p>&lt;tag&gt; &amp; &quot;q&quot;</p>") == '<tag> & "q"'


def test_head_script_style_and_comments_are_dropped() -> None:
    markup = (
        '<?xml version="1.0" encoding="utf-8"?>'
        "<html><head><title>T</title><style>p{}</style></head>"
        "<body><script>x()</script><!-- note --><div><p>kept</p></div></body></html>"
    )
    assert html_to_markdown(markup) == "kept"


def test_blank_runs_collapse() -> None:
    markup = "<div><p>a</p></div><div></div><div><p>b</p></div>"
    assert html_to_markdown(markup) == "a\n\nb"


def test_nested_table_rows_render_once() -> None:
    markup = (
        "<table><tr><td>a</td></tr>"
        "<tr><td><table><tr><td>in</td></tr></table></td></tr></table>"
    )
    assert html_to_markdown(markup) == "| a |\n| --- |\n| in |"


def test_preformatted_fence_outlasts_backticks_in_body() -> None:
    markup = "<pre>a\n```\nb</pre><p>after</p>"
    assert html_to_markdown(markup) == "````\na\n```\nb\n````\n\nafter"


@pytest.mark.parametrize(
    ("markup", "expected"),
    [
        ('<a href="x"><h2>T</h2></a>', "## [T](x)"),
        ('<a href="x"><p>Go</p></a>', "[Go](x)"),
        ('<a><h3>Plain</h3></a>', "### Plain"),
    ],
)
def test_link_around_block_links_its_first_line(markup: str, expected: str) -> None:
    assert html_to_markdown(markup) == expected
