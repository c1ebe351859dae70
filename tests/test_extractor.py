import pytest

from readium.services.exceptions import TokenStreamError
from readium.services.extractor import extract, extract_html
from readium.services.tokens import EndOfStream, EndTag, Error, StartTag, Text


def test_extract_worked_example_drops_script_and_unknown_inline_tag():
    html = b"<article><h1>Title</h1><script>alert(1)</script><p>Hi <b>there</b></p></article>"

    result = extract_html(html)

    assert result.content == b"<h1 >\nTitle</h1>\n<p >\nHi </p>\n"
    assert result.error is None
    assert result.warnings == []


def test_extract_ignores_everything_outside_the_article():
    html = (
        "<html><head><title>Page</title></head><body>"
        "<nav>Menu</nav><p>Lead</p>"
        "<article><p>Body</p></article>"
        "<p>Trailer</p><footer>x</footer></body></html>"
    )

    assert extract_html(html).content == b"<p >\nBody</p>\n"


def test_extract_keeps_only_allowed_attributes_in_source_order():
    html = '<article><a class="c" title="T" onclick="e()" href="/x">link</a></article>'

    assert extract_html(html).content == b'<a title="T" href="/x">\nlink</a>\n'


def test_extract_keeps_duplicate_allowed_attributes():
    html = '<article><a href="/one" href="/two">x</a></article>'

    assert extract_html(html).content == b'<a href="/one" href="/two">\nx</a>\n'


@pytest.mark.parametrize(
    "markup, expected",
    [
        ('<article><img src="/a.png" alt="a"/></article>', b'<img src="/a.png">\n'),
        ("<article><br/></article>", b"<br >\n"),
    ],
)
def test_extract_emits_self_closing_void_content_tags(markup, expected):
    assert extract_html(markup).content == expected


def test_extract_void_start_tag_is_discarded_with_what_follows():
    tokens = [
        StartTag("article", []),
        StartTag("p", []),
        Text("a"),
        StartTag("br", []),
        Text("b"),
        EndTag("p"),
        EndTag("article"),
        EndOfStream(),
    ]

    result = extract(tokens)

    assert result.content == b"<p >\na"
    assert result.complete


def test_extract_unslashed_img_suppresses_rest_of_article():
    html = '<article><p>before</p><img src="/a.png"><p>after</p></article>'

    assert extract_html(html).content == b"<p >\nbefore</p>\n"


@pytest.mark.parametrize(
    "markup, expected",
    [
        ('<article><img src="/a.png" alt="a"></article>', b'<img src="/a.png">\n'),
        ("<article><br></article>", b"<br >\n"),
        ("<article><p>a<br>b</p></article>", b"<p >\na<br >\nb</p>\n"),
        ("<article><hr><meta charset='utf-8'><p>x</p></article>", b"<p >\nx</p>\n"),
    ],
)
def test_extract_void_start_tags_option_treats_them_as_self_closing(markup, expected):
    assert extract_html(markup, void_start_tags=True).content == expected


def test_extract_suppresses_whole_unknown_subtree():
    html = (
        "<article><p>keep</p>"
        "<nav><p>drop</p><div><span>deep</span></div><img src='/x.png'/></nav>"
        "<p>after</p></article>"
    )

    result = extract_html(html)

    assert result.content == b"<p >\nkeep</p>\n<p >\nafter</p>\n"
    assert b"drop" not in result.content
    assert b"deep" not in result.content


def test_extract_nested_unknown_tags_accumulate_depth():
    html = "<article><aside><aside>inner</aside>outer</aside><p>ok</p></article>"

    assert extract_html(html).content == b"<p >\nok</p>\n"


def test_extract_mismatched_end_tag_warns_and_keeps_suppressing():
    html = (
        "<article><aside><p>hidden</p></footer>"
        "<p>still hidden</p></aside><p>shown</p></article>"
    )

    result = extract_html(html)

    assert result.content == b"<p >\nshown</p>\n"
    assert len(result.warnings) == 1
    assert "footer" in result.warnings[0]
    assert "aside" in result.warnings[0]


def test_extract_unexpected_end_tag_with_empty_stack_only_warns():
    html = "<article><p>a</p></aside><p>b</p></article>"

    result = extract_html(html)

    assert result.content == b"<p >\na</p>\n<p >\nb</p>\n"
    assert result.warnings == ["cannot discard 'aside': empty stack"]


def test_extract_unknown_tags_outside_article_do_not_warn():
    result = extract_html("<div></aside></div><article><p>x</p></article></nav>")

    assert result.content == b"<p >\nx</p>\n"
    assert result.warnings == []


def test_extract_first_article_close_ends_the_region():
    html = "<article><article><p>x</p></article><p>y</p></article>"

    assert extract_html(html).content == b"<p >\nx</p>\n"


def test_extract_ignores_unknown_self_closing_tags():
    html = "<article><hr/><foo/><p>x</p></article>"

    assert extract_html(html).content == b"<p >\nx</p>\n"


def test_extract_unslashed_unknown_void_tags_are_discarded():
    html = "<article><p>x</p><hr><p>y</p><meta charset='utf-8'></article>"

    result = extract_html(html)

    assert result.content == b"<p >\nx</p>\n"
    assert result.warnings == []


def test_extract_never_emits_the_article_tag(article_html):
    result = extract_html(article_html)

    assert b"article" not in result.content
    assert b"Chrome title" not in result.content
    assert b"Footer text" not in result.content
    assert b"Related links" not in result.content
    assert b"<h1 >\nA Story</h1>\n" in result.content
    assert b'<img src="/cover.png">\n' in result.content


def test_extract_escapes_text_and_attribute_values():
    html = '<article><p title="a &quot;q&quot;">1 &lt; 2 &amp; 3</p></article>'

    assert extract_html(html).content == b'<p title="a &quot;q&quot;">\n1 &lt; 2 &amp; 3</p>\n'


def test_extract_is_idempotent(article_html):
    first = extract_html(article_html)
    second = extract_html(article_html)

    assert first.content == second.content


def test_extract_returns_partial_output_with_stream_error():
    error = TokenStreamError("boom")
    tokens = [
        StartTag("article", []),
        StartTag("p", []),
        Text("hi"),
        Error(error),
        Text("never"),
    ]

    result = extract(tokens)

    assert result.content == b"<p >\nhi"
    assert result.error is error
    assert not result.complete


def test_extract_stops_at_end_of_stream():
    tokens = [StartTag("article", []), Text("a"), EndOfStream(), Text("b"), EndTag("article")]

    result = extract(tokens)

    assert result.content == b"a"
    assert result.complete


def test_extract_html_surfaces_interrupted_body():
    def chunks():
        yield b"<article><p>partial"
        raise ConnectionError("reset")

    result = extract_html(chunks())

    assert result.content.startswith(b"<p >\n")
    assert isinstance(result.error, TokenStreamError)
