#!/usr/bin/env python3
"""
Tests for the best-effort live document preview.
"""

from sopchat.chat.document_preview import (
    extract_partial_field,
    extract_partial_html,
    strip_styles,
    unescape_json_fragment,
)


def test_no_content_key_yet():
    assert extract_partial_html('{"stepId":"s1","documentName":"Doc",') is None


def test_no_complete_tag_yet():
    assert extract_partial_html('{"content":"<p') is None


def test_complete_content_string():
    print("Testing complete content extraction...")
    args = '{"stepId":"s1","documentName":"Doc","content":"<p>Hi</p>"}'
    assert extract_partial_html(args) == "<p>Hi</p>"


def test_partial_content_cuts_at_last_tag():
    args = '{"content":"<h1>Title</h1><p>Some text that is still stream'
    assert extract_partial_html(args) == "<h1>Title</h1><p>"


def test_escapes_are_undone():
    args = '{"content":"<p class=\\"x\\">a\\nb \\u00e9</p>'
    assert extract_partial_html(args) == '<p class="x">a\nb é</p>'


def test_styles_are_stripped():
    print("Testing style stripping...")
    html = '<style>p { color: red; }</style><p style="color: blue">Hi</p>'
    assert strip_styles(html) == "<p>Hi</p>"
    # Unterminated style block still streaming
    assert strip_styles("<p>Hi</p><style>p { col") == "<p>Hi</p>"


def test_dangling_backslash_dropped():
    assert unescape_json_fragment("abc\\") == "abc"
    assert unescape_json_fragment("abc\\\\") == "abc\\"


def test_partial_field_needs_closing_quote():
    assert extract_partial_field('{"documentName":"Do', "documentName") is None
    assert extract_partial_field('{"documentName":"Doc",', "documentName") == "Doc"


if __name__ == "__main__":
    test_no_content_key_yet()
    test_no_complete_tag_yet()
    test_complete_content_string()
    test_partial_content_cuts_at_last_tag()
    test_escapes_are_undone()
    test_styles_are_stripped()
    test_dangling_backslash_dropped()
    test_partial_field_needs_closing_quote()
    print("✅ Document preview tests passed!")
