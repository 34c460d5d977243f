from groupbot.runcode import cut_too_long

SUFFIX = "\n............\n............"


def test_short_text_unchanged():
    text = "hello\nworld\n"
    assert cut_too_long(text) == text


def test_long_text_cut_at_limit():
    text = "x" * 1500
    result = cut_too_long(text)
    assert result == text[:1000] + SUFFIX


def test_many_lines_cut():
    text = "a\n" * 40
    result = cut_too_long(text)
    assert result == text[:60] + SUFFIX
    assert result.count("\n") < text.count("\n")


def test_crlf_counts_once():
    thirty = "\r\n" * 30
    assert cut_too_long(thirty) == thirty
    more = "\r\n" * 31
    assert cut_too_long(more) == more[:60] + SUFFIX