from book_scan.page_numbers import (
    decorated_number,
    detect_page_number,
    number_at_line_end,
    number_at_line_start,
    number_in_short_line,
)

BODY = (
    "Robin Hood levde i Sherwoodskogen\n"
    "tillsammans med sina glada män.\n"
    "De stal från de rika och gav åt de fattiga.\n"
)


def test_number_on_last_line():
    assert detect_page_number(BODY + "42") == 42


def test_out_of_range_number_is_ignored():
    """Numbers outside 1..200 are never page numbers"""
    assert detect_page_number(BODY + "999") is None
    assert detect_page_number(BODY + "0") is None


def test_decorated_number():
    assert detect_page_number(BODY + "- 17 -") == 17
    assert detect_page_number(BODY + "[ 8 ]") == 8


def test_leading_number_when_ocr_reorders_footer():
    text = "12 Robin gick in i skogen\n" + BODY
    assert detect_page_number(text) == 12


def test_blank_lines_are_ignored():
    assert detect_page_number(BODY + "\n\n   33   \n\n\n") == 33


def test_rules_are_tried_in_order_on_a_line():
    """On one line a number ending the line wins over an earlier number"""
    assert detect_page_number(BODY + "sidan 7 av 12") == 12


def test_footer_beats_body_line_ending_in_number():
    """A decorated footer is read before body lines above it"""
    text = "Robin stod vid eken\nHan hade sett 12\noch gick sedan hem till byn\n- 42 -"
    assert detect_page_number(text) == 42
    assert detect_page_number("Han hade sett 12\n(42)") == 42


def test_only_bottom_lines_are_scanned():
    text = "7\n" + "\n".join(f"Rad med vanlig text nummer {chr(97 + i)}" for i in range(20))
    assert detect_page_number(text) is None


def test_no_number():
    assert detect_page_number(BODY) is None
    assert detect_page_number("") is None


def test_line_matchers():
    assert number_at_line_end("sidan 7") == 7
    assert number_at_line_end("år 1984") is None
    assert decorated_number("(3)") == 3
    assert decorated_number("3") is None
    assert number_in_short_line("s. 21 av") == 21
    assert number_in_short_line("en mycket lång rad med 21 i mitten") is None
    assert number_at_line_start("5 Robin") == 5
