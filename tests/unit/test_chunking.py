# tests/unit/test_chunking.py

from orchestrator.chunking import (
    clean_fragment_text,
    cut_fragment,
    drain_fragments,
    find_tool_prefix,
)


def test_sentence_boundary_splits_at_first_boundary():
    cut = cut_fragment("Hello world. This should stay buffered")

    assert cut.found is True
    assert cut.text == "Hello world."
    assert cut.remainder == " This should stay buffered"


def test_delimiter_splits_and_is_not_spoken():
    cut = cut_fragment("Sure thing • let me check")

    assert cut.found is True
    assert cut.text == "Sure thing"
    assert cut.remainder == " let me check"


def test_first_boundary_wins_between_delimiter_and_terminator():
    fragments, rest = drain_fragments("One • two. three")

    assert fragments == ["One", "two."]
    assert rest == " three"


def test_terminator_runs_stay_together():
    fragments, rest = drain_fragments("Really?! Wow... ok")

    assert fragments == ["Really?!", "Wow..."]
    assert rest == " ok"


def test_decimal_point_is_not_a_boundary():
    fragments, rest = drain_fragments("That costs 3.5 dollars. Anything else")

    assert fragments == ["That costs 3.5 dollars."]
    assert rest == " Anything else"


def test_trailing_period_is_undecided():
    cut = cut_fragment("The total is 3.")

    assert cut.found is False
    assert cut.remainder == "The total is 3."


def test_question_mark_at_end_is_a_boundary():
    cut = cut_fragment("Can I help?")

    assert cut.found is True
    assert cut.text == "Can I help?"
    assert cut.remainder == ""


def test_whitespace_only_cut_yields_no_text():
    cut = cut_fragment("  • rest")

    assert cut.found is True
    assert cut.text is None
    assert cut.remainder == " rest"

    fragments, rest = drain_fragments("  •  • rest")
    assert fragments == []
    assert rest == " rest"


def test_no_boundary_keeps_buffer():
    cut = cut_fragment("still talking")

    assert cut.found is False
    assert cut.text is None
    assert cut.remainder == "still talking"


def test_clean_fragment_text_strips_delimiters():
    assert clean_fragment_text("  Welcome • to   the shop •") == "Welcome to the shop"
    assert clean_fragment_text(" • ") == ""


def test_tool_prefix_must_start_a_word():
    assert find_tool_prefix('Checking.\n@{"tool":"x"}', "@", at_word_start=False) == 10
    assert find_tool_prefix('@{"tool":"x"}', "@", at_word_start=True) == 0
    assert find_tool_prefix("@bartsauto", "@", at_word_start=False) == -1
    assert find_tool_prefix("mail service@shop then @{}", "@", at_word_start=False) == 23
    assert find_tool_prefix("no tools here", "@", at_word_start=True) == -1
