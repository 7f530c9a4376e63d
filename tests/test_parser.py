from taskweave.model import PatternGroup
from taskweave.parser import parse_args, split_chain, split_group


def test_parallel_group():
    parsed = parse_args(["[test,lint]"])
    assert parsed.groups == [PatternGroup(("test", "lint"))]
    assert parsed.command is None


def test_whitespace_and_empty_entries_are_dropped():
    assert parse_args(["[ test , , build ]"]).patterns == ["test", "build"]


def test_braces_keep_their_commas():
    assert split_group("build:{js,css},lint") == ["build:{js,css}", "lint"]


def test_special_characters_survive():
    assert parse_args(["[@scope/package:*]"]).patterns == ["@scope/package:*"]


def test_sequential_chain_gets_step_indices():
    parsed = parse_args(["[a,b]->[c,d]"])
    assert parsed.groups == [PatternGroup(("a", "b"), 0), PatternGroup(("c", "d"), 1)]


def test_step_indices_continue_across_chains():
    parsed = parse_args(["[a]->[b]", "[c]->[d]"])
    assert [(g.patterns, g.step) for g in parsed.groups] == [
        (("a",), 0),
        (("b",), 1),
        (("c",), 2),
        (("d",), 3),
    ]


def test_empty_chain_part_is_dropped():
    parsed = parse_args(["[]->[a]"])
    assert parsed.groups == [PatternGroup(("a",), 0)]


def test_split_chain_ignores_arrows_inside_brackets():
    assert split_chain("[a]->[b,c]->[d]") == ["[a]", "[b,c]", "[d]"]


def test_trailing_command_is_joined():
    parsed = parse_args(["[test]", "--", "echo", '"hello world"'])
    assert parsed.command == 'echo "hello world"'
    assert parsed.patterns == ["test"]


def test_command_only():
    parsed = parse_args(["--", "echo", "hi"])
    assert parsed.groups == []
    assert parsed.command == "echo hi"


def test_flags():
    parsed = parse_args(["[test]", "-qc", "--no-prefix"])
    assert parsed.flags == {"quiet": True, "continue_on_error": True, "prefix": False}


def test_long_flags_and_custom_prefix():
    parsed = parse_args(["[test]", "--quiet", "--continue", "--prefix=>> "])
    assert parsed.flags == {"quiet": True, "continue_on_error": True, "prefix": ">> "}


def test_unknown_flags_and_bare_words_are_ignored():
    parsed = parse_args(["[test]", "--unknown-flag", "invalid", "[unclosed", "-z"])
    assert parsed.patterns == ["test"]
    assert parsed.flags == {}
