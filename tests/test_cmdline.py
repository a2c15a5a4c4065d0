from termquest.cmdline import PERMISSIVE, FlagSpec, Token, parse, split_line
from termquest.errors import OptionError, ParseError

RM = FlagSpec(boolean=frozenset("rfv"), aliases={"R": "r", "recursive": "r", "force": "f"})
HEAD = FlagSpec(named=frozenset({"n"}), numeric="n", aliases={"lines": "n"})
FIND = FlagSpec(boolean=frozenset({"print"}), named=frozenset({"name", "type"}), words=True)


def _words(line: str) -> list[list[str]]:
    return [segment.words for segment in split_line(line)]


def _parse_error(line: str) -> str:
    try:
        split_line(line)
    except ParseError as exc:
        return str(exc)
    raise AssertionError(f"Expected ParseError for {line!r}.")


def _option_error(tokens: list[str], spec: FlagSpec) -> str:
    try:
        parse(tokens, spec)
    except OptionError as exc:
        return str(exc)
    raise AssertionError(f"Expected OptionError for {tokens!r}.")


def test_split_on_whitespace() -> None:
    assert _words("ls   -la  /tmp") == [["ls", "-la", "/tmp"]]
    assert split_line("   ") == []


def test_quotes_are_literal_spans() -> None:
    assert _words("echo 'hello world' \"a;b && c\"") == [["echo", "hello world", "a;b && c"]]
    assert _words("grep 'it\"s' file") == [["grep", 'it"s', "file"]]
    assert _words("echo ab'cd'ef") == [["echo", "abcdef"]]
    assert _words("echo ''") == [["echo", ""]]


def test_quoted_and_escaped_tokens_are_marked() -> None:
    tokens = split_line("ls '*.txt' \\*.log *.md")[0].tokens
    assert tokens == (
        Token("ls", False),
        Token("*.txt", True),
        Token("*.log", True),
        Token("*.md", False),
    )


def test_sequence_operators() -> None:
    segments = split_line("mkdir a && cd a; pwd")
    assert [segment.words for segment in segments] == [["mkdir", "a"], ["cd", "a"], ["pwd"]]
    assert [segment.connector for segment in segments] == [None, "&&", ";"]
    assert _words("ls;") == [["ls"]]


def test_split_errors() -> None:
    assert _parse_error("echo 'open") == "unexpected EOF while looking for matching `''"
    assert _parse_error('echo "open') == "unexpected EOF while looking for matching `\"'"
    assert _parse_error("; ls") == "syntax error near unexpected token `;'"
    assert _parse_error("ls && && pwd") == "syntax error near unexpected token `&&'"
    assert "end of input" in _parse_error("ls &&")
    assert _parse_error("ls | grep x") == "pipes not supported"
    assert _parse_error("echo hi > out.txt") == "redirection not supported"


def test_combined_short_flags_equal_separate_flags() -> None:
    combined = parse(["rm", "-rf", "dir"], RM)
    separate = parse(["rm", "-r", "-f", "dir"], RM)
    assert combined.flags == separate.flags == frozenset({"r", "f"})
    assert combined.args == ("dir",)


def test_flag_shaped_token_is_never_a_path() -> None:
    parsed = parse(["rm", "-r"], RM)
    assert parsed.flags == frozenset({"r"})
    assert parsed.args == ()


def test_long_flags_and_aliases() -> None:
    parsed = parse(["rm", "--recursive", "--force", "-R", "x"], RM)
    assert parsed.flags == frozenset({"r", "f"})
    assert _option_error(["rm", "--bogus"], RM) == "unrecognized option '--bogus'"


def test_named_values_in_every_form() -> None:
    assert parse(["head", "-n", "5", "f"], HEAD).option("n") == "5"
    assert parse(["head", "-n5", "f"], HEAD).option("n") == "5"
    assert parse(["head", "-5", "f"], HEAD).option("n") == "5"
    assert parse(["head", "--lines=7", "f"], HEAD).option("n") == "7"
    assert parse(["head", "--lines", "8", "f"], HEAD).option("n") == "8"
    assert parse(["head", "-n", "5", "f"], HEAD).args == ("f",)
    assert _option_error(["head", "-n"], HEAD) == "option requires an argument -- 'n'"


def test_unknown_short_flag_is_rejected() -> None:
    assert _option_error(["rm", "-rz", "x"], RM) == "invalid option -- 'z'"


def test_double_dash_ends_flags() -> None:
    parsed = parse(["rm", "-f", "--", "-r", "-"], RM)
    assert parsed.flags == frozenset({"f"})
    assert parsed.args == ("-r", "-")


def test_bare_dash_is_positional() -> None:
    assert parse(["cd", "-"], FlagSpec()).args == ("-",)


def test_word_flags_for_find() -> None:
    parsed = parse(["find", ".", "-name", "*.log", "-type", "f", "-print"], FIND)
    assert parsed.args == (".",)
    assert parsed.option("name") == "*.log"
    assert parsed.option("type") == "f"
    assert parsed.has("print")
    assert _option_error(["find", ".", "-bogus"], FIND) == "unknown predicate `-bogus'"


def test_permissive_and_raw_specs() -> None:
    parsed = parse(["ssh", "-v", "host"], PERMISSIVE)
    assert parsed.flags == frozenset({"v"})
    assert parsed.args == ("host",)
    raw = parse(["echo", "-n", "--", "x"], FlagSpec(raw=True))
    assert raw.args == ("-n", "--", "x")
    assert raw.flags == frozenset()
