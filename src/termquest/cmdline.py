"""Quote-aware tokenizer and flag classifier for shell command lines."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import NamedTuple

from .errors import OptionError, ParseError

SEQUENCE_OPERATORS = (";", "&&")
UNSUPPORTED_OPERATORS = {"|": "pipes", ">": "redirection", "<": "redirection"}


class Token(NamedTuple):
    """One shell word; `quoted` is set when any part of it came from quotes or escapes."""

    text: str
    quoted: bool


@dataclass(frozen=True)
class Segment:
    """One command of a line plus the operator that joins it to the previous one."""

    tokens: tuple[Token, ...]
    connector: str | None = None

    @property
    def words(self) -> list[str]:
        return [token.text for token in self.tokens]


def split_line(line: str) -> list[Segment]:
    """Split a raw line into commands separated by unquoted `;` or `&&`.

    Single and double quotes are literal spans; a backslash outside quotes
    escapes the next character. Raises `ParseError` on unbalanced quotes or
    a dangling operator.
    """
    segments: list[Segment] = []
    tokens: list[Token] = []
    buffer: list[str] = []
    started = False
    quoted = False
    quote_char = ""
    connector: str | None = None

    def flush_word() -> None:
        nonlocal started, quoted
        if started:
            tokens.append(Token("".join(buffer), quoted))
        buffer.clear()
        started = False
        quoted = False

    def flush_segment(operator: str) -> None:
        nonlocal connector
        flush_word()
        if not tokens:
            raise ParseError(f"syntax error near unexpected token `{operator}'")
        segments.append(Segment(tuple(tokens), connector))
        tokens.clear()
        connector = operator

    index = 0
    length = len(line)
    while index < length:
        char = line[index]
        if quote_char:
            if char == quote_char:
                quote_char = ""
            else:
                buffer.append(char)
            index += 1
            continue
        if char in ("'", '"'):
            quote_char = char
            started = quoted = True
        elif char == "\\" and index + 1 < length:
            buffer.append(line[index + 1])
            started = quoted = True
            index += 1
        elif char.isspace():
            flush_word()
        elif char == ";":
            flush_segment(";")
        elif char == "&" and line.startswith("&&", index):
            flush_segment("&&")
            index += 1
        elif char in UNSUPPORTED_OPERATORS:
            raise ParseError(f"{UNSUPPORTED_OPERATORS[char]} not supported")
        else:
            buffer.append(char)
            started = True
        index += 1

    if quote_char:
        raise ParseError(f"unexpected EOF while looking for matching `{quote_char}'")
    flush_word()
    if tokens:
        segments.append(Segment(tuple(tokens), connector))
    elif connector == "&&":
        raise ParseError("syntax error: unexpected end of input after `&&'")
    return segments


@dataclass(frozen=True)
class FlagSpec:
    """Per-command flag vocabulary.

    `boolean` lists accepted switches, `named` lists keys that consume a value
    (`-n 10`, `-n10`, `--lines=10`), `aliases` maps long names onto short ones,
    `numeric` is the key that `-10` style shorthand fills, `words` treats every
    single-dash token as one word (`find -name`), and `raw` disables flag
    parsing entirely.
    """

    boolean: frozenset[str] = frozenset()
    named: frozenset[str] = frozenset()
    aliases: Mapping[str, str] = field(default_factory=dict)
    numeric: str | None = None
    words: bool = False
    raw: bool = False
    strict: bool = True


PERMISSIVE = FlagSpec(strict=False)


@dataclass(frozen=True)
class ParsedCommand:
    """Command name plus boolean flags, valued options and positional arguments."""

    name: str
    flags: frozenset[str] = frozenset()
    options: Mapping[str, str] = field(default_factory=dict)
    args: tuple[str, ...] = ()

    def has(self, *flags: str) -> bool:
        """Return whether any of `flags` was given."""
        return any(flag in self.flags for flag in flags)

    def option(self, key: str, default: str | None = None) -> str | None:
        return self.options.get(key, default)


def parse(tokens: Sequence[str], spec: FlagSpec | None = None) -> ParsedCommand:
    """Classify `tokens[1:]` into flags, options and positionals.

    Classification is purely syntactic: any token starting with `-` (other than
    a bare `-`) is a flag, whatever files exist. `--` ends flag parsing.
    """
    if not tokens:
        raise ValueError("Cannot parse an empty command.")
    spec = spec or PERMISSIVE
    name = tokens[0]
    if spec.raw:
        return ParsedCommand(name=name, args=tuple(tokens[1:]))

    flags: set[str] = set()
    options: dict[str, str] = {}
    args: list[str] = []

    def take_value(key: str, index: int) -> int:
        if index + 1 >= len(tokens):
            raise OptionError(f"option requires an argument -- '{key}'")
        options[key] = tokens[index + 1]
        return index + 1

    def accept(flag: str, display: str) -> None:
        if spec.strict and flag not in spec.boolean:
            raise OptionError(display)
        flags.add(flag)

    end_of_flags = False
    index = 1
    while index < len(tokens):
        token = tokens[index]
        if end_of_flags or token == "-" or not token.startswith("-"):
            args.append(token)
        elif token == "--":
            end_of_flags = True
        elif token.startswith("--"):
            key, has_value, value = token[2:].partition("=")
            key = spec.aliases.get(key, key)
            if has_value:
                if key not in spec.named and spec.strict:
                    raise OptionError(f"option '--{key}' doesn't allow an argument")
                options[key] = value
            elif key in spec.named:
                index = take_value(key, index)
            else:
                accept(key, f"unrecognized option '{token}'")
        else:
            body = token[1:]
            if body in spec.named:
                index = take_value(body, index)
            elif spec.numeric and body.isdigit():
                options[spec.numeric] = body
            elif spec.words:
                accept(body, f"unknown predicate `{token}'")
            else:
                for position, letter in enumerate(body):
                    if letter in spec.named:
                        rest = body[position + 1 :]
                        if rest:
                            options[letter] = rest
                        else:
                            index = take_value(letter, index)
                        break
                    accept(spec.aliases.get(letter, letter), f"invalid option -- '{letter}'")
        index += 1

    return ParsedCommand(name=name, flags=frozenset(flags), options=options, args=tuple(args))
