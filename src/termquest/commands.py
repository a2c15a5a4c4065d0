"""Built-in command set and dispatcher.

Every command name maps to one handler through a closed `Builtin` enumeration.
A handler receives the parsed command plus the session's `ShellState` and
returns a `CommandResult`; it never prints and never raises for user errors.
"""

from __future__ import annotations

import fnmatch
import re
from collections.abc import Callable, Sequence
from enum import StrEnum

from . import paths
from .cmdline import PERMISSIVE, FlagSpec, ParsedCommand, Token, parse
from .errors import FilesystemError, InvalidOperation, IsADirectory, NoSuchEntry, OptionError
from .log import get_logger
from .models import CommandResult, SideEffect, SideEffectKind, failure, success
from .state import ShellState
from .vfs import Directory, File, NodeInfo

logger = get_logger(__name__)

GLOB_CHARS = frozenset("*?[")
DEFAULT_LINE_COUNT = 10


class Builtin(StrEnum):
    """Every command the shell understands."""

    LS = "ls"
    CD = "cd"
    PWD = "pwd"
    CAT = "cat"
    MKDIR = "mkdir"
    RMDIR = "rmdir"
    RM = "rm"
    CP = "cp"
    MV = "mv"
    TOUCH = "touch"
    HEAD = "head"
    TAIL = "tail"
    GREP = "grep"
    FIND = "find"
    WC = "wc"
    LESS = "less"
    MORE = "more"
    NANO = "nano"
    VI = "vi"
    VIM = "vim"
    ECHO = "echo"
    WHOAMI = "whoami"
    HOSTNAME = "hostname"
    ENV = "env"
    HISTORY = "history"
    CLEAR = "clear"
    HELP = "help"
    SUDO = "sudo"
    PING = "ping"
    DIG = "dig"
    NSLOOKUP = "nslookup"
    IFCONFIG = "ifconfig"
    NETSTAT = "netstat"
    IP = "ip"
    CURL = "curl"
    WGET = "wget"
    SSH = "ssh"
    SCP = "scp"


def _flags(letters: str) -> frozenset[str]:
    return frozenset(letters)


_LINES = FlagSpec(named=frozenset({"n"}), numeric="n", aliases={"lines": "n"})

FLAG_SPECS: dict[Builtin, FlagSpec] = {
    Builtin.LS: FlagSpec(boolean=_flags("lah1"), aliases={"all": "a", "human-readable": "h"}),
    Builtin.CD: FlagSpec(),
    Builtin.PWD: FlagSpec(),
    Builtin.CAT: FlagSpec(boolean=_flags("n"), aliases={"number": "n"}),
    Builtin.MKDIR: FlagSpec(boolean=_flags("pv"), aliases={"parents": "p", "verbose": "v"}),
    Builtin.RMDIR: FlagSpec(boolean=_flags("v"), aliases={"verbose": "v"}),
    Builtin.RM: FlagSpec(
        boolean=_flags("rfv"),
        aliases={"R": "r", "recursive": "r", "force": "f", "verbose": "v"},
    ),
    Builtin.CP: FlagSpec(
        boolean=_flags("rfv"),
        aliases={"R": "r", "recursive": "r", "force": "f", "verbose": "v"},
    ),
    Builtin.MV: FlagSpec(boolean=_flags("fv"), aliases={"force": "f", "verbose": "v"}),
    Builtin.TOUCH: FlagSpec(),
    Builtin.HEAD: _LINES,
    Builtin.TAIL: _LINES,
    Builtin.GREP: FlagSpec(
        boolean=_flags("invrcl"),
        aliases={
            "R": "r",
            "ignore-case": "i",
            "line-number": "n",
            "invert-match": "v",
            "recursive": "r",
            "count": "c",
            "files-with-matches": "l",
        },
    ),
    Builtin.FIND: FlagSpec(
        boolean=frozenset({"print"}),
        named=frozenset({"name", "iname", "type", "maxdepth"}),
        words=True,
    ),
    Builtin.WC: FlagSpec(boolean=_flags("lwc"), aliases={"lines": "l", "words": "w", "bytes": "c"}),
    Builtin.LESS: PERMISSIVE,
    Builtin.MORE: PERMISSIVE,
    Builtin.NANO: PERMISSIVE,
    Builtin.VI: PERMISSIVE,
    Builtin.VIM: PERMISSIVE,
    Builtin.ECHO: FlagSpec(raw=True),
    Builtin.WHOAMI: FlagSpec(),
    Builtin.HOSTNAME: FlagSpec(),
    Builtin.ENV: FlagSpec(),
    Builtin.HISTORY: FlagSpec(boolean=_flags("c")),
    Builtin.CLEAR: FlagSpec(),
    Builtin.HELP: FlagSpec(),
    Builtin.SUDO: FlagSpec(raw=True),
    Builtin.PING: FlagSpec(named=frozenset({"c"})),
    Builtin.DIG: PERMISSIVE,
    Builtin.NSLOOKUP: FlagSpec(),
    Builtin.IFCONFIG: FlagSpec(boolean=_flags("a")),
    Builtin.NETSTAT: FlagSpec(boolean=_flags("tulnap")),
    Builtin.IP: PERMISSIVE,
    Builtin.CURL: FlagSpec(
        boolean=_flags("sSLf"),
        named=frozenset({"o"}),
        aliases={"output": "o", "silent": "s", "location": "L", "fail": "f"},
    ),
    Builtin.WGET: FlagSpec(
        boolean=_flags("q"),
        named=frozenset({"O"}),
        aliases={"output-document": "O", "quiet": "q"},
    ),
    Builtin.SSH: PERMISSIVE,
    Builtin.SCP: PERMISSIVE,
}

USAGE_EXIT_CODES = {Builtin.LS: 2, Builtin.GREP: 2}

Handler = Callable[[ParsedCommand, ShellState], CommandResult]


# Entry points


def run_command(tokens: Sequence[Token], state: ShellState) -> CommandResult:
    """Expand, parse and execute one tokenized command."""
    words = expand_words(tokens, state)
    if words and words[0] == Builtin.SUDO:
        words = words[1:]
        if not words:
            return failure("usage: sudo command")
    if not words:
        return success()

    name = words[0]
    try:
        builtin = Builtin(name)
    except ValueError:
        return _not_found(name)
    try:
        parsed = parse(words, FLAG_SPECS.get(builtin, PERMISSIVE))
    except OptionError as exc:
        return failure(
            f"{name}: {exc}",
            f"Try '{name} --help' for more information.",
            exit_code=USAGE_EXIT_CODES.get(builtin, 1),
        )
    return execute(name, parsed, state)


def execute(name: str, parsed: ParsedCommand, state: ShellState) -> CommandResult:
    """Run the handler registered for `name`; unknown names exit 127."""
    try:
        builtin = Builtin(name)
    except ValueError:
        return _not_found(name)
    logger.debug("command_execute", command=name, args=list(parsed.args), flags=sorted(parsed.flags))
    try:
        return HANDLERS[builtin](parsed, state)
    except FilesystemError as exc:
        return failure(f"{name}: {exc}")


def _not_found(name: str) -> CommandResult:
    logger.debug("command_not_found", command=name)
    return failure(f"bash: {name}: command not found", exit_code=127)


def expand_words(tokens: Sequence[Token], state: ShellState) -> list[str]:
    """Apply tilde and glob expansion to unquoted tokens.

    Globs match within a single directory level; a pattern with no match is
    passed through literally.
    """
    words: list[str] = []
    for index, token in enumerate(tokens):
        if token.quoted or index == 0:
            words.append(token.text)
            continue
        text = paths.expand_home(token.text, state.home)
        if GLOB_CHARS.isdisjoint(text):
            words.append(text)
            continue
        words.extend(_glob(text, state) or [text])
    return words


def _glob(pattern: str, state: ShellState) -> list[str]:
    prefix, slash, name_pattern = pattern.rpartition("/")
    if not GLOB_CHARS.isdisjoint(prefix):
        return []
    if slash:
        directory = state.resolve(prefix or paths.ROOT)
        lead = f"{prefix}/"
    else:
        directory = state.cwd
        lead = ""
    if not state.vfs.is_dir(directory):
        return []
    names = state.vfs.list_dir(directory, include_hidden=name_pattern.startswith("."))
    return [lead + name for name in sorted(names) if fnmatch.fnmatchcase(name, name_pattern)]


def _last_segment(target: str) -> str:
    """Final component of a path exactly as typed (`.` and `..` preserved)."""
    return target.rstrip("/").rpartition("/")[2] or paths.ROOT


# Formatting helpers


def _mode_string(info: NodeInfo) -> str:
    bits = "".join(
        letter if info.mode & (1 << (8 - position)) else "-" for position, letter in enumerate("rwxrwxrwx")
    )
    return ("d" if info.is_dir else "-") + bits


def _human_size(size: int) -> str:
    if size < 1024:
        return str(size)
    value = size / 1024
    for unit in ("K", "M"):
        if value < 1024:
            return f"{value:.1f}{unit}"
        value /= 1024
    return f"{value:.1f}G"


def _long_row(info: NodeInfo, name: str, human: bool) -> str:
    size = _human_size(info.size) if human else str(info.size)
    links = 2 if info.is_dir else 1
    stamp = info.mtime.strftime("%b %d %H:%M")
    return f"{_mode_string(info)} {links:>2} {info.owner} {info.owner} {size:>8} {stamp} {name}"


def _lines(content: str) -> list[str]:
    return content.splitlines()


def _read_lines(state: ShellState, target: str) -> list[str]:
    return _lines(state.vfs.read_file(state.resolve(target)))


# Navigation


def _pwd(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    return success(state.cwd)


def _cd(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    if len(parsed.args) > 1:
        return failure("bash: cd: too many arguments")
    target = parsed.args[0] if parsed.args else state.home
    echo_target = False
    if target == "-":
        if state.previous_cwd is None:
            return failure("bash: cd: OLDPWD not set")
        target = state.previous_cwd
        echo_target = True
    resolved = state.resolve(target)
    try:
        node = state.vfs.lookup(resolved)
    except FilesystemError as exc:
        return failure(f"bash: cd: {target}: {exc.strerror}")
    if not isinstance(node, Directory):
        return failure(f"bash: cd: {target}: Not a directory")
    state.change_directory(resolved)
    effect = SideEffect(SideEffectKind.CWD_CHANGED, resolved)
    if echo_target:
        return success(resolved, side_effect=effect)
    return success(side_effect=effect)


def _ls(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    long_format = parsed.has("l")
    show_all = parsed.has("a")
    human = parsed.has("h")
    one_per_line = parsed.has("1")
    targets = parsed.args or (".",)
    stdout: list[str] = []
    stderr: list[str] = []

    for position, target in enumerate(targets):
        resolved = state.resolve(target)
        try:
            node = state.vfs.lookup(resolved)
        except FilesystemError as exc:
            stderr.append(f"ls: cannot access '{target}': {exc.strerror}")
            continue
        if isinstance(node, File):
            info = state.vfs.stat(resolved)
            stdout.append(_long_row(info, target, human) if long_format else target)
            continue

        if len(targets) > 1:
            if position and stdout:
                stdout.append("")
            stdout.append(f"{target}:")
        rows = sorted(state.vfs.entries(resolved, include_hidden=show_all), key=lambda info: info.name)
        names = [info.name for info in rows]
        if show_all:
            names = [".", "..", *names]
        if long_format:
            infos = list(rows)
            if show_all:
                infos = [state.vfs.stat(resolved), state.vfs.stat(paths.dirname(resolved)), *infos]
            blocks = sum(-(-info.size // 4096) * 4 for info in infos)
            stdout.append(f"total {blocks}")
            stdout.extend(_long_row(info, name, human) for info, name in zip(infos, names))
        elif one_per_line:
            stdout.extend(names)
        elif names:
            stdout.append("  ".join(names))

    return CommandResult(stdout=tuple(stdout), stderr=tuple(stderr), exit_code=2 if stderr else 0)


# File contents


def _cat(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    if not parsed.args:
        return failure("cat: missing operand")
    stdout: list[str] = []
    stderr: list[str] = []
    for target in parsed.args:
        try:
            stdout.extend(_read_lines(state, target))
        except FilesystemError as exc:
            stderr.append(f"cat: {target}: {exc.strerror}")
    if parsed.has("n"):
        stdout = [f"{number:>6}\t{line}" for number, line in enumerate(stdout, start=1)]
    return CommandResult(stdout=tuple(stdout), stderr=tuple(stderr), exit_code=1 if stderr else 0)


def _line_count(parsed: ParsedCommand) -> int:
    raw = parsed.option("n", str(DEFAULT_LINE_COUNT)) or ""
    try:
        return int(raw)
    except ValueError:
        raise OptionError(f"invalid number of lines: '{raw}'") from None


def _head_or_tail(parsed: ParsedCommand, state: ShellState, name: str) -> CommandResult:
    try:
        count = _line_count(parsed)
    except OptionError as exc:
        return failure(f"{name}: {exc}")
    from_start = name == Builtin.TAIL and (parsed.option("n") or "").startswith("+")
    if not parsed.args:
        return failure(f"{name}: missing file operand")

    stdout: list[str] = []
    stderr: list[str] = []
    for position, target in enumerate(parsed.args):
        try:
            lines = _read_lines(state, target)
        except IsADirectory:
            stderr.append(f"{name}: error reading '{target}': Is a directory")
            continue
        except FilesystemError as exc:
            stderr.append(f"{name}: cannot open '{target}' for reading: {exc.strerror}")
            continue
        if len(parsed.args) > 1:
            if position:
                stdout.append("")
            stdout.append(f"==> {target} <==")
        if name == Builtin.HEAD:
            stdout.extend(lines[:count])
        elif from_start:
            stdout.extend(lines[max(count - 1, 0) :])
        else:
            stdout.extend(lines[-abs(count) :] if count else [])
    return CommandResult(stdout=tuple(stdout), stderr=tuple(stderr), exit_code=1 if stderr else 0)


def _head(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    return _head_or_tail(parsed, state, Builtin.HEAD)


def _tail(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    return _head_or_tail(parsed, state, Builtin.TAIL)


def _wc(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    if not parsed.args:
        return failure("wc: missing file operand")
    selected = [flag for flag in ("l", "w", "c") if parsed.has(flag)] or ["l", "w", "c"]
    stdout: list[str] = []
    stderr: list[str] = []
    totals = {"l": 0, "w": 0, "c": 0}
    for target in parsed.args:
        try:
            content = state.vfs.read_file(state.resolve(target))
        except FilesystemError as exc:
            stderr.append(f"wc: {target}: {exc.strerror}")
            continue
        counts = {"l": content.count("\n"), "w": len(content.split()), "c": len(content.encode("utf-8"))}
        for key in totals:
            totals[key] += counts[key]
        stdout.append("".join(f"{counts[key]:>7}" for key in selected) + f" {target}")
    if len(parsed.args) > 1:
        stdout.append("".join(f"{totals[key]:>7}" for key in selected) + " total")
    return CommandResult(stdout=tuple(stdout), stderr=tuple(stderr), exit_code=1 if stderr else 0)


def _grep(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    usage = ("Usage: grep [OPTION]... PATTERNS [FILE]...", "Try 'grep --help' for more information.")
    if not parsed.args:
        return failure(*usage, exit_code=2)
    pattern_text, *targets = parsed.args
    recursive = parsed.has("r")
    if not targets:
        if not recursive:
            return failure(*usage, exit_code=2)
        targets = ["."]
    try:
        pattern = re.compile(pattern_text, re.IGNORECASE if parsed.has("i") else 0)
    except re.error:
        return failure("grep: Invalid regular expression", exit_code=2)

    files: list[tuple[str, str]] = []
    stderr: list[str] = []
    for target in targets:
        resolved = state.resolve(target)
        try:
            node = state.vfs.lookup(resolved)
        except FilesystemError as exc:
            stderr.append(f"grep: {target}: {exc.strerror}")
            continue
        if isinstance(node, File):
            files.append((target, node.content))
        elif not recursive:
            stderr.append(f"grep: {target}: Is a directory")
        else:
            for found, child, _ in state.vfs.walk(resolved):
                if isinstance(child, File):
                    files.append((f"{target.rstrip('/')}/{found[len(resolved):].lstrip('/')}", child.content))

    invert = parsed.has("v")
    show_names = len(files) > 1 or recursive
    stdout: list[str] = []
    matched_any = False
    for display_name, content in files:
        hits = [
            (number, line)
            for number, line in enumerate(_lines(content), start=1)
            if bool(pattern.search(line)) != invert
        ]
        matched_any = matched_any or bool(hits)
        if parsed.has("l"):
            if hits:
                stdout.append(display_name)
            continue
        if parsed.has("c"):
            stdout.append(f"{display_name}:{len(hits)}" if show_names else str(len(hits)))
            continue
        for number, line in hits:
            prefix = f"{display_name}:" if show_names else ""
            if parsed.has("n"):
                prefix += f"{number}:"
            stdout.append(prefix + line)

    exit_code = 2 if stderr else (0 if matched_any else 1)
    return CommandResult(stdout=tuple(stdout), stderr=tuple(stderr), exit_code=exit_code)


def _find(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    node_type = parsed.option("type")
    if node_type not in (None, "f", "d"):
        return failure(f"find: Unknown argument to -type: {node_type}")
    raw_depth = parsed.option("maxdepth")
    max_depth: int | None = None
    if raw_depth is not None:
        try:
            max_depth = int(raw_depth)
        except ValueError:
            max_depth = -1
        if max_depth < 0:
            return failure(f"find: Expected a positive decimal integer argument to -maxdepth, but got '{raw_depth}'")
    name_pattern = parsed.option("name")
    iname_pattern = parsed.option("iname")

    stdout: list[str] = []
    stderr: list[str] = []
    for target in parsed.args or (".",):
        resolved = state.resolve(target)
        if not state.vfs.exists(resolved):
            stderr.append(f"find: '{target}': No such file or directory")
            continue
        for found, node, _ in state.vfs.walk(resolved, max_depth=max_depth):
            name = paths.basename(found) if found != resolved else _last_segment(target)
            if node_type == "f" and not isinstance(node, File):
                continue
            if node_type == "d" and not isinstance(node, Directory):
                continue
            if name_pattern is not None and not fnmatch.fnmatchcase(name, name_pattern):
                continue
            if iname_pattern is not None and not fnmatch.fnmatchcase(name.lower(), iname_pattern.lower()):
                continue
            if found == resolved:
                stdout.append(target)
            else:
                stdout.append(f"{target.rstrip('/')}/{found[len(resolved):].lstrip('/')}")
    return CommandResult(stdout=tuple(stdout), stderr=tuple(stderr), exit_code=1 if stderr else 0)


def _pager(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    if not parsed.args:
        return failure(f'Missing filename ("{parsed.name} --help" for help)')
    target = parsed.args[0]
    resolved = state.resolve(target)
    try:
        lines = _lines(state.vfs.read_file(resolved))
    except IsADirectory:
        return failure(f"{target} is a directory")
    except FilesystemError as exc:
        return failure(f"{parsed.name}: {target}: {exc.strerror}")
    return success(*lines, side_effect=SideEffect(SideEffectKind.OPEN_PAGER, resolved))


def _editor(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    if not parsed.args:
        return failure(f"{parsed.name}: missing file operand")
    target = parsed.args[0]
    resolved = state.resolve(target)
    if state.vfs.is_dir(resolved):
        return failure(f"{parsed.name}: {target}: Is a directory")
    if not state.vfs.is_dir(paths.dirname(resolved)):
        return failure(f"{parsed.name}: {target}: No such file or directory")
    return success(side_effect=SideEffect(SideEffectKind.OPEN_EDITOR, resolved))


# Mutations


def _mkdir(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    if not parsed.args:
        return failure("mkdir: missing operand")
    stdout: list[str] = []
    stderr: list[str] = []
    for target in parsed.args:
        try:
            state.vfs.create_directory(state.resolve(target), parents=parsed.has("p"))
        except FilesystemError as exc:
            stderr.append(f"mkdir: cannot create directory '{target}': {exc.strerror}")
            continue
        if parsed.has("v"):
            stdout.append(f"mkdir: created directory '{target}'")
    return CommandResult(stdout=tuple(stdout), stderr=tuple(stderr), exit_code=1 if stderr else 0)


def _rmdir(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    if not parsed.args:
        return failure("rmdir: missing operand")
    stdout: list[str] = []
    stderr: list[str] = []
    for target in parsed.args:
        resolved = state.resolve(target)
        try:
            if not isinstance(state.vfs.lookup(resolved), Directory):
                stderr.append(f"rmdir: failed to remove '{target}': Not a directory")
                continue
            state.vfs.remove(resolved)
        except FilesystemError as exc:
            stderr.append(f"rmdir: failed to remove '{target}': {exc.strerror}")
            continue
        if parsed.has("v"):
            stdout.append(f"rmdir: removing directory, '{target}'")
    return CommandResult(stdout=tuple(stdout), stderr=tuple(stderr), exit_code=1 if stderr else 0)


def _rm(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    recursive = parsed.has("r")
    force = parsed.has("f")
    if not parsed.args:
        return success() if force else failure("rm: missing operand")
    stdout: list[str] = []
    stderr: list[str] = []
    for target in parsed.args:
        if _last_segment(target) in (".", ".."):
            stderr.append(f"rm: refusing to remove '.' or '..' directory: skipping '{target}'")
            continue
        resolved = state.resolve(target)
        try:
            node = state.vfs.lookup(resolved)
        except NoSuchEntry:
            if not force:
                stderr.append(f"rm: cannot remove '{target}': No such file or directory")
            continue
        except FilesystemError as exc:
            stderr.append(f"rm: cannot remove '{target}': {exc.strerror}")
            continue
        if isinstance(node, Directory) and not recursive:
            stderr.append(f"rm: cannot remove '{target}': Is a directory")
            continue
        try:
            state.vfs.remove(resolved, recursive=recursive, force=force)
        except InvalidOperation:
            stderr.append(f"rm: it is dangerous to operate recursively on '{target}'")
            continue
        if parsed.has("v"):
            kind = "directory " if isinstance(node, Directory) else ""
            stdout.append(f"removed {kind}'{target}'")
    return CommandResult(stdout=tuple(stdout), stderr=tuple(stderr), exit_code=1 if stderr else 0)


def _split_operands(parsed: ParsedCommand, name: str) -> tuple[list[str], str] | CommandResult:
    if not parsed.args:
        return failure(f"{name}: missing file operand")
    if len(parsed.args) == 1:
        return failure(f"{name}: missing destination file operand after '{parsed.args[0]}'")
    *sources, destination = parsed.args
    return sources, destination


def _cp(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    operands = _split_operands(parsed, Builtin.CP)
    if isinstance(operands, CommandResult):
        return operands
    sources, destination = operands
    resolved_destination = state.resolve(destination)
    if len(sources) > 1 and not state.vfs.is_dir(resolved_destination):
        return failure(f"cp: target '{destination}' is not a directory")

    stdout: list[str] = []
    stderr: list[str] = []
    for source in sources:
        resolved_source = state.resolve(source)
        try:
            node = state.vfs.lookup(resolved_source)
        except FilesystemError as exc:
            stderr.append(f"cp: cannot stat '{source}': {exc.strerror}")
            continue
        if isinstance(node, Directory) and not parsed.has("r"):
            stderr.append(f"cp: -r not specified; omitting directory '{source}'")
            continue
        try:
            state.vfs.copy(resolved_source, resolved_destination, recursive=parsed.has("r"))
        except InvalidOperation as exc:
            if isinstance(node, Directory) and exc.path != resolved_source:
                stderr.append(f"cp: cannot copy a directory, '{source}', into itself, '{destination}'")
            else:
                stderr.append(f"cp: '{source}' and '{destination}' are the same file")
            continue
        except FilesystemError as exc:
            stderr.append(f"cp: cannot copy '{source}' to '{destination}': {exc.strerror}")
            continue
        if parsed.has("v"):
            stdout.append(f"'{source}' -> '{destination}'")
    return CommandResult(stdout=tuple(stdout), stderr=tuple(stderr), exit_code=1 if stderr else 0)


def _mv(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    operands = _split_operands(parsed, Builtin.MV)
    if isinstance(operands, CommandResult):
        return operands
    sources, destination = operands
    resolved_destination = state.resolve(destination)
    if len(sources) > 1 and not state.vfs.is_dir(resolved_destination):
        return failure(f"mv: target '{destination}' is not a directory")

    stdout: list[str] = []
    stderr: list[str] = []
    for source in sources:
        resolved_source = state.resolve(source)
        if not state.vfs.exists(resolved_source):
            if not parsed.has("f"):
                stderr.append(f"mv: cannot stat '{source}': No such file or directory")
            continue
        try:
            state.vfs.move(resolved_source, resolved_destination)
        except InvalidOperation:
            stderr.append(f"mv: cannot move '{source}' to a subdirectory of itself, '{destination}'")
            continue
        except FilesystemError as exc:
            stderr.append(f"mv: cannot move '{source}' to '{destination}': {exc.strerror}")
            continue
        if parsed.has("v"):
            stdout.append(f"renamed '{source}' -> '{destination}'")
    return CommandResult(stdout=tuple(stdout), stderr=tuple(stderr), exit_code=1 if stderr else 0)


def _touch(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    if not parsed.args:
        return failure("touch: missing file operand")
    stderr: list[str] = []
    for target in parsed.args:
        resolved = state.resolve(target)
        if state.vfs.is_dir(resolved):
            stderr.append(f"touch: cannot touch '{target}': Is a directory")
            continue
        try:
            state.vfs.touch(resolved)
        except FilesystemError as exc:
            stderr.append(f"touch: cannot touch '{target}': {exc.strerror}")
    return CommandResult(stderr=tuple(stderr), exit_code=1 if stderr else 0)


# Session


def _echo(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    return success(" ".join(parsed.args))


def _whoami(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    return success(state.username)


def _hostname(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    return success(state.hostname)


def _env(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    return success(*(f"{key}={value}" for key, value in sorted(state.environment().items())))


def _history(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    if parsed.has("c"):
        state.history.clear()
        return success()
    return success(*(f"{number:>5}  {line}" for number, line in enumerate(state.history, start=1)))


def _clear(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    return success(side_effect=SideEffect(SideEffectKind.CLEAR_SCREEN))


HELP_TEXT = (
    "Available commands:",
    "  Files:    ls cd pwd cat mkdir rmdir rm cp mv touch",
    "  Search:   head tail grep find wc less more",
    "  Editors:  nano vi vim",
    "  Session:  echo whoami hostname env history clear help sudo",
    "  Network:  ping dig nslookup ifconfig netstat ip curl wget ssh scp",
    "Combine commands with ';' or '&&'. Use -- to end flag parsing.",
)


def _help(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    return success(*HELP_TEXT)


def _sudo(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    if not parsed.args:
        return failure("usage: sudo command")
    nested = [Token(word, True) for word in parsed.args]
    return run_command(nested, state)


# Network


def _ping(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    if not parsed.args:
        return failure("ping: usage error: Destination address required")
    raw_count = parsed.option("c", "4") or ""
    if not raw_count.isdigit() or int(raw_count) < 1:
        return failure(f"ping: invalid count of packets to transmit: '{raw_count}'")
    return state.network.ping(parsed.args[0], int(raw_count))


def _dig(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    domains = [arg for arg in parsed.args if not arg.startswith(("+", "@"))]
    if not domains:
        return failure("usage: dig <domain>")
    return state.network.dig(domains[0], short="+short" in parsed.args)


def _nslookup(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    if not parsed.args:
        return failure("usage: nslookup <domain>")
    return state.network.nslookup(parsed.args[0])


def _ifconfig(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    return state.network.ifconfig()


def _netstat(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    return state.network.netstat(all_servers=parsed.has("t", "u", "l", "n"))


def _ip(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    if parsed.args and parsed.args[0] in ("addr", "address", "a") and parsed.args[1:] in ((), ("show",)):
        return state.network.ip_addr()
    return failure("Usage: ip addr [show]")


def _curl(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    if not parsed.args:
        return failure("curl: try 'curl --help' for more information", exit_code=2)
    return state.network.curl(parsed.args[0], state.vfs, state.cwd, output_name=parsed.option("o"))


def _wget(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    if not parsed.args:
        return failure("wget: missing URL")
    return state.network.wget(
        parsed.args[0],
        state.vfs,
        state.cwd,
        output_name=parsed.option("O"),
        quiet=parsed.has("q"),
    )


def _ssh(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    if not parsed.args:
        return failure("usage: ssh [user@]hostname", exit_code=255)
    return state.network.ssh(parsed.args[0], state.username)


def _scp(parsed: ParsedCommand, state: ShellState) -> CommandResult:
    if len(parsed.args) != 2:
        return failure("usage: scp source target")
    source, destination = parsed.args
    return state.network.scp(source, destination, state.vfs, state.cwd, home=state.home)


HANDLERS: dict[Builtin, Handler] = {
    Builtin.LS: _ls,
    Builtin.CD: _cd,
    Builtin.PWD: _pwd,
    Builtin.CAT: _cat,
    Builtin.MKDIR: _mkdir,
    Builtin.RMDIR: _rmdir,
    Builtin.RM: _rm,
    Builtin.CP: _cp,
    Builtin.MV: _mv,
    Builtin.TOUCH: _touch,
    Builtin.HEAD: _head,
    Builtin.TAIL: _tail,
    Builtin.GREP: _grep,
    Builtin.FIND: _find,
    Builtin.WC: _wc,
    Builtin.LESS: _pager,
    Builtin.MORE: _pager,
    Builtin.NANO: _editor,
    Builtin.VI: _editor,
    Builtin.VIM: _editor,
    Builtin.ECHO: _echo,
    Builtin.WHOAMI: _whoami,
    Builtin.HOSTNAME: _hostname,
    Builtin.ENV: _env,
    Builtin.HISTORY: _history,
    Builtin.CLEAR: _clear,
    Builtin.HELP: _help,
    Builtin.SUDO: _sudo,
    Builtin.PING: _ping,
    Builtin.DIG: _dig,
    Builtin.NSLOOKUP: _nslookup,
    Builtin.IFCONFIG: _ifconfig,
    Builtin.NETSTAT: _netstat,
    Builtin.IP: _ip,
    Builtin.CURL: _curl,
    Builtin.WGET: _wget,
    Builtin.SSH: _ssh,
    Builtin.SCP: _scp,
}
