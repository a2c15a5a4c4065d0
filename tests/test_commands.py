from datetime import UTC, datetime

from termquest.cmdline import ParsedCommand, split_line
from termquest.commands import HANDLERS, Builtin, execute, run_command
from termquest.models import CommandResult, SideEffectKind
from termquest.state import ShellState
from termquest.vfs import VirtualFileSystem

FIXED = datetime(2024, 1, 2, 3, 4, tzinfo=UTC)


def _state() -> ShellState:
    vfs = VirtualFileSystem.from_snapshot(
        {
            "home": {
                "student": {
                    "notes.txt": "alpha\nbeta\ngamma\n",
                    ".profile": "export X=1\n",
                    "logs": {"app.log": "INFO start\nERROR disk full\ninfo done\n", "old.log": "ERROR old\n"},
                    "temp_exfil": {"a.dat": "1", "b.dat": "2"},
                }
            },
            "etc": {"hostname": "box\n"},
            "tmp": {},
        },
        clock=lambda: FIXED,
    )
    return ShellState(vfs=vfs, cwd="/home/student")


def _run(state: ShellState, line: str) -> CommandResult:
    (segment,) = split_line(line)
    return run_command(segment.tokens, state)


def test_every_builtin_has_a_handler() -> None:
    assert set(HANDLERS) == set(Builtin)


def test_unknown_command_exits_127() -> None:
    result = _run(_state(), "frobnicate now")
    assert result.exit_code == 127
    assert result.stderr == ("bash: frobnicate: command not found",)
    assert execute("frobnicate", ParsedCommand("frobnicate"), _state()).exit_code == 127


def test_option_errors_are_usage_errors() -> None:
    state = _state()
    result = _run(state, "ls -z")
    assert result.exit_code == 2
    assert result.stderr == ("ls: invalid option -- 'z'", "Try 'ls --help' for more information.")
    assert _run(state, "rm -z notes.txt").exit_code == 1
    assert state.vfs.exists("/home/student/notes.txt")


# Navigation


def test_cd_and_pwd() -> None:
    state = _state()
    result = _run(state, "cd logs")
    assert result.ok
    assert result.side_effect is not None
    assert result.side_effect.kind is SideEffectKind.CWD_CHANGED
    assert result.side_effect.path == "/home/student/logs"
    assert _run(state, "pwd").stdout == ("/home/student/logs",)
    _run(state, "cd ../..")
    assert state.cwd == "/home"
    _run(state, "cd")
    assert state.cwd == "/home/student"
    _run(state, "cd /")
    _run(state, "cd ..")
    assert state.cwd == "/"


def test_cd_errors_leave_cwd_unchanged() -> None:
    state = _state()
    assert _run(state, "cd nope").stderr == ("bash: cd: nope: No such file or directory",)
    assert _run(state, "cd notes.txt").stderr == ("bash: cd: notes.txt: Not a directory",)
    assert _run(state, "cd a b").stderr == ("bash: cd: too many arguments",)
    assert state.cwd == "/home/student"


def test_cd_dash_returns_to_previous_directory() -> None:
    state = _state()
    assert _run(state, "cd -").stderr == ("bash: cd: OLDPWD not set",)
    _run(state, "cd /tmp")
    result = _run(state, "cd -")
    assert result.stdout == ("/home/student",)
    assert state.cwd == "/home/student"
    assert state.previous_cwd == "/tmp"


def test_mkdir_parents_then_cd_then_pwd() -> None:
    state = _state()
    assert _run(state, "mkdir -p a/b/c").ok
    assert _run(state, "cd a/b/c").ok
    assert _run(state, "pwd").stdout == ("/home/student/a/b/c",)


# Listing


def test_ls_sorted_and_hidden() -> None:
    state = _state()
    assert _run(state, "ls").stdout == ("logs  notes.txt  temp_exfil",)
    assert _run(state, "ls -a").stdout == (".  ..  .profile  logs  notes.txt  temp_exfil",)
    assert _run(state, "ls -1 logs").stdout == ("app.log", "old.log")
    assert _run(state, "ls notes.txt").stdout == ("notes.txt",)
    assert _run(state, "ls /tmp").stdout == ()


def test_ls_long_format() -> None:
    result = _run(_state(), "ls -l logs")
    assert result.stdout[0] == "total 8"
    first = result.stdout[1]
    assert first.startswith("-rw-r--r--  1 student student")
    assert first.endswith(" 37 Jan 02 03:04 app.log")
    dirs = _run(_state(), "ls -l").stdout
    assert any(line.startswith("drwxr-xr-x  2 student student") and line.endswith("logs") for line in dirs)


def test_ls_missing_target_and_multiple_targets() -> None:
    state = _state()
    result = _run(state, "ls nope")
    assert result.exit_code == 2
    assert result.stderr == ("ls: cannot access 'nope': No such file or directory",)
    both = _run(state, "ls logs temp_exfil")
    assert both.stdout == ("logs:", "app.log  old.log", "", "temp_exfil:", "a.dat  b.dat")


# File contents


def test_cat() -> None:
    state = _state()
    assert _run(state, "cat notes.txt").stdout == ("alpha", "beta", "gamma")
    assert _run(state, "cat -n notes.txt").stdout[0] == "     1\talpha"
    missing = _run(state, "cat nope logs")
    assert missing.exit_code == 1
    assert missing.stderr == ("cat: nope: No such file or directory", "cat: logs: Is a directory")
    assert _run(state, "cat ~/notes.txt").ok


def test_head_and_tail() -> None:
    state = _state()
    assert _run(state, "head -n 2 notes.txt").stdout == ("alpha", "beta")
    assert _run(state, "head -1 notes.txt").stdout == ("alpha",)
    assert _run(state, "head --lines=2 notes.txt").stdout == ("alpha", "beta")
    assert _run(state, "tail -n 1 notes.txt").stdout == ("gamma",)
    assert _run(state, "tail -n +2 notes.txt").stdout == ("beta", "gamma")
    assert _run(state, "head -n x notes.txt").stderr == ("head: invalid number of lines: 'x'",)
    assert _run(state, "head -n 1 notes.txt logs/old.log").stdout == (
        "==> notes.txt <==",
        "alpha",
        "",
        "==> logs/old.log <==",
        "ERROR old",
    )


def test_wc() -> None:
    state = _state()
    assert _run(state, "wc notes.txt").stdout == ("      3      3     17 notes.txt",)
    assert _run(state, "wc -l notes.txt").stdout == ("      3 notes.txt",)
    assert _run(state, "wc -l notes.txt logs/old.log").stdout[-1] == "      4 total"


def test_grep_flags() -> None:
    state = _state()
    assert _run(state, "grep ERROR logs/app.log").stdout == ("ERROR disk full",)
    assert _run(state, "grep -i info logs/app.log").stdout == ("INFO start", "info done")
    assert _run(state, "grep -n ERROR logs/app.log").stdout == ("2:ERROR disk full",)
    assert _run(state, "grep -v ERROR logs/app.log").stdout == ("INFO start", "info done")
    assert _run(state, "grep -c ERROR logs/app.log").stdout == ("1",)
    assert _run(state, "grep -r ERROR logs").stdout == ("logs/app.log:ERROR disk full", "logs/old.log:ERROR old")
    assert _run(state, "grep -rl ERROR .").stdout == ("./logs/app.log", "./logs/old.log")


def test_grep_exit_codes() -> None:
    state = _state()
    assert _run(state, "grep zzz notes.txt").exit_code == 1
    missing = _run(state, "grep x nope")
    assert missing.exit_code == 2
    assert missing.stderr == ("grep: nope: No such file or directory",)
    assert _run(state, "grep x logs").stderr == ("grep: logs: Is a directory",)
    assert _run(state, "grep").exit_code == 2
    assert _run(state, "grep -q x notes.txt").exit_code == 2


def test_find() -> None:
    state = _state()
    assert _run(state, "find . -name '*.log'").stdout == ("./logs/app.log", "./logs/old.log")
    assert _run(state, "find logs -type f").stdout == ("logs/app.log", "logs/old.log")
    assert _run(state, "find . -maxdepth 1 -type d").stdout == (".", "./logs", "./temp_exfil")
    assert _run(state, "find . -iname 'APP.*'").stdout == ("./logs/app.log",)
    missing = _run(state, "find nope")
    assert missing.exit_code == 1
    assert missing.stderr == ("find: 'nope': No such file or directory",)
    assert _run(state, "find . -type x").exit_code == 1


def test_pager_and_editor_side_effects() -> None:
    state = _state()
    pager = _run(state, "less notes.txt")
    assert pager.stdout == ("alpha", "beta", "gamma")
    assert pager.side_effect is not None
    assert pager.side_effect.kind is SideEffectKind.OPEN_PAGER
    editor = _run(state, "nano report.txt")
    assert editor.side_effect is not None
    assert editor.side_effect.kind is SideEffectKind.OPEN_EDITOR
    assert editor.side_effect.path == "/home/student/report.txt"
    assert _run(state, "vim logs").stderr == ("vim: logs: Is a directory",)
    assert _run(state, "nano nodir/x.txt").stderr == ("nano: nodir/x.txt: No such file or directory",)


# Mutations


def test_rm_recursive_force_then_ls() -> None:
    state = _state()
    assert _run(state, "rm -rf temp_exfil").ok
    assert "temp_exfil" not in _run(state, "ls").output


def test_rm_never_treats_flags_as_files() -> None:
    state = _state()
    state.vfs.write_file("/home/student/-r", "keep me")
    result = _run(state, "rm -r")
    assert result.stderr == ("rm: missing operand",)
    assert state.vfs.exists("/home/student/-r")
    assert _run(state, "rm -- -r").ok
    assert not state.vfs.exists("/home/student/-r")


def test_rm_flag_named_file_survives_recursive_removal() -> None:
    state = ShellState(
        vfs=VirtualFileSystem.from_snapshot({"home": {"student": {"-r": "keep", "d": {"inner.txt": "x"}}}}),
        cwd="/home/student",
    )
    assert _run(state, "rm -r").stderr == ("rm: missing operand",)
    assert _run(state, "rm -f -r d").ok
    assert state.vfs.read_file("/home/student/-r") == "keep"
    assert not state.vfs.exists("/home/student/d")


def test_rm_errors() -> None:
    state = _state()
    assert _run(state, "rm logs").stderr == ("rm: cannot remove 'logs': Is a directory",)
    assert _run(state, "rm -f logs").stderr == ("rm: cannot remove 'logs': Is a directory",)
    assert _run(state, "rm nope").stderr == ("rm: cannot remove 'nope': No such file or directory",)
    assert _run(state, "rm -f nope").ok
    assert _run(state, "rm -rf .").stderr == ("rm: refusing to remove '.' or '..' directory: skipping '.'",)
    assert _run(state, "rm -rf /").stderr == ("rm: it is dangerous to operate recursively on '/'",)
    assert state.vfs.is_dir("/home/student/logs")
    assert _run(state, "rm -v notes.txt").stdout == ("removed 'notes.txt'",)


def test_rmdir() -> None:
    state = _state()
    assert _run(state, "rmdir logs").stderr == ("rmdir: failed to remove 'logs': Directory not empty",)
    assert _run(state, "rmdir notes.txt").stderr == ("rmdir: failed to remove 'notes.txt': Not a directory",)
    assert _run(state, "rmdir /tmp").ok
    assert not state.vfs.exists("/tmp")


def test_mkdir_messages() -> None:
    state = _state()
    assert _run(state, "mkdir logs").stderr == ("mkdir: cannot create directory 'logs': File exists",)
    assert _run(state, "mkdir a/b").stderr == ("mkdir: cannot create directory 'a/b': No such file or directory",)
    assert _run(state, "mkdir -v new").stdout == ("mkdir: created directory 'new'",)
    assert _run(state, "mkdir").stderr == ("mkdir: missing operand",)


def test_cp() -> None:
    state = _state()
    assert _run(state, "cp logs backup").stderr == ("cp: -r not specified; omitting directory 'logs'",)
    assert _run(state, "cp -r logs backup").ok
    assert state.vfs.read_file("/home/student/backup/old.log") == "ERROR old\n"
    assert _run(state, "cp notes.txt /tmp").ok
    assert state.vfs.read_file("/tmp/notes.txt") == "alpha\nbeta\ngamma\n"
    assert _run(state, "cp notes.txt notes.txt").stderr == ("cp: 'notes.txt' and 'notes.txt' are the same file",)
    assert _run(state, "cp -r logs logs/inner").stderr == (
        "cp: cannot copy a directory, 'logs', into itself, 'logs/inner'",
    )
    assert _run(state, "cp notes.txt").stderr == ("cp: missing destination file operand after 'notes.txt'",)
    assert _run(state, "cp a b notes.txt").stderr == ("cp: target 'notes.txt' is not a directory",)


def test_mv() -> None:
    state = _state()
    assert _run(state, "mv notes.txt renamed.txt").ok
    assert state.vfs.is_file("/home/student/renamed.txt")
    assert not state.vfs.exists("/home/student/notes.txt")
    assert _run(state, "mv ghost x").stderr == ("mv: cannot stat 'ghost': No such file or directory",)
    assert _run(state, "mv -f ghost x").ok
    assert _run(state, "mv logs logs/deeper").stderr == (
        "mv: cannot move 'logs' to a subdirectory of itself, 'logs/deeper'",
    )


def test_touch() -> None:
    state = _state()
    assert _run(state, "touch fresh.txt").ok
    assert state.vfs.read_file("/home/student/fresh.txt") == ""
    assert _run(state, "touch logs").stderr == ("touch: cannot touch 'logs': Is a directory",)
    assert _run(state, "touch nodir/x").stderr == ("touch: cannot touch 'nodir/x': No such file or directory",)


# Expansion


def test_globs_expand_unquoted_words_only() -> None:
    state = _state()
    assert _run(state, "cat logs/*.log").stdout == ("INFO start", "ERROR disk full", "info done", "ERROR old")
    assert _run(state, "ls '*.txt'").stderr == ("ls: cannot access '*.txt': No such file or directory",)
    assert _run(state, "ls *.zzz").stderr == ("ls: cannot access '*.zzz': No such file or directory",)
    assert _run(state, "ls .*").stdout == (".profile",)
    assert _run(state, "rm temp_exfil/*.dat").ok
    assert state.vfs.list_dir("/home/student/temp_exfil") == []


def test_sudo_runs_the_wrapped_command() -> None:
    state = _state()
    assert _run(state, "sudo rm notes.txt").ok
    assert not state.vfs.exists("/home/student/notes.txt")
    assert _run(state, "sudo").stderr == ("usage: sudo command",)


# Session


def test_session_commands() -> None:
    state = _state()
    state.history.extend(["ls", "pwd"])
    assert _run(state, "echo hello   world").stdout == ("hello world",)
    assert _run(state, "echo 'a  b' -n").stdout == ("a  b -n",)
    assert _run(state, "whoami").stdout == ("student",)
    assert _run(state, "hostname").stdout == ("termquest",)
    env = _run(state, "env").stdout
    assert "USER=student" in env
    assert "PWD=/home/student" in env
    assert _run(state, "history").stdout == ("    1  ls", "    2  pwd")
    assert _run(state, "history -c").ok
    assert state.history == []
    clear = _run(state, "clear")
    assert clear.side_effect is not None
    assert clear.side_effect.kind is SideEffectKind.CLEAR_SCREEN
    assert _run(state, "help").stdout[0] == "Available commands:"


# Network


def test_ping_and_name_resolution() -> None:
    state = _state()
    ping = _run(state, "ping -c 2 localhost")
    assert ping.stdout[0] == "PING localhost (127.0.0.1): 56 data bytes"
    assert "2 packets transmitted, 2 packets received, 0.0% packet loss" in ping.stdout
    unknown = _run(state, "ping nowhere")
    assert unknown.exit_code == 2
    assert unknown.stderr == ("ping: nowhere: Name or service not known",)
    assert _run(state, "ping -c 0 localhost").stderr == ("ping: invalid count of packets to transmit: '0'",)
    assert _run(state, "dig +short agency.local").stdout == ("192.168.1.100",)
    assert _run(state, "dig nowhere.test").exit_code == 9
    assert _run(state, "nslookup omega-corp.com").stdout[-1] == "Address: 192.168.50.10"
    assert _run(state, "nslookup nowhere.test").exit_code == 1


def test_interface_and_socket_listings() -> None:
    state = _state()
    assert any("inet 192.168.1.100" in line for line in _run(state, "ifconfig").stdout)
    assert _run(state, "ip addr show").ok
    assert _run(state, "ip route").exit_code == 1
    assert not any("0.0.0.0:80 " in line for line in _run(state, "netstat").stdout)
    assert any("0.0.0.0:80 " in line for line in _run(state, "netstat -tuln").stdout)


def test_curl_and_wget_write_into_the_vfs() -> None:
    state = _state()
    assert _run(state, "curl http://omega-corp.com").stdout == (
        "<html><body>Omega Corp - Authorized Access Only</body></html>",
    )
    assert _run(state, "curl -o page.html http://omega-corp.com").ok
    assert state.vfs.is_file("/home/student/page.html")
    assert _run(state, "curl http://nowhere.test").exit_code == 6
    wget = _run(state, "wget http://agency.local/resources/briefing.txt")
    assert wget.stdout[-1].endswith("'briefing.txt' saved [41/41]")
    assert state.vfs.read_file("/home/student/briefing.txt") == "Mission briefing downloaded successfully."
    quiet = _run(state, "wget -q -O brief.txt http://agency.local/resources/briefing.txt")
    assert quiet.stdout == ()
    assert state.vfs.is_file("/home/student/brief.txt")
    assert _run(state, "wget http://agency.local/missing").exit_code == 8


def test_ssh_and_scp() -> None:
    state = _state()
    ok = _run(state, "ssh agent@agency.local")
    assert "agent@agency.local: Connection established." in ok.stdout
    denied = _run(state, "ssh agency.local")
    assert denied.exit_code == 255
    assert denied.stderr == ("student@agency.local: Permission denied (publickey,password).",)
    download = _run(state, "scp omega_agent@remote-server:/home/omega/incoming/README.txt .")
    assert download.stdout[0].startswith("README.txt")
    assert state.vfs.is_file("/home/student/README.txt")
    upload = _run(state, "scp notes.txt omega_agent@remote-server:/home/omega/incoming/")
    assert "100%" in upload.output
    host = state.network.find_host("remote-server")
    assert host is not None
    assert host.files["/home/omega/incoming/notes.txt"] == "alpha\nbeta\ngamma\n"
