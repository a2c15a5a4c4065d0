from termquest.network import DEFAULT_HOSTS, NetworkSimulator
from termquest.vfs import VirtualFileSystem


def _vfs() -> VirtualFileSystem:
    return VirtualFileSystem.from_snapshot({"home": {"student": {"report.txt": "done\n"}}})


def test_find_host_by_name_or_address() -> None:
    network = NetworkSimulator()
    assert network.find_host("agency.local") is network.find_host("192.168.1.100")
    assert network.find_host("nowhere") is None


def test_dig_full_answer_is_deterministic() -> None:
    result = NetworkSimulator().dig("omega-corp.com")
    assert result.ok
    assert "omega-corp.com.\t\t300\tIN\tA\t192.168.50.10" in result.stdout
    assert ";; WHEN: Tue, 15 Oct 2024 14:30:00 GMT" in result.stdout
    assert result.stdout == NetworkSimulator().dig("omega-corp.com").stdout


def test_ping_repeats_requested_count() -> None:
    result = NetworkSimulator().ping("agency.local", count=3)
    replies = [line for line in result.stdout if line.startswith("64 bytes from 192.168.1.100")]
    assert len(replies) == 3


def test_wget_root_url_saves_index_html() -> None:
    vfs = _vfs()
    result = NetworkSimulator().wget("omega-corp.com", vfs, "/home/student")
    assert result.ok
    assert vfs.read_file("/home/student/index.html").startswith("<html>")
    assert "--2024-10-15 14:30:00--  omega-corp.com" in result.stdout


def test_wget_and_curl_report_write_failures() -> None:
    vfs = _vfs()
    network = NetworkSimulator()
    failed = network.wget("agency.local/resources/briefing.txt", vfs, "/missing")
    assert failed.exit_code == 3
    curl = network.curl("agency.local/resources/briefing.txt", vfs, "/home", output_name="student")
    assert curl.exit_code == 23
    assert network.curl("agency.local/nothing").stderr == (
        "curl: (22) The requested URL returned error: 404 Not Found",
    )


def test_ssh_unknown_host() -> None:
    result = NetworkSimulator().ssh("root@nowhere", "student")
    assert result.exit_code == 255
    assert result.stderr == ("ssh: Could not resolve hostname nowhere: Name or service not known",)


def test_scp_validation() -> None:
    vfs = _vfs()
    network = NetworkSimulator()
    assert network.scp("a:x", "b:y", vfs, "/").stderr == ("scp: direct remote-to-remote copying not supported",)
    assert network.scp("x", "y", vfs, "/").stderr == (
        "scp: one of source or destination must be remote (host:path)",
    )
    missing = network.scp("remote-server:/nope.txt", ".", vfs, "/home/student")
    assert missing.stderr == ("scp: /nope.txt: No such file or directory",)
    local_missing = network.scp("nope.txt", "remote-server:", vfs, "/home/student")
    assert local_missing.stderr == ("scp: nope.txt: No such file or directory",)


def test_scp_upload_defaults_to_remote_home_and_stays_private() -> None:
    vfs = _vfs()
    first = NetworkSimulator()
    second = NetworkSimulator()
    assert first.scp("~/report.txt", "omega_agent@remote-server:", vfs, "/", home="/home/student").ok
    host = first.find_host("remote-server")
    assert host is not None
    assert host.files["/home/omega_agent/report.txt"] == "done\n"
    other = second.find_host("remote-server")
    assert other is not None
    assert "/home/omega_agent/report.txt" not in other.files
    assert "/home/omega_agent/report.txt" not in DEFAULT_HOSTS[1].files
