"""Deterministic network simulation for ping, dig, curl, wget, ssh and scp.

Nothing here performs real I/O. Every host lives in a fixed table; transfers
only ever land in the virtual filesystem or in this simulator's own copy of the
remote file maps.
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.utils import format_datetime

from . import paths
from .errors import FilesystemError
from .log import get_logger
from .models import CommandResult, failure, success
from .vfs import Clock, VirtualFileSystem

logger = get_logger(__name__)

SIMULATED_NOW = datetime(2024, 10, 15, 14, 30, tzinfo=UTC)
DNS_SERVER = "8.8.8.8"
URL_PATTERN = re.compile(r"^(?:https?://)?([^/:]+)(?::\d+)?(/.*)?$")


def _simulated_clock() -> datetime:
    return SIMULATED_NOW


@dataclass
class RemoteHost:
    """One simulated machine reachable by name or address."""

    hostname: str
    ip: str
    username: str
    rtt_ms: tuple[float, float, float] = (1.1, 1.23, 1.4)
    files: dict[str, str] = field(default_factory=dict)


DEFAULT_HOSTS = (
    RemoteHost("localhost", "127.0.0.1", "student", rtt_ms=(0.043, 0.053, 0.062)),
    RemoteHost(
        "remote-server",
        "10.0.0.50",
        "omega_agent",
        files={
            "/home/omega/incoming/README.txt": "Place evidence files here for secure transfer to headquarters.",
            "/home/omega/incoming/.gitkeep": "",
        },
    ),
    RemoteHost(
        "agency.local",
        "192.168.1.100",
        "agent",
        rtt_ms=(1.1, 1.25, 1.4),
        files={
            "/var/www/briefing": (
                '{"status":"ACTIVE","mission":"PROJECT_ALPHA","clearance":"TOP_SECRET",'
                '"agent":"GHOST","message":"Evidence collection authorized. Proceed with caution."}'
            ),
            "/resources/briefing.txt": "Mission briefing downloaded successfully.",
        },
    ),
    RemoteHost(
        "omega-corp.com",
        "192.168.50.10",
        "admin",
        rtt_ms=(2.3, 2.45, 2.6),
        files={"/index.html": "<html><body>Omega Corp - Authorized Access Only</body></html>"},
    ),
)

IFCONFIG_OUTPUT = """\
eth0: flags=4163<UP,BROADCAST,RUNNING,MULTICAST>  mtu 1500
        inet 192.168.1.100  netmask 255.255.255.0  broadcast 192.168.1.255
        inet6 fe80::a00:27ff:fe4e:66a1  prefixlen 64  scopeid 0x20<link>
        ether 08:00:27:4e:66:a1  txqueuelen 1000  (Ethernet)
        RX packets 1234  bytes 987654 (963.5 KiB)
        TX packets 567  bytes 234567 (229.0 KiB)

lo: flags=73<UP,LOOPBACK,RUNNING>  mtu 65536
        inet 127.0.0.1  netmask 255.0.0.0
        inet6 ::1  prefixlen 128  scopeid 0x10<host>
        loop  txqueuelen 1000  (Local Loopback)"""

IP_ADDR_OUTPUT = """\
1: lo: <LOOPBACK,UP,LOWER_UP> mtu 65536 qdisc noqueue state UNKNOWN group default qlen 1000
    link/loopback 00:00:00:00:00:00 brd 00:00:00:00:00:00
    inet 127.0.0.1/8 scope host lo
       valid_lft forever preferred_lft forever
    inet6 ::1/128 scope host
       valid_lft forever preferred_lft forever
2: eth0: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1500 qdisc pfifo_fast state UP group default qlen 1000
    link/ether 08:00:27:4e:66:a1 brd ff:ff:ff:ff:ff:ff
    inet 192.168.1.100/24 brd 192.168.1.255 scope global dynamic eth0
       valid_lft 86394sec preferred_lft 86394sec
    inet6 fe80::a00:27ff:fe4e:66a1/64 scope link
       valid_lft forever preferred_lft forever"""

NETSTAT_HEADER = (
    "Active Internet connections (only servers)",
    "Proto Recv-Q Send-Q Local Address           Foreign Address         State",
)
NETSTAT_SERVERS = (
    ("tcp", "0.0.0.0:22", "0.0.0.0:*", "LISTEN"),
    ("tcp", "127.0.0.1:3000", "0.0.0.0:*", "LISTEN"),
    ("tcp", "0.0.0.0:80", "0.0.0.0:*", "LISTEN"),
    ("tcp", "0.0.0.0:443", "0.0.0.0:*", "LISTEN"),
    ("udp", "0.0.0.0:68", "0.0.0.0:*", ""),
    ("tcp6", ":::80", ":::*", "LISTEN"),
    ("tcp6", ":::22", ":::*", "LISTEN"),
)


def _netstat_row(proto: str, local: str, foreign: str, state: str) -> str:
    return f"{proto:<6}{0:>4}{0:>7} {local:<23} {foreign:<23} {state}".rstrip()


def _transfer_line(name: str, size: int) -> str:
    return f"{name:<36}100%  {size}    {size / 1024:.1f}KB/s   00:00"


def _byte_length(content: str) -> int:
    return len(content.encode("utf-8"))


class NetworkSimulator:
    """Fixed host table plus the canned output of each network command.

    Each instance owns a private copy of the remote file maps so that `scp`
    uploads in one session are invisible to every other session.
    """

    def __init__(self, hosts: tuple[RemoteHost, ...] = DEFAULT_HOSTS, *, clock: Clock | None = None) -> None:
        self.hosts = [copy.deepcopy(host) for host in hosts]
        self._clock = clock or _simulated_clock

    def find_host(self, target: str) -> RemoteHost | None:
        """Return the host whose name or address equals `target`."""
        for host in self.hosts:
            if target in (host.hostname, host.ip):
                return host
        return None

    # Connectivity and name resolution

    def ping(self, target: str, count: int = 4) -> CommandResult:
        host = self.find_host(target)
        if host is None:
            return failure(f"ping: {target}: Name or service not known", exit_code=2)
        low, mean, high = host.rtt_ms
        samples = (low, high, mean, mean + 0.1)
        lines = [f"PING {host.hostname} ({host.ip}): 56 data bytes"]
        for sequence in range(count):
            sample = samples[sequence % len(samples)]
            lines.append(f"64 bytes from {host.ip}: icmp_seq={sequence} ttl=64 time={sample:.1f} ms")
        lines.extend(
            [
                "",
                f"--- {host.hostname} ping statistics ---",
                f"{count} packets transmitted, {count} packets received, 0.0% packet loss",
                f"round-trip min/avg/max/stddev = {low:.1f}/{mean:.2f}/{high:.1f}/{(high - low) / 2:.2f} ms",
            ]
        )
        return success(*lines)

    def dig(self, domain: str, *, short: bool = False) -> CommandResult:
        host = self.find_host(domain)
        if host is None:
            return CommandResult(
                stdout=(
                    f"; <<>> DiG 9.10.6 <<>> {domain}",
                    ";; global options: +cmd",
                    ";; connection timed out; no servers could be reached",
                ),
                exit_code=9,
            )
        if short:
            return success(host.ip)
        return success(
            f"; <<>> DiG 9.10.6 <<>> {domain}",
            ";; global options: +cmd",
            ";; Got answer:",
            ";; ->>HEADER<<- opcode: QUERY, status: NOERROR, id: 12345",
            ";; flags: qr rd ra; QUERY: 1, ANSWER: 1, AUTHORITY: 0, ADDITIONAL: 1",
            "",
            ";; QUESTION SECTION:",
            f";{domain}.\t\t\tIN\tA",
            "",
            ";; ANSWER SECTION:",
            f"{domain}.\t\t300\tIN\tA\t{host.ip}",
            "",
            ";; Query time: 23 msec",
            f";; SERVER: {DNS_SERVER}#53({DNS_SERVER})",
            f";; WHEN: {format_datetime(self._clock(), usegmt=True)}",
            ";; MSG SIZE  rcvd: 56",
        )

    def nslookup(self, domain: str) -> CommandResult:
        header = (f"Server:\t\t{DNS_SERVER}", f"Address:\t{DNS_SERVER}#53", "")
        host = self.find_host(domain)
        if host is None:
            return CommandResult(stdout=(*header, f"** server can't find {domain}: NXDOMAIN"), exit_code=1)
        return success(*header, "Non-authoritative answer:", f"Name:\t{domain}", f"Address: {host.ip}")

    def ifconfig(self) -> CommandResult:
        return success(*IFCONFIG_OUTPUT.splitlines())

    def ip_addr(self) -> CommandResult:
        return success(*IP_ADDR_OUTPUT.splitlines())

    def netstat(self, *, all_servers: bool = False) -> CommandResult:
        """List listening sockets; `all_servers` adds the ones `-tuln` reveals."""
        rows = NETSTAT_SERVERS if all_servers else (NETSTAT_SERVERS[0], NETSTAT_SERVERS[1], *NETSTAT_SERVERS[5:])
        return success(*NETSTAT_HEADER, *(_netstat_row(*row) for row in rows))

    # Transfers

    def _fetch(self, url: str) -> tuple[RemoteHost | None, str, str | None]:
        match = URL_PATTERN.match(url)
        if match is None:
            return None, url, None
        hostname, remote_path = match.group(1), match.group(2) or "/index.html"
        host = self.find_host(hostname)
        if host is None:
            return None, hostname, None
        return host, hostname, host.files.get(remote_path)

    def curl(
        self,
        url: str,
        vfs: VirtualFileSystem | None = None,
        cwd: str = "/",
        *,
        output_name: str | None = None,
    ) -> CommandResult:
        """Return the remote body, or write it to `output_name` when given."""
        host, hostname, content = self._fetch(url)
        if host is None:
            return failure(f"curl: (6) Could not resolve host: {hostname}", exit_code=6)
        if content is None:
            return failure("curl: (22) The requested URL returned error: 404 Not Found", exit_code=22)
        if output_name is None or vfs is None:
            return success(*content.splitlines())
        try:
            vfs.write_file(paths.resolve(cwd, output_name), content)
        except FilesystemError as exc:
            return failure(f"curl: (23) Failed writing body to {output_name}: {exc.strerror}", exit_code=23)
        return success()

    def wget(
        self,
        url: str,
        vfs: VirtualFileSystem,
        cwd: str,
        *,
        output_name: str | None = None,
        quiet: bool = False,
    ) -> CommandResult:
        """Download `url` into the working directory of the virtual filesystem."""
        host, hostname, content = self._fetch(url)
        if host is None:
            return failure(f"wget: unable to resolve host address '{hostname}'", exit_code=4)
        if content is None:
            return failure("wget: server returned error: HTTP/1.1 404 Not Found", exit_code=8)
        match = URL_PATTERN.match(url)
        remote_path = (match.group(2) if match else None) or "/index.html"
        filename = output_name or paths.basename(remote_path)
        if filename == paths.ROOT:
            filename = "index.html"
        try:
            vfs.write_file(paths.resolve(cwd, filename), content)
        except FilesystemError as exc:
            return failure(f"wget: cannot write to '{filename}': {exc.strerror}", exit_code=3)
        logger.debug("wget_saved", url=url, filename=filename)
        if quiet:
            return success()

        stamp = self._clock().strftime("%Y-%m-%d %H:%M:%S")
        size = _byte_length(content)
        return success(
            f"--{stamp}--  {url}",
            f"Resolving {hostname}... {host.ip}",
            f"Connecting to {hostname}|{host.ip}|:80... connected.",
            "HTTP request sent, awaiting response... 200 OK",
            f"Length: {size} [text/plain]",
            f"Saving to: '{filename}'",
            "",
            f"{filename}        100%[===================>]   {size}  --.-KB/s    in 0s",
            "",
            f"{stamp} ({size / 1024:.1f} KB/s) - '{filename}' saved [{size}/{size}]",
        )

    def ssh(self, target: str, default_user: str) -> CommandResult:
        """Report a simulated login; only a host's configured account is accepted."""
        username, _, hostname = target.rpartition("@")
        username = username or default_user
        host = self.find_host(hostname)
        if host is None:
            return failure(
                f"ssh: Could not resolve hostname {hostname}: Name or service not known",
                exit_code=255,
            )
        if username != host.username:
            return CommandResult(
                stdout=(f"Connecting to {hostname}...", f"{username}@{hostname}'s password: "),
                stderr=(f"{username}@{hostname}: Permission denied (publickey,password).",),
                exit_code=255,
            )
        return success(
            f"Connecting to {hostname}...",
            f"Warning: Permanently added '{hostname},{host.ip}' (ECDSA) to the list of known hosts.",
            f"Last login: {format_datetime(self._clock(), usegmt=True)}",
            f"{username}@{hostname}: Connection established.",
            f"Connection to {hostname} closed.",
        )

    def scp(
        self,
        source: str,
        destination: str,
        vfs: VirtualFileSystem,
        cwd: str,
        *,
        home: str | None = None,
    ) -> CommandResult:
        """Copy one file between the virtual filesystem and a remote host."""
        src_host, src_path = _split_remote(source)
        dst_host, dst_path = _split_remote(destination)
        if src_host is not None and dst_host is not None:
            return failure("scp: direct remote-to-remote copying not supported")
        if src_host is not None:
            return self._scp_download(src_host, src_path, dst_path, vfs, cwd, home)
        if dst_host is not None:
            return self._scp_upload(src_path, dst_host, dst_path, vfs, cwd, home)
        return failure("scp: one of source or destination must be remote (host:path)")

    def _scp_download(
        self, src_host: str, src_path: str, dst_path: str, vfs: VirtualFileSystem, cwd: str, home: str | None
    ) -> CommandResult:
        host = self.find_host(src_host)
        if host is None:
            return failure(f"ssh: Could not resolve hostname {src_host}: Name or service not known")
        content = host.files.get(paths.normalize(src_path))
        if content is None:
            return failure(f"scp: {src_path}: No such file or directory")
        local = paths.resolve(cwd, dst_path or ".", home)
        if vfs.is_dir(local):
            local = paths.join(local, paths.basename(src_path))
        try:
            vfs.write_file(local, content)
        except FilesystemError as exc:
            return failure(f"scp: {dst_path}: {exc.strerror}")
        return success(_transfer_line(paths.basename(src_path), _byte_length(content)))

    def _scp_upload(
        self, src_path: str, dst_host: str, dst_path: str, vfs: VirtualFileSystem, cwd: str, home: str | None
    ) -> CommandResult:
        host = self.find_host(dst_host)
        if host is None:
            return failure(f"ssh: Could not resolve hostname {dst_host}: Name or service not known")
        try:
            content = vfs.read_file(paths.resolve(cwd, src_path, home))
        except FilesystemError as exc:
            return failure(f"scp: {src_path}: {exc.strerror}")
        remote = dst_path or f"/home/{host.username}/"
        if not remote.startswith("/"):
            remote = f"/home/{host.username}/{remote}"
        if remote.endswith("/") or _is_remote_dir(host, remote):
            remote = paths.join(paths.normalize(remote), paths.basename(src_path))
        host.files[paths.normalize(remote)] = content
        return success(_transfer_line(paths.basename(src_path), _byte_length(content)))


def _split_remote(location: str) -> tuple[str | None, str]:
    """Split `[user@]host:path` into `(host, path)`; local paths return `(None, path)`."""
    if ":" not in location or location.startswith("/"):
        return None, location
    host_part, _, remote_path = location.partition(":")
    return host_part.rpartition("@")[2], remote_path


def _is_remote_dir(host: RemoteHost, path: str) -> bool:
    prefix = paths.normalize(path).rstrip("/") + "/"
    return any(name.startswith(prefix) for name in host.files)
