"""Per-session mutable shell state."""

from __future__ import annotations

from dataclasses import dataclass, field

from . import paths
from .network import NetworkSimulator
from .vfs import VirtualFileSystem


@dataclass
class ShellState:
    """Everything one command needs: filesystem, identity and working directory.

    One instance per session; nothing here is process-global.
    """

    vfs: VirtualFileSystem
    username: str = "student"
    home: str = "/home/student"
    cwd: str = "/home/student"
    hostname: str = "termquest"
    network: NetworkSimulator = field(default_factory=NetworkSimulator)
    previous_cwd: str | None = None
    history: list[str] = field(default_factory=list)

    def resolve(self, target: str) -> str:
        """Resolve a user-supplied path against the working directory and home."""
        return paths.resolve(self.cwd, target, self.home)

    def change_directory(self, target: str) -> None:
        self.previous_cwd = self.cwd
        self.cwd = target

    def environment(self) -> dict[str, str]:
        return {
            "USER": self.username,
            "HOME": self.home,
            "PWD": self.cwd,
            "HOSTNAME": self.hostname,
            "SHELL": "/bin/bash",
            "PATH": "/usr/local/bin:/usr/bin:/bin",
            "TERM": "xterm-256color",
        }
