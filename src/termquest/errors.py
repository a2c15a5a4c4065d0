"""Exception taxonomy for the virtual shell."""

from __future__ import annotations


class ShellError(Exception):
    """Base class for every error the shell core raises on purpose."""


class ParseError(ShellError):
    """The command line could not be tokenized (e.g. an unterminated quote)."""


class OptionError(ShellError):
    """A flag was unknown or a named flag was missing its value."""


class FilesystemError(ShellError):
    """A virtual filesystem operation failed.

    `path` is the path as the operation saw it; `strerror` is the Unix-style
    reason text used in shell messages.
    """

    strerror = "Operation not permitted"

    def __init__(self, path: str, strerror: str | None = None) -> None:
        if strerror is not None:
            self.strerror = strerror
        self.path = path
        super().__init__(f"{path}: {self.strerror}")


class NoSuchEntry(FilesystemError):
    strerror = "No such file or directory"


class NotADirectory(FilesystemError):
    strerror = "Not a directory"


class IsADirectory(FilesystemError):
    strerror = "Is a directory"


class DirectoryNotEmpty(FilesystemError):
    strerror = "Directory not empty"


class AlreadyExists(FilesystemError):
    strerror = "File exists"


class InvalidOperation(FilesystemError):
    strerror = "Invalid argument"
