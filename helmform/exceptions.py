"""Exception types raised by the values engine and the Helm client."""


class HelmformError(Exception):
    """Base class for all helmform errors."""


class ParseError(HelmformError, ValueError):
    """Raised when embedded or schema JSON cannot be decoded."""


class InvalidPath(HelmformError, LookupError):
    """Raised when a path step does not match the container it addresses."""

    def __init__(self, message: str, path: tuple = ()):
        super().__init__(message)
        self.path = tuple(path)


class IndexOutOfRange(InvalidPath, IndexError):
    """Raised when an array index is not present in the addressed list."""


class UnsupportedKind(HelmformError, ValueError):
    """Raised for schema fields whose type is outside the supported set."""

    def __init__(self, field_path: str, declared_type: object):
        super().__init__(f"unsupported field type {declared_type!r} at {field_path or '<root>'}")
        self.field_path = field_path
        self.declared_type = declared_type


class MalformedTree(HelmformError, ValueError):
    """Raised when a value tree cannot be expressed as override arguments."""


class SessionBusy(HelmformError, RuntimeError):
    """Raised when an edit session already has an upgrade in flight."""


class HelmCommandError(HelmformError, RuntimeError):
    """Raised when a helm or kubectl invocation fails."""

    def __init__(self, command: list[str], stderr: str, returncode: int | None = None):
        detail = stderr.strip() or f"exit code {returncode}"
        super().__init__(f"{' '.join(command[:3])} failed: {detail}")
        self.command = command
        self.stderr = stderr
        self.returncode = returncode
