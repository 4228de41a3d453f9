"""Error types raised while reading BookOfQuests stop dumps."""


class BOQError(Exception):
    """Base class for all BOQ pipeline errors."""


class ConfigError(BOQError):
    """The list of input files is unusable (empty, missing path, not a regular file)."""


class ParseError(BOQError):
    """Malformed JSON or a token sequence that does not match the expected document shape."""

    def __init__(self, message, path=None):
        self.path = path
        if path is not None:
            message = f"{path}: {message}"
        super().__init__(message)


class SourceIOError(BOQError):
    """Opening or reading a source file failed."""

    def __init__(self, message, path=None):
        self.path = path
        if path is not None:
            message = f"{path}: {message}"
        super().__init__(message)


class DataIntegrityError(BOQError):
    """A single record is structurally valid JSON but its content is unusable."""
