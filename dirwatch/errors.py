"""Fatal startup errors. Anything raised from here ends the process."""


class DirwatchError(Exception):
    """Base class for errors that stop dirwatch from starting."""


class WatchError(DirwatchError):
    """The watch root is missing, not a directory, or cannot be watched."""


class ServeError(DirwatchError):
    """The serve directory is missing or not a directory."""


class BindError(DirwatchError):
    """The HTTP server could not bind its listen address."""
