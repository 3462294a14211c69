"""Watch a directory, run a command on change and live-reload served pages."""

__version__ = "0.1.0"
