"""Client library for Elite CS series robot controllers: dashboard, primary port and script serving."""

__version__ = "1.2.0"

__all__ = [
    "dashboard",
    "exceptions",
    "log",
    "primary_package",
    "primary_port",
    "script_sender",
    "version",
]