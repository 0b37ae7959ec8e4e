"""botvinnik - a command bot for Matrix rooms."""

__version__ = "0.9.3"
