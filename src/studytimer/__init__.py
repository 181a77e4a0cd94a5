"""studytimer: session timer engine for study-session coordination."""

__version__ = "0.1.0"
