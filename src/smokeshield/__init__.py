"""SmokeShield — encrypted multi-agency smoke readings, disclosed only as alert levels."""

__version__ = "0.1.0"
