"""pomokeep: a restart-proof Pomodoro countdown engine."""

__version__ = "0.1.0"
