"""Daily engagement engine: tasks, cooldowns, check-ins, points and rankings."""

__version__ = "1.0.0"
