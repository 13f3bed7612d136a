"""taskcli - goal-driven task executor with adaptive command recovery."""

__version__ = "0.3.0"
