"""Queue-driven task runner: poll SQS, run one worker per message."""

__version__ = "0.1.0"
