"""chaz - a Matrix chat bot backed by large language models."""

__version__ = "0.1.0"
