"""Content and summarization collaborators."""

from signal_engine.sources.base import ContentSource, Summarizer, Summary
from signal_engine.sources.memory import InMemoryContentSource

__all__ = [
    "ContentSource",
    "InMemoryContentSource",
    "Summarizer",
    "Summary",
]
