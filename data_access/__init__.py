# data_access/__init__.py
"""Persistence interfaces and the in-memory story repository."""

from .protocols import CorpusReader, MutationSink
from .repository import InMemoryStoryRepository, StoryCorpus, load_story_corpus

__all__ = [
    "CorpusReader",
    "MutationSink",
    "InMemoryStoryRepository",
    "StoryCorpus",
    "load_story_corpus",
]
