"""
jjzettel - A Zettelkasten knowledge base versioned with Jujutsu.
This package stores atomic notes as JSON files, derives backlinks and
tag/substring search from the note corpus, and records a revision in a
Jujutsu (jj) repository for every content change so that each note's
history can be reconstructed on demand.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("jjzettel")
except PackageNotFoundError:
    __version__ = "0.3.0"
