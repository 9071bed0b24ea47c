"""Incremental decoding of event stream bodies."""

from .parser import EventStreamParser

__all__ = ["EventStreamParser"]
