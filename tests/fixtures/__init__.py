"""
Test fixtures for the event stream client.

Provides reusable stream payloads.
"""

from .streaming_fixtures import StreamingFixtures

__all__ = ["StreamingFixtures"]
