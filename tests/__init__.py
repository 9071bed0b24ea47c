"""Tests for the eventstream package."""
