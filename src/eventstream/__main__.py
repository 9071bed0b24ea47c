#!/usr/bin/env python3
"""
eventstream - Main entry point for python -m eventstream
"""

from .cli import main

if __name__ == "__main__":
    main()
