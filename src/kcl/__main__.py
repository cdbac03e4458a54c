#!/usr/bin/env python3
"""
kcl - Main entry point for python -m kcl
"""

from kcl.cli import main

if __name__ == "__main__":
    main()
