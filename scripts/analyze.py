#!/usr/bin/env python3
"""Standalone analysis script - analyzes a workspace and exits."""

from codebase_understanding.cli import main

if __name__ == "__main__":
    main()
