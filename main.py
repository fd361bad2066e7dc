#!/usr/bin/env python3
"""
ata2 - Ask the Terminal Anything², streaming chat in your terminal.

Runs the CLI from a source checkout without installing the package.
"""

import sys
from pathlib import Path

# Add the current directory to Python path to ensure imports work
sys.path.insert(0, str(Path(__file__).parent))


def main():
    try:
        from ata2.main import cli
    except ImportError as e:
        print(f"Error: Failed to import required modules: {e}")
        print("Please make sure you have installed the package with:")
        print("  pip install -e .")
        sys.exit(1)
    cli()


if __name__ == "__main__":
    main()
