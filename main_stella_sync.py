#!/usr/bin/env python3
"""
Stella Sync Runner

Usage:
    python main_stella_sync.py --dir ~/astronomy/sharpcap
    python main_stella_sync.py --img frame.fit --debug
"""

import sys

from stella_sync.cli import main

if __name__ == "__main__":
    sys.exit(main())
