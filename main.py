#!/usr/bin/env python3
"""
Main entry point for the hedge trimmer.

Usage:
    python main.py --config config/config.yaml
    python main.py --config config/config.yaml --symbol EURUSD --once
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / 'src'))

from hedge_trimmer.main import main


if __name__ == '__main__':
    sys.exit(main())
