#!/usr/bin/env python3
"""
Universal Alert Monitor - Script Entry Point
============================================

Same as the `alert-monitor` console script, runnable from a checkout.

Usage:
    python scripts/run_monitor.py --once
    python scripts/run_monitor.py --dry-run
    python scripts/run_monitor.py --test-telegram
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from alertmonitor.cli import main


if __name__ == "__main__":
    sys.exit(main())
