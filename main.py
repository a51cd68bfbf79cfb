#!/usr/bin/env python3
"""
DeFi Watchdog: multi-model smart contract security analysis

Main entry point for the CLI interface.
"""

import sys

from watchdog_cli.main import main


if __name__ == '__main__':
    sys.exit(main())
