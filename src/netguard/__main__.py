#!/usr/bin/env python3
"""
Allows running the package as a module: python -m netguard
"""

import sys

from netguard.cli import main

if __name__ == "__main__":
    sys.exit(main())
