#!/usr/bin/env python3
"""
Convenience wrapper to run the Tether chat client.

Usage: python3 run.py listen
       python3 run.py connect <host[:port]>

Or use the module directly:
    python3 -m tether listen
"""

import sys

from tether.__main__ import main

if __name__ == "__main__":
    sys.exit(main())
