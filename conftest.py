"""
Pytest configuration for the unit tests.

The modules under src/ are imported as top-level modules (``import upgrader``),
so src/ is put on sys.path when running from a source checkout.
"""

import os
import sys

SRC_DIR = os.path.join(os.path.dirname(__file__), "src")

if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)
