#!/usr/bin/env python3
"""Thin entry script to trigger the parser CLI."""

import sys

from ozon_card.pipeline import main

if __name__ == "__main__":
    sys.exit(main())
