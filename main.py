#!/usr/bin/env python3
"""
Main entry point for the site mirror crawler.
"""

import sys

from sitemirror.app import main


if __name__ == '__main__':
    sys.exit(main())
