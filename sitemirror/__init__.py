"""
Site Mirror

Breadth-first website mirroring with a headless browser.
"""

__version__ = "1.0.0"
__description__ = "Bounded, observable website mirroring crawler"
