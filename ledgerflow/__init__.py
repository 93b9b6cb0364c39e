"""
Ledgerflow - Source Package

The streaming core of a personal-finance dashboard: live rolling
aggregates over income/expense records and a merged, incrementally
loadable transaction feed.

DESIGN PRINCIPLES:
1. The external store is the source of truth
2. Derived values are recomputed, never patched
3. Malformed records are tolerated, structural failures are surfaced
4. Every session belongs to exactly one owner
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Ledgerflow Team"
