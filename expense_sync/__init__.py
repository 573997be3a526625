"""
Expense Sync - Source Package

A local-first expense tracker core that keeps an on-device store and a
cloud document store in agreement.

DESIGN PRINCIPLES:
1. Local writes never wait on the network
2. Every change is uploaded eventually, or stays visibly pending
3. Conflicts resolve by last writer (updatedAt) per expense
4. Nothing is hard-deleted; removals travel as tombstones
5. Storage backends are swappable
"""

__version__ = "1.0.0"
__author__ = "Expense Sync Team"
