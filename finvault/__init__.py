"""
FinVault - Source Package

A single-owner personal finance vault: assets, liabilities, expenses,
goals and an emergency legacy protocol, persisted to one of three
interchangeable storage backends.

DESIGN PRINCIPLES:
1. The in-memory snapshot is the source of truth for the UI
2. Persistence is best-effort and never blocks a mutation
3. Derived numbers are recomputed, never stored
4. AI services are advisors, their output is validated before use
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "FinVault Team"
