"""
Flux Planner - Source Package

Planning and projection engine for a personal-finance dashboard.
Reconciles the actual ledger with declared and derived future
obligations, and produces the monthly figures the dashboard shows.

DESIGN PRINCIPLES:
1. Generated obligations have stable identities
2. A settlement is a real ledger row, never recomputed away
3. Planning code is pure; only the engine touches storage
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Flux Team"
