"""Rollcall — event check-in and attendance-integrity engine.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)

Design Decisions:
    - Explicit imports only, no star exports
"""

__version__ = "0.1.0"
