"""Core Layer — pure check-in domain logic, no IO, no async, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - All functions are pure and deterministic (clock, randomness and lookups passed in)

Design Decisions:
    - Functional core separated from imperative shell (services/ does the IO)
"""
