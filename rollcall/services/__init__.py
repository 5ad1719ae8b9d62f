"""Services Layer — async orchestration of the check-in pipeline and queries.

Invariants:
    - Services read through core Protocols, call pure core checks, and perform
      the single durable write
    - Services return tagged dicts; only DatabaseError is caught and mapped here

Design Decisions:
    - Imperative shell around the functional core (core/ holds every rule)
"""
