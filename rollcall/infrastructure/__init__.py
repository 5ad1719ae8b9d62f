"""Infrastructure Layer — database sessions, SQL repositories, system sources, logging.

Invariants:
    - Implements core Protocols; core never imports from here
    - All SQLAlchemy failures leave as DatabaseError or DuplicateAttendanceError

Design Decisions:
    - Error mapping at the repository edge so services see one error contract
"""
