"""Database Metadata — SQLAlchemy declarative Base.

Invariants:
    - Single metadata shared by ORM models, alembic and test fixtures

Design Decisions:
    - asyncpg driver for PostgreSQL, aiosqlite for tests
"""
