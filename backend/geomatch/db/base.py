"""
Declarative base shared by all ORM models and Alembic autogenerate.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass
