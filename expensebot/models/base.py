"""
SQLAlchemy Base for expensebot.

Usage:
    from expensebot.models.base import Base

    class MyModel(Base):
        __tablename__ = "my_table"
        ...
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base shared by every expensebot table."""


__all__ = ["Base"]
