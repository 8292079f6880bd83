"""
SQLAlchemy declarative base shared by every AgriMarket model.

Lives apart from database.py so models and tests can import it
without creating the production engine.
"""
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass
