"""Database models."""
from .resource import Resource
from .log import Log

__all__ = ["Resource", "Log"]
