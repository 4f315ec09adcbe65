"""
Concrete entity handlers deployed at startup.
"""

from __future__ import annotations

from core.db import ConnectionProvider
from crud.contract import EntityHandler

from .category import CategoryRepository
from .expense import ExpenseRepository


def default_handlers(provider: ConnectionProvider) -> list[EntityHandler]:
    return [
        ExpenseRepository(provider),
        CategoryRepository(provider),
    ]
