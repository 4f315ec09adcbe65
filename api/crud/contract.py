"""
Entity handler contract.

One `EntityHandler` subclass per table. `initialize()` sets the entity name
and the SQL templates; the hooks below let an entity shape parameters, deny
operations and react to completed transactions. The generic request
processing lives in `crud.dispatch`.
"""

from __future__ import annotations

import abc
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator

from core.bus import RequestBus
from core.db import Connection, ConnectionProvider


class Operation(str, Enum):
    GET_ALL = "get_all"
    SEARCH = "search"
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def address_prefix(self) -> str:
        return _ADDRESS_PREFIXES[self]

    @property
    def label(self) -> str:
        return _LABELS[self]

    @property
    def gerund(self) -> str:
        return _GERUNDS[self]

    def address(self, entity_name: str) -> str:
        return self.address_prefix + entity_name


_ADDRESS_PREFIXES = {
    Operation.GET_ALL: "get_",
    Operation.SEARCH: "search_",
    Operation.ADD: "add_",
    Operation.UPDATE: "edit_",
    Operation.DELETE: "delete_",
}

_LABELS = {
    Operation.GET_ALL: "Get all",
    Operation.SEARCH: "Search",
    Operation.ADD: "Add",
    Operation.UPDATE: "Edit",
    Operation.DELETE: "Delete",
}

_GERUNDS = {
    Operation.GET_ALL: "getting",
    Operation.SEARCH: "searching",
    Operation.ADD: "adding",
    Operation.UPDATE: "updating",
    Operation.DELETE: "deleting",
}

MUTATIONS = (Operation.ADD, Operation.UPDATE, Operation.DELETE)


class SearchQuery:
    """
    Mutable copy of the search template for a single request.
    """

    def __init__(self, text: str) -> None:
        self._parts = [text]

    def append(self, fragment: str) -> "SearchQuery":
        self._parts.append(fragment)
        return self

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def __str__(self) -> str:
        return self.text


class EntityHandler(abc.ABC):
    entity_name: str | None = None

    get_all_query: str | None = None
    search_query: str | None = None
    add_query: str | None = None
    update_query: str | None = None
    delete_query: str | None = None

    def __init__(self, provider: ConnectionProvider) -> None:
        self.provider = provider

    @abc.abstractmethod
    def initialize(self) -> None:
        """
        Set `entity_name` and every template this entity supports.
        Templates left as None make the matching operation unsupported.
        """

    def is_method_allowed(self, operation: Operation) -> bool:
        return True

    @abc.abstractmethod
    def build_mutation_params(self, record: dict[str, Any], operation: Operation) -> list[Any]:
        """
        Positional parameters for the add/update/delete template of `operation`.
        """

    def build_search_params(self, record: dict[str, Any], query: SearchQuery) -> list[Any]:
        """
        May append to `query` (e.g. WHERE clauses); returns the parameters
        aligned with the final text.
        """
        return []

    async def on_transaction_completed(self, operation: Operation) -> None:
        return None

    def register_additional_operations(self, bus: RequestBus) -> None:
        return None

    def template_for(self, operation: Operation) -> str | None:
        return {
            Operation.GET_ALL: self.get_all_query,
            Operation.SEARCH: self.search_query,
            Operation.ADD: self.add_query,
            Operation.UPDATE: self.update_query,
            Operation.DELETE: self.delete_query,
        }[operation]

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[Connection]:
        """
        Borrow a connection for an entity-specific operation; always released.
        """
        conn = await self.provider.acquire_connection()
        try:
            yield conn
        finally:
            await conn.release()
