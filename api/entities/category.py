"""
Category persistence (raw SQL).

Categories are referenced by expenses, so they can be renamed but never
deleted through the API.
"""

from __future__ import annotations

import logging
from typing import Any

from core.bus import Message, RequestBus
from crud.contract import EntityHandler, Operation, SearchQuery
from crud.dispatch import FAILURE_CODE

logger = logging.getLogger(__name__)


class CategoryRepository(EntityHandler):
    def initialize(self) -> None:
        self.entity_name = "category"
        self.get_all_query = "SELECT recid, name, description FROM category ORDER BY name"
        self.search_query = "SELECT recid, name, description FROM category WHERE lower(name) LIKE $1"
        self.add_query = "INSERT INTO category (name, description) VALUES ($1, $2) RETURNING recid"
        self.update_query = "UPDATE category SET name = $1, description = $2 WHERE recid = $3"

    def is_method_allowed(self, operation: Operation) -> bool:
        return operation is not Operation.DELETE

    def build_mutation_params(self, record: dict[str, Any], operation: Operation) -> list[Any]:
        name = str(record.get("name") or "").strip()
        if not name:
            raise ValueError("Category name is required.")
        params: list[Any] = [name, record.get("description")]
        if operation is Operation.UPDATE:
            params.append(int(record["recid"]))
        return params

    def build_search_params(self, record: dict[str, Any], query: SearchQuery) -> list[Any]:
        query.append(" ORDER BY name")
        name = str(record.get("name") or "").strip().lower()
        return [f"%{name}%"]

    async def on_transaction_completed(self, operation: Operation) -> None:
        logger.info("category_transaction operation=%s", operation.value, extra={"entity": self.entity_name})

    def register_additional_operations(self, bus: RequestBus) -> None:
        bus.consumer(f"count_{self.entity_name}", self.count)

    async def count(self, message: Message) -> None:
        """
        Reply {"total": n} with the number of categories.
        """
        try:
            async with self.connection() as conn:
                rows = await conn.query("SELECT count(*) AS total FROM category")
        except Exception as exc:
            message.fail(FAILURE_CODE, str(exc) or exc.__class__.__name__)
            return None
        total = int(rows[0]["total"]) if rows else 0
        message.reply({"total": total})
