"""
Expense persistence (raw SQL).
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from crud.contract import EntityHandler, Operation, SearchQuery

_COLUMNS = "recid, amount, description, category_id"


def _amount(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


class ExpenseRepository(EntityHandler):
    def initialize(self) -> None:
        self.entity_name = "expense"
        self.get_all_query = f"SELECT {_COLUMNS} FROM expense ORDER BY recid"
        self.search_query = f"SELECT {_COLUMNS} FROM expense WHERE true"
        self.add_query = (
            "INSERT INTO expense (amount, description, category_id) "
            "VALUES ($1, $2, $3) RETURNING recid"
        )
        self.update_query = (
            "UPDATE expense SET amount = $1, description = $2, category_id = $3 "
            "WHERE recid = $4"
        )
        self.delete_query = "DELETE FROM expense WHERE recid = $1"

    def build_mutation_params(self, record: dict[str, Any], operation: Operation) -> list[Any]:
        if operation is Operation.DELETE:
            return [int(record["recid"])]

        params = [
            _amount(record.get("amount")),
            record.get("description"),
            _optional_int(record.get("category_id")),
        ]
        if operation is Operation.UPDATE:
            params.append(int(record["recid"]))
        return params

    def build_search_params(self, record: dict[str, Any], query: SearchQuery) -> list[Any]:
        """
        Optional criteria: description (substring, case-insensitive),
        min_amount, max_amount, category_id.
        """
        params: list[Any] = []

        description = str(record.get("description") or "").strip()
        if description:
            params.append(f"%{description}%")
            query.append(f" AND description ILIKE ${len(params)}")

        min_amount = _amount(record.get("min_amount"))
        if min_amount is not None:
            params.append(min_amount)
            query.append(f" AND amount >= ${len(params)}")

        max_amount = _amount(record.get("max_amount"))
        if max_amount is not None:
            params.append(max_amount)
            query.append(f" AND amount <= ${len(params)}")

        category_id = _optional_int(record.get("category_id"))
        if category_id is not None:
            params.append(category_id)
            query.append(f" AND category_id = ${len(params)}")

        query.append(" ORDER BY recid")
        return params
