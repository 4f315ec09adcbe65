"""
Generic CRUD dispatch over the request bus.

Each deployed entity gets five bus addresses (`get_<entity>`,
`search_<entity>`, `add_<entity>`, `edit_<entity>`, `delete_<entity>`).
Every request runs the same protocol:

    gate -> parse record -> (recid check) -> acquire connection
         -> build SQL + params -> execute -> release -> hook -> reply

Any failure is terminal for the request and answered with code 0. A borrowed
connection is released on every path before the reply goes out.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence

from core.bus import Message, RequestBus
from core.db import Connection

from .contract import EntityHandler, Operation, SearchQuery

logger = logging.getLogger(__name__)

FAILURE_CODE = 0

# Marks a request that was already answered with a failure.
_FAILED = object()

Build = Callable[[], tuple[str, Optional[Sequence[Any]]]]
Run = Callable[[Connection, str, Optional[Sequence[Any]]], Awaitable[Any]]


class EntityRegistrationError(RuntimeError):
    pass


def compact_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def _error_text(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class EntityDispatcher:
    def __init__(self, handler: EntityHandler, bus: RequestBus) -> None:
        self.handler = handler
        self.bus = bus
        self._routes = {
            Operation.GET_ALL: self.get_all,
            Operation.SEARCH: self.search,
            Operation.ADD: self.add,
            Operation.UPDATE: self.update,
            Operation.DELETE: self.delete,
        }

    @property
    def entity_name(self) -> str:
        return str(self.handler.entity_name)

    def addresses(self) -> list[str]:
        return [operation.address(self.entity_name) for operation in self._routes]

    def register_standard_operations(self) -> None:
        for operation, route in self._routes.items():
            self.bus.consumer(operation.address(self.entity_name), route)

    def unregister_standard_operations(self) -> None:
        for operation, route in self._routes.items():
            self.bus.unregister(operation.address(self.entity_name), route)

    # -- protocol steps -------------------------------------------------

    def _fail(self, message: Message, operation: Operation, text: str) -> None:
        logger.warning(
            "dispatch_failed address=%s reason=%s",
            message.address,
            text,
            extra={"address": message.address, "entity": self.entity_name, "operation": operation.value},
        )
        message.fail(FAILURE_CODE, text)

    def _gate(self, message: Message, operation: Operation) -> bool:
        # An unset template means the entity does not support the operation.
        if self.handler.is_method_allowed(operation) and self.handler.template_for(operation):
            return True
        self._fail(message, operation, f"{operation.label} not implemented for {self.entity_name}")
        return False

    def _parse_record(self, message: Message, operation: Operation) -> dict[str, Any] | None:
        if not isinstance(message.body, Mapping):
            self._fail(
                message,
                operation,
                f"Error {operation.gerund} {self.entity_name}. Reason: Malformed record",
            )
            return None
        return dict(message.body)

    def _require_id(self, message: Message, operation: Operation, record: dict[str, Any]) -> bool:
        if record.get("recid") is not None:
            return True
        self._fail(message, operation, f"Error {operation.gerund} {compact_json(record)}. Reason: Missing id")
        return False

    async def _release(self, connection: Connection) -> None:
        try:
            await connection.release()
        except Exception:
            logger.exception("connection_release_failed entity=%s", self.entity_name)

    async def _execute(self, message: Message, operation: Operation, build: Build, run: Run) -> Any:
        """
        Borrow one connection, build the statement, run it, give the
        connection back. Returns the statement result or `_FAILED`.
        """
        try:
            connection = await self.handler.provider.acquire_connection()
        except Exception as exc:
            self._fail(message, operation, _error_text(exc))
            return _FAILED

        failure: str | None = None
        result: Any = None
        try:
            try:
                sql, params = build()
            except Exception as exc:
                failure = f"Error {operation.gerund} {self.entity_name}. Reason: {_error_text(exc)}"
            else:
                try:
                    result = await run(connection, sql, params)
                except Exception as exc:
                    failure = _error_text(exc)
        finally:
            await self._release(connection)

        if failure is not None:
            self._fail(message, operation, failure)
            return _FAILED
        return result

    async def _completed(self, operation: Operation) -> None:
        try:
            await self.handler.on_transaction_completed(operation)
        except Exception:
            logger.exception(
                "transaction_hook_failed entity=%s operation=%s",
                self.entity_name,
                operation.value,
            )

    def _mutation_params(self, record: dict[str, Any], operation: Operation) -> list[Any]:
        return list(self.handler.build_mutation_params(record, operation))

    # -- operations -----------------------------------------------------

    async def get_all(self, message: Message) -> None:
        operation = Operation.GET_ALL
        if not self._gate(message, operation):
            return None

        rows = await self._execute(
            message,
            operation,
            build=lambda: (str(self.handler.get_all_query), None),
            run=lambda conn, sql, _params: conn.query(sql),
        )
        if rows is _FAILED:
            return None

        await self._completed(operation)
        message.reply(list(rows))

    async def search(self, message: Message) -> None:
        operation = Operation.SEARCH
        if not self._gate(message, operation):
            return None
        record = self._parse_record(message, operation)
        if record is None:
            return None

        def build() -> tuple[str, list[Any]]:
            # Rewrites apply to this request only; the stored template stays put.
            query = SearchQuery(str(self.handler.search_query))
            params = self.handler.build_search_params(record, query)
            return query.text, list(params or [])

        rows = await self._execute(
            message,
            operation,
            build=build,
            run=lambda conn, sql, params: conn.query_with_params(sql, params or []),
        )
        if rows is _FAILED:
            return None

        await self._completed(operation)
        message.reply(list(rows))

    async def add(self, message: Message) -> None:
        operation = Operation.ADD
        if not self._gate(message, operation):
            return None
        record = self._parse_record(message, operation)
        if record is None:
            return None

        result = await self._execute(
            message,
            operation,
            build=lambda: (str(self.handler.add_query), self._mutation_params(record, operation)),
            run=lambda conn, sql, params: conn.update_with_params(sql, params or []),
        )
        if result is _FAILED:
            return None
        if not result.keys:
            self._fail(
                message,
                operation,
                f"Error {operation.gerund} {self.entity_name}. Reason: No generated key returned",
            )
            return None

        added = dict(record)
        added["recid"] = result.keys[0]
        added["added"] = True
        await self._completed(operation)
        message.reply(added)

    async def update(self, message: Message) -> None:
        operation = Operation.UPDATE
        if not self._gate(message, operation):
            return None
        record = self._parse_record(message, operation)
        if record is None or not self._require_id(message, operation, record):
            return None

        result = await self._execute(
            message,
            operation,
            build=lambda: (str(self.handler.update_query), self._mutation_params(record, operation)),
            run=lambda conn, sql, params: conn.update_with_params(sql, params or []),
        )
        if result is _FAILED:
            return None

        # Zero affected rows is still a successful update.
        updated = dict(record)
        updated["updated"] = True
        await self._completed(operation)
        message.reply(updated)

    async def delete(self, message: Message) -> None:
        operation = Operation.DELETE
        if not self._gate(message, operation):
            return None
        record = self._parse_record(message, operation)
        if record is None or not self._require_id(message, operation, record):
            return None

        result = await self._execute(
            message,
            operation,
            build=lambda: (str(self.handler.delete_query), self._mutation_params(record, operation)),
            run=lambda conn, sql, params: conn.update_with_params(sql, params or []),
        )
        if result is _FAILED:
            return None

        deleted = dict(record)
        deleted["deleted"] = True
        await self._completed(operation)
        message.reply(deleted)


class EntityRegistry:
    """
    Entity name -> dispatcher for everything deployed on one bus.
    """

    def __init__(self, bus: RequestBus) -> None:
        self.bus = bus
        self._dispatchers: dict[str, EntityDispatcher] = {}

    def deploy(self, handler: EntityHandler) -> EntityDispatcher:
        handler.initialize()
        name = (handler.entity_name or "").strip()
        if not name:
            raise EntityRegistrationError(f"{type(handler).__name__} did not set entity_name.")
        if name in self._dispatchers:
            raise EntityRegistrationError(f"Entity {name} is already deployed.")
        handler.entity_name = name

        dispatcher = EntityDispatcher(handler, self.bus)
        dispatcher.register_standard_operations()
        try:
            handler.register_additional_operations(self.bus)
        except Exception:
            dispatcher.unregister_standard_operations()
            raise

        self._dispatchers[name] = dispatcher
        logger.info("entity_deployed entity=%s", name, extra={"entity": name})
        return dispatcher

    def deploy_all(self, handlers: Iterable[EntityHandler]) -> list[str]:
        """
        Deploy every handler; one broken entity does not take down the rest.
        """
        for handler in handlers:
            try:
                self.deploy(handler)
            except Exception:
                logger.exception("entity_deploy_failed handler=%s", type(handler).__name__)
        return self.entity_names()

    def get(self, entity_name: str) -> EntityDispatcher | None:
        return self._dispatchers.get(entity_name)

    def entity_names(self) -> list[str]:
        return sorted(self._dispatchers)

    def __contains__(self, entity_name: object) -> bool:
        return entity_name in self._dispatchers
