"""
REST surface for the generic CRUD dispatch.

Each endpoint turns one HTTP request into exactly one bus request:

    GET    /api/{entity}   -> get_<entity>
    POST   /api/search     -> search_<type>
    POST   /api/           -> add_<type>
    PUT    /api/           -> edit_<type>
    DELETE /api/           -> delete_<type>

A reply becomes 200 with the body as pretty JSON; a failure becomes 500
`{"error": "<message>"}`.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from core.bus import ReplyFailure, RequestBus

from . import schemas
from .contract import Operation
from .responses import PrettyJSONResponse, error_response

router = APIRouter(prefix="/api", default_response_class=PrettyJSONResponse)


def get_bus(request: Request) -> RequestBus:
    bus = getattr(request.app.state, "bus", None)
    if bus is None:
        raise RuntimeError("Request bus is not initialized.")
    return bus


async def _record(request: Request) -> dict[str, Any]:
    # The validated model reorders keys; forward the body as the client sent it.
    return await request.json()


async def _forward(bus: RequestBus, address: str, body: Any) -> PrettyJSONResponse:
    try:
        reply = await bus.request(address, body)
    except ReplyFailure as exc:
        return error_response(exc.message)
    return PrettyJSONResponse(reply)


@router.get("/{entity_name}")
async def get_all(entity_name: str, bus: RequestBus = Depends(get_bus)) -> PrettyJSONResponse:
    return await _forward(bus, Operation.GET_ALL.address(entity_name), None)


@router.post("/search")
async def search(
    payload: schemas.EntityRequest,
    request: Request,
    bus: RequestBus = Depends(get_bus),
) -> PrettyJSONResponse:
    return await _forward(bus, Operation.SEARCH.address(payload.type), await _record(request))


@router.post("/")
async def add(
    payload: schemas.EntityRequest,
    request: Request,
    bus: RequestBus = Depends(get_bus),
) -> PrettyJSONResponse:
    return await _forward(bus, Operation.ADD.address(payload.type), await _record(request))


@router.put("/")
async def update(
    payload: schemas.EntityRequest,
    request: Request,
    bus: RequestBus = Depends(get_bus),
) -> PrettyJSONResponse:
    return await _forward(bus, Operation.UPDATE.address(payload.type), await _record(request))


@router.delete("/")
async def delete(
    payload: schemas.EntityRequest,
    request: Request,
    bus: RequestBus = Depends(get_bus),
) -> PrettyJSONResponse:
    return await _forward(bus, Operation.DELETE.address(payload.type), await _record(request))
