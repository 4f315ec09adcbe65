"""
Response envelopes shared by the CRUD routes and error handlers.
"""

from __future__ import annotations

import json
from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


class PrettyJSONResponse(JSONResponse):
    media_type = "application/json; charset=utf-8"

    def render(self, content: Any) -> bytes:
        return json.dumps(jsonable_encoder(content), ensure_ascii=False, indent=2).encode("utf-8")


def error_response(message: str) -> PrettyJSONResponse:
    # Every failure is a 500; callers get no client/server distinction.
    return PrettyJSONResponse({"error": message}, status_code=500)
