"""Helpers shared by the HTTP handlers."""

import datetime as dt
from typing import Any, Sequence, Type, TypeVar

import orjson
from aiohttp import web
from pydantic import BaseModel

from clinic.api.models import ErrorResponse
from clinic.exceptions import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


def _dumps(data: Any) -> str:
    return orjson.dumps(data).decode()


def json_response(
    data: BaseModel | Sequence[BaseModel],
    status: int = 200,
) -> web.Response:
    """Serialize one model or a list of models."""
    if isinstance(data, BaseModel):
        payload: Any = data.model_dump(mode="json")
    else:
        payload = [item.model_dump(mode="json") for item in data]
    return web.json_response(payload, status=status, dumps=_dumps)


def error_response(kind: str, message: str, status: int) -> web.Response:
    return json_response(ErrorResponse(error=kind, message=message), status=status)


async def read_model(request: web.Request, model: Type[ModelT]) -> ModelT:
    """
    Parse the JSON body into a model.

    Raises:
        ValidationError: If the body is not JSON.
        pydantic.ValidationError: If the body does not fit the model.
    """
    body = await request.read()
    try:
        data = orjson.loads(body) if body else {}
    except orjson.JSONDecodeError as err:
        raise ValidationError(f"Malformed JSON body: {err}") from err
    return model.model_validate(data)


def match_int(request: web.Request, name: str) -> int:
    """Read an integer path parameter; routes constrain it to digits."""
    return int(request.match_info[name])


def parse_date(value: str) -> dt.date:
    """Parse an ISO date, e.g. ``2030-05-15``."""
    try:
        return dt.date.fromisoformat(value)
    except ValueError as err:
        raise ValidationError(f"Invalid date: {value!r}") from err
