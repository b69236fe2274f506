from typing import Awaitable, Callable

import pydantic
from aiohttp import web
from loguru import logger

from clinic.exceptions import ClinicError
from clinic.utils.web import error_response

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def _describe(err: pydantic.ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or 'body'}: {error['msg']}"
        for error in err.errors()
    )


@web.middleware
async def error_middleware(
    request: web.Request,
    handler: Handler,
) -> web.StreamResponse:
    """Render domain and validation errors as ``{"error", "message"}``."""
    try:
        return await handler(request)
    except ClinicError as err:
        if err.status >= 500:
            logger.error(f"{request.method} {request.path}: {err.message}")
        else:
            logger.info(f"{request.method} {request.path}: {err.kind} {err.message}")
        return error_response(err.kind, err.message, err.status)
    except pydantic.ValidationError as err:
        message = _describe(err)
        logger.info(f"{request.method} {request.path}: invalid request {message}")
        return error_response("validation_error", message, 400)
    except web.HTTPException:
        raise
    except Exception:
        logger.exception(f"Unhandled error on {request.method} {request.path}")
        return error_response("internal_error", "Internal server error", 500)
