"""
Request body validation for handlers that must run other checks first.

Routes that rate-limit before validating cannot declare the body as a
FastAPI parameter (it would be validated before the handler runs), so they
call validate_body() at the right point of the pipeline instead.
"""

import json
from typing import TypeVar

from fastapi import Request
from pydantic import BaseModel, ValidationError

from app.core.errors import RequestValidationFailed

SchemaT = TypeVar("SchemaT", bound=BaseModel)


async def validate_body(request: Request, schema: type[SchemaT]) -> SchemaT:
    """
    Parse the JSON request body against a schema.

    Args:
        request: Incoming request
        schema: Pydantic model describing the body

    Returns:
        Validated model instance

    Raises:
        RequestValidationFailed: Body is not JSON or does not match the schema
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise RequestValidationFailed("Request body must be valid JSON", attr="body") from None

    try:
        return schema.model_validate(body)
    except ValidationError as exc:
        raise RequestValidationFailed.from_pydantic(exc) from None
