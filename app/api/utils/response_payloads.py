from typing import Any, Dict, List, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def success_response(
    status_code: int,
    message: str,
    data: Optional[dict] = None,
    **fields: Any,
) -> JSONResponse:
    """
    Create a standardized JSON response for successful requests.

    Args:
        status_code (int): HTTP status code to return (e.g. 200, 201).
        message (str): Human-readable description of the result.
        data (Optional[dict]): Optional payload data. Defaults to an empty dict.
        **fields: Top-level fields merged into the body next to ``message``
            (e.g. ``position``, ``referralCode``, ``alreadyExists``).

    Returns:
        JSONResponse: Contains:
            - success: true
            - status_code: same as HTTP status code
            - message: same message passed
            - any extra top-level fields
            - data: payload object (never null)
    """

    response_data = {
        "success": True,
        "status_code": status_code,
        "message": message,
        **fields,
        "data": data or {},
    }

    return JSONResponse(status_code=status_code, content=jsonable_encoder(response_data))


def error_response(
    *,
    status_code: int,
    message: str,
    error: str = "ERROR",
    errors: Optional[Dict[str, List[str]]] = None,
    **extra: Any,
) -> JSONResponse:
    """
    Create a standardized JSON response for failed requests.

    Args:
        status_code (int): HTTP status code representing the error (e.g. 400, 404, 429).
        message (str): User-facing, non-technical error description.
        error (str): Machine-readable error code (e.g. "VALIDATION_ERROR",
            "TOKEN_VALIDATION_ERROR"). Defaults to "ERROR".
        errors (Optional[Dict[str, List[str]]]): Optional field-level validation errors
            in the form:
                {
                    "field_name": ["error message 1", "error message 2"],
                    ...
                }
        **extra: Additional top-level fields (``retryAfterSeconds``, ``details``,
            ``exists``). ``None`` values are dropped.

    Returns:
        JSONResponse: Standard error structure:
            {
                "success": false,
                "status_code": <status_code>,
                "message": "<message>",
                "errorType": "<ERROR_CODE>",
                "errors": {...},
                ...extra
            }
    """

    response_data = {
        "success": False,
        "status_code": status_code,
        "message": message,
        "errorType": error,
        "errors": errors or {},
        **{key: value for key, value in extra.items() if value is not None},
    }

    return JSONResponse(status_code=status_code, content=jsonable_encoder(response_data))
