"""
Uniform JSON envelope for every API response.

Success: ``{"success": true, "message": ..., "data": ...}``.
Failure: ``{"success": false, "message": ..., ["errors"], ["stack"]}``.
"""
import traceback
from typing import Any, Dict, List, Optional

from fastapi.responses import JSONResponse

from planner_auth.config import settings


# PUBLIC_INTERFACE
def success(data: Any = None, message: str = "Operation successful") -> Dict[str, Any]:
    """Format a successful response body."""
    return {"success": True, "message": message, "data": data if data is not None else {}}


# PUBLIC_INTERFACE
def error_response(
    status_code: int,
    message: str,
    errors: Optional[List[Any]] = None,
    exc: Optional[BaseException] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """
    Build a failure response.

    Outside production the traceback of ``exc`` is included as ``stack``.
    """
    content: Dict[str, Any] = {"success": False, "message": message}
    if errors:
        content["errors"] = errors
    if exc is not None and not settings.is_production:
        content["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=status_code, content=content, headers=headers)
