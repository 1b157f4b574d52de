# orderhub/api/problem.py
"""
Error body shared by every non-2xx response:

    {"error_code": ..., "message": ..., "http_status": ..., "context"?: {...}, "details"?: [...]}

details items are {"type", "path", "reason"} (request validation) or
{"order_id", "reason", "retryable"} (per-order problems).
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, NoReturn, Optional, Sequence

from fastapi import HTTPException


def make_problem(
    *,
    status_code: int,
    error_code: str,
    message: str,
    context: Optional[Mapping[str, Any]] = None,
    details: Optional[Sequence[Mapping[str, Any]]] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "error_code": str(error_code),
        "message": str(message),
        "http_status": int(status_code),
    }
    if context:
        body["context"] = dict(context)
    if details:
        items: List[Dict[str, Any]] = [dict(d) for d in details]
        body["details"] = items
    return body


def _raise(status_code: int, error_code: str, message: str, context: Optional[Mapping[str, Any]] = None) -> NoReturn:
    # main.py's HTTPException handler passes a problem dict through unchanged
    raise HTTPException(
        status_code=status_code,
        detail=make_problem(status_code=status_code, error_code=error_code, message=message, context=context),
    )


def raise_404(error_code: str, message: str, *, context: Optional[Mapping[str, Any]] = None) -> NoReturn:
    _raise(404, error_code, message, context)


def raise_409(error_code: str, message: str, *, context: Optional[Mapping[str, Any]] = None) -> NoReturn:
    _raise(409, error_code, message, context)
