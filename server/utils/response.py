# Response envelopes shared by every endpoint

from datetime import datetime, timezone
from typing import Any, Dict


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def create_success_response(
    data: Any = None,
    message: str = "OK"
) -> Dict[str, Any]:
    """
    Build a success envelope

    Args:
        data: response payload
        message: human readable message
    """
    return {
        "success": True,
        "data": data,
        "message": message,
        "timestamp": _timestamp()
    }


def create_error_response(
    error: str,
    data: Any = None
) -> Dict[str, Any]:
    """
    Build an error envelope

    Args:
        error: message shown to the caller
        data: optional error payload
    """
    return {
        "success": False,
        "error": error,
        "data": data,
        "timestamp": _timestamp()
    }


def create_pagination_response(
    items: list,
    total_count: int,
    current_page: int,
    per_page: int,
    message: str = "OK"
) -> Dict[str, Any]:
    total_pages = (total_count + per_page - 1) // per_page

    return create_success_response(
        data={
            "items": items,
            "pagination": {
                "total_count": total_count,
                "current_page": current_page,
                "per_page": per_page,
                "total_pages": total_pages,
                "has_next": current_page < total_pages,
                "has_prev": current_page > 1
            }
        },
        message=message
    )
