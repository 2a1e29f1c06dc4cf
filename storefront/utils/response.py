from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder


def success(
    data: Optional[Any] = None,
    message: str = "Success",
    meta: Optional[Dict] = None,
):
    body = {
        "success": True,
        "message": message,
        "data": data,
        "errors": None,
    }
    if meta is not None:
        body["meta"] = meta

    # ORM-derived pydantic models and datetimes go through the same encoder
    return jsonable_encoder(body)

