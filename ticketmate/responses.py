from typing import Any, Optional

from flask import jsonify


def success(data: Any = None, message: Optional[str] = None, status: int = 200, **extra):
    body = {"success": True}
    if message:
        body["message"] = message
    body.update(extra)
    if data is not None:
        body["data"] = data
    return jsonify(body), status
