# routers — HTTP surface; every handler answers with the same envelope
from typing import Any


def envelope(data: Any = None, message: str = "OK") -> dict:
    return {"success": True, "message": message, "data": data}
