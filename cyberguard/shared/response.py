from fastapi.responses import JSONResponse

import uuid
import decimal
from datetime import date, datetime, timezone

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def serialize_data(obj):
    if isinstance(obj, dict):
        return {k: serialize_data(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [serialize_data(item) for item in obj]
    elif isinstance(obj, uuid.UUID):
        return str(obj)
    elif isinstance(obj, decimal.Decimal):
        return float(obj)
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    else:
        return obj


def timestamp_now() -> str:
    return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)


def success_response(data=None, message="Success"):
    """Return standardized success response; `data` keys sit beside `success` and `message`"""
    content = {"success": True, "message": message}
    content.update(serialize_data(data or {}))
    return JSONResponse(status_code=200, content=content)


def error_response(message, status_code=400, error_code=None, timestamp=True, **extra):
    """Return standardized error response"""
    content = {
        "success": False,
        "message": message,
        "error_code": error_code,
    }
    if timestamp:
        content["timestamp"] = timestamp_now()
    content.update(serialize_data(extra))
    return JSONResponse(status_code=status_code, content=content)


def json_response(data, status_code=200):
    """Plain JSON payload, used by the dashboard API"""
    return JSONResponse(status_code=status_code, content=serialize_data(data))
