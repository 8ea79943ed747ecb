import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from cyberguard.shared.db import ConnectionManager, get_db
from cyberguard.shared.utils import get_client_ip, get_user_agent
from .manager import submit_report, submission_self_test, submission_stats
from .models import ClientInfo

logger = logging.getLogger(__name__)

router = APIRouter()


async def read_submission_body(request: Request) -> dict:
    """JSON body when it decodes to an object, form fields otherwise"""
    raw = await request.body()
    if raw:
        try:
            data = json.loads(raw)
        except (ValueError, UnicodeDecodeError):
            data = None
        if isinstance(data, dict):
            return data
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


@router.post("/submit_incident")
async def submit(request: Request, db: ConnectionManager = Depends(get_db)):
    data = await read_submission_body(request)
    client = ClientInfo(ip_address=get_client_ip(request), user_agent=get_user_agent(request))
    return await submit_report(db, data, client)


@router.get("/submit_incident")
async def submission_info(request: Request, db: ConnectionManager = Depends(get_db)):
    if "stats" in request.query_params:
        return await submission_stats(db)
    if "test" in request.query_params:
        return await submission_self_test(db)
    return JSONResponse(status_code=405, content={
        "success": False,
        "message": "Method not allowed",
        "error_code": "METHOD_NOT_ALLOWED",
        "allowed_methods": ["POST"],
        "current_method": request.method,
    })
