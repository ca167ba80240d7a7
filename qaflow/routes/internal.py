from __future__ import annotations

import logging

from fastapi import APIRouter, Header, Request

from qaflow.engine import engine
from qaflow.routes._deps import respond
from qaflow.security import require_cron_key

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/internal", tags=["internal"])


@router.post("/cron/check-deadlines")
def check_deadlines(request: Request, x_api_key: str | None = Header(default=None, alias="x-api-key")):
    require_cron_key(provided=x_api_key, cfg=request.app.state.security_cfg)
    outcome = engine.deadline_sweep.run()
    if outcome.ok:
        logger.info("cron_check_deadlines processed=%s", outcome.value["processed"])
    return respond(request, outcome)
