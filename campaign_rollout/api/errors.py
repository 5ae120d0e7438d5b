# campaign_rollout/api/errors.py
"""Maps engine exceptions to HTTP responses."""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from campaign_rollout.core.exceptions import (
    CampaignEngineError,
    CampaignValidationError,
    InvalidTransitionError,
    NotFoundError,
    TransientExecutionError,
)

logger = logging.getLogger(__name__)

# Most specific first
STATUS_CODES = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (CampaignValidationError, status.HTTP_400_BAD_REQUEST),
    (TransientExecutionError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_code_for(error: CampaignEngineError) -> int:
    for error_type, code in STATUS_CODES:
        if isinstance(error, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def campaign_engine_error_handler(request: Request, exc: CampaignEngineError) -> JSONResponse:
    code = status_code_for(exc)
    log = logger.error if code >= 500 else logger.info
    log(
        f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}",
        extra={"details": exc.details},
    )
    return JSONResponse(
        status_code=code,
        content={
            "detail": exc.message,
            "error_code": exc.error_code,
            "details": exc.details,
        },
    )
