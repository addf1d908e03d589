"""Cron trigger endpoint — lets an external scheduler run the billing pass over HTTP."""

import logging
import secrets

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderops.api.deps import get_db, get_run_context
from orderops.billing.context import RunContext
from orderops.config import settings
from orderops.schemas.cron import RunSummaryResponse
from orderops.services.cron_job import run_cron_job

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/cron", tags=["cron"])


def verify_cron_token(x_cron_token: str = Header(default="")) -> None:
    """Reject requests without the configured shared secret."""
    if not settings.cron_token:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Cron trigger is disabled (CRON_TOKEN not configured)",
        )
    if not secrets.compare_digest(x_cron_token, settings.cron_token):
        logger.warning("Rejected cron trigger with invalid token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron token",
        )


@router.post("/run", response_model=RunSummaryResponse, dependencies=[Depends(verify_cron_token)])
async def run_cron(
    db: AsyncSession = Depends(get_db),
    context: RunContext = Depends(get_run_context),
) -> RunSummaryResponse:
    """Run one reconciliation pass and return its summary."""
    try:
        summary = await run_cron_job(db, context)
    except SQLAlchemyError as e:
        logger.exception("Cron job aborted by a database error")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database unavailable; cron job aborted",
        ) from e
    return RunSummaryResponse(**summary.as_dict())
