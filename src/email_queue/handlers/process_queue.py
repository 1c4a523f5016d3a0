"""
Module: process_queue.py
Description: HTTP trigger for the email queue processor.

Implements the on-demand endpoints:
- POST /process-queue: run one claim -> dispatch -> summarize pass
- POST /reconcile: recover items stuck in processing

Partial failures (individual items failing) still return 200 with the
summary; 503 is reserved for a store that cannot be reached at all.

Key Components:
- process_queue(): Main processing endpoint
- reconcile(): Reconciliation sweep endpoint
- get_coordinator() / get_reconciler(): Dependency injection

Dependencies: FastAPI, typing, models, processing, storage
Author: Email Queue Team
"""

from typing import Optional, Union

from fastapi import APIRouter, Body, Depends
from fastapi import status as status_codes
from fastapi.responses import JSONResponse

from email_queue.handlers.cors import CORS_HEADERS
from email_queue.handlers.dependencies import build_coordinator, build_reconciler, get_store
from email_queue.models.request import ProcessQueueRequest, ReconcileRequest
from email_queue.models.response import ErrorResponse, ReconcileSummary, RunSummary
from email_queue.processing.coordinator import RunCoordinator
from email_queue.processing.reconciler import Reconciler
from email_queue.storage.dynamodb import QueueStoreClient, StoreUnavailableError
from email_queue.utils.logger import get_logger

router = APIRouter(tags=["queue"])
logger = get_logger(__name__)


def get_coordinator(store: QueueStoreClient = Depends(get_store)) -> RunCoordinator:
    """Dependency to get a run coordinator bound to the configured store."""
    return build_coordinator(store=store)


def get_reconciler(store: QueueStoreClient = Depends(get_store)) -> Reconciler:
    """Dependency to get a reconciler bound to the configured store."""
    return build_reconciler(store=store)


def store_unavailable_response(detail: str) -> JSONResponse:
    """503 response telling the trigger to retry the whole invocation."""
    return JSONResponse(
        status_code=status_codes.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "error": {
                "code": status_codes.HTTP_503_SERVICE_UNAVAILABLE,
                "message": f"Queue store unavailable: {detail}",
                "type": "store_unavailable"
            }
        },
        headers=CORS_HEADERS
    )


@router.post(
    "/process-queue",
    response_model=RunSummary,
    responses={503: {"model": ErrorResponse}}
)
async def process_queue(
    request: Optional[ProcessQueueRequest] = Body(default=None),
    coordinator: RunCoordinator = Depends(get_coordinator)
) -> Union[RunSummary, JSONResponse]:
    """
    Drain one batch of the email queue.

    Args:
        request: Optional overrides ({"batchSize": 10, "dryRun": false})
        coordinator: Run coordinator (injected via dependency)

    Returns:
        RunSummary accounting for every claimed item

    Example:
        POST /process-queue
        {"batchSize": 10}

        Response (200):
        {
            "runId": "run_3f2a9c1d0b7e",
            "claimed": 3,
            "sent": 2,
            "requeued": 1,
            "dead": 0,
            "anomalies": []
        }
    """
    overrides = request or ProcessQueueRequest()

    try:
        return await coordinator.run_once(
            batch_size=overrides.batch_size,
            dry_run=overrides.dry_run
        )
    except StoreUnavailableError as e:
        logger.error("Processing run aborted, queue store unavailable", error=str(e))
        return store_unavailable_response(str(e))


@router.post(
    "/reconcile",
    response_model=ReconcileSummary,
    responses={503: {"model": ErrorResponse}}
)
async def reconcile(
    request: Optional[ReconcileRequest] = Body(default=None),
    reconciler: Reconciler = Depends(get_reconciler)
) -> Union[ReconcileSummary, JSONResponse]:
    """Requeue (or kill) items whose processing lock has gone stale."""
    overrides = request or ReconcileRequest()

    try:
        if overrides.limit is not None:
            return await reconciler.sweep(limit=overrides.limit)
        return await reconciler.sweep()
    except StoreUnavailableError as e:
        logger.error("Reconciliation aborted, queue store unavailable", error=str(e))
        return store_unavailable_response(str(e))
