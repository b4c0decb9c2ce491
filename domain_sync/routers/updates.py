"""
Trigger Endpoints for domain-sync
POST /api/domains/update              - reconcile one domain now
POST /api/domains/update-batch        - process one batch of queued jobs
POST /api/domains/enqueue-all         - queue every monitored domain
POST /api/notifications/dispatch      - deliver unsent notifications
POST /api/notifications/cleanup       - retention sweep
POST /api/notifications/reminders     - queue expiry reminders
"""

from fastapi import APIRouter, Depends, Request

from domain_sync.alerts.dispatcher import NotificationDispatcher
from domain_sync.api.schemas import (
    BatchResponse,
    CleanupResponse,
    DispatchResponse,
    EnqueueResponse,
    ErrorResponse,
    ReminderResponse,
    UpdateDomainRequest,
    UpdateDomainResponse,
)
from domain_sync.orchestrator import ReconcileContext, reconcile_domain
from domain_sync.tasks import run_batch, run_cleanup, run_dispatch, run_enqueue_all, run_expiry_reminders

router = APIRouter(prefix="/api", tags=["domains"])

_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
}


def get_context(request: Request) -> ReconcileContext:
    """The app-wide context built in the lifespan."""
    return request.app.state.reconcile_ctx


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


@router.post("/domains/update", response_model=UpdateDomainResponse, responses=_ERRORS)
async def update_domain(body: UpdateDomainRequest, ctx: ReconcileContext = Depends(get_context)):
    """Fetch, diff and record one domain.  Errors map through the app's handler."""
    outcome = await reconcile_domain(ctx, body.domain, body.user_id)
    return UpdateDomainResponse(
        message=outcome.message,
        changes=outcome.change_count,
        notifications=outcome.notification_count,
        failed_categories=outcome.failed_categories,
    )


@router.post("/domains/update-batch", response_model=BatchResponse)
async def update_batch(ctx: ReconcileContext = Depends(get_context)):
    report = await run_batch(ctx)
    return BatchResponse(succeeded=report.succeeded, failed=report.failed, skipped=report.skipped)


@router.post("/domains/enqueue-all", response_model=EnqueueResponse)
async def enqueue_all(ctx: ReconcileContext = Depends(get_context)):
    return EnqueueResponse(queued=await run_enqueue_all(ctx))


@router.post("/notifications/dispatch", response_model=DispatchResponse)
async def dispatch_notifications(dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    report = await run_dispatch(dispatcher)
    return DispatchResponse(
        attempted=report.attempted,
        delivered=report.delivered,
        channel_failures=report.channel_failures,
    )


@router.post("/notifications/cleanup", response_model=CleanupResponse)
async def cleanup_notifications(dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    report = await run_cleanup(dispatcher)
    return CleanupResponse(resent=report.resent, deleted=report.deleted)


@router.post("/notifications/reminders", response_model=ReminderResponse)
async def queue_expiry_reminders(ctx: ReconcileContext = Depends(get_context)):
    return ReminderResponse(created=await run_expiry_reminders(ctx))
