"""Automation worker and event intake endpoints."""

from typing import Annotated

from fastapi import APIRouter, Header, HTTPException, status

from src.automata.api.dependencies import (
    CurrentCaller,
    EventSvc,
    FlowRepo,
    MembershipRepo,
    ServiceCaller,
    Tracer,
    Worker,
    authorize_tenant,
)
from src.automata.core.exceptions import AuthorizationError, NotFoundError
from src.automata.core.logging import get_logger
from src.automata.engine import FlowDefinition
from src.automata.schemas import (
    AutomationEvent,
    BatchResponse,
    DryRunRequest,
    DryRunResponse,
    EventIngestResponse,
)
from src.automata.services.worker_service import summarize

logger = get_logger(__name__)

router = APIRouter(prefix="/automation", tags=["automation"])


def _is_dry_run(header: str | None) -> bool:
    return header is not None and header.strip().lower() in ("true", "1", "yes")


@router.post(
    "/worker",
    response_model=BatchResponse | DryRunResponse,
    responses={
        401: {"description": "Missing or invalid credential"},
        403: {"description": "Caller may not run batches or access this flow's tenant"},
        404: {"description": "Dry run flow not found"},
        422: {"description": "Dry run flow definition is invalid"},
    },
)
async def run_worker(
    caller: CurrentCaller,
    worker: Worker,
    tracer: Tracer,
    flow_repo: FlowRepo,
    membership_repo: MembershipRepo,
    body: DryRunRequest | None = None,
    x_dry_run: Annotated[str | None, Header()] = None,
) -> BatchResponse | DryRunResponse:
    """
    Process one batch of queued automation work.

    With `X-Dry-Run: true`, preview the flow in the body against
    `mock_payload` instead. A preview has no side effects and never touches
    the queue, the ledger or the circuit breaker.
    """
    if _is_dry_run(x_dry_run):
        if body is None or body.flow_id is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="Dry run requires a body with flow_id",
            )

        flow = await flow_repo.get_by_id(body.flow_id)
        if flow is None:
            raise NotFoundError("Flow not found")
        await authorize_tenant(caller, flow.tenant_id, membership_repo)

        report = await tracer.trace(FlowDefinition.parse(flow), body.mock_payload)
        return DryRunResponse(
            status=report.status,
            trace=report.trace,
            duration_ms=report.duration_ms,
        )

    if not caller.is_service:
        raise AuthorizationError("Running a batch requires the service credential")

    stats = await worker.process_batch()
    return BatchResponse(**summarize(stats))


@router.post(
    "/events",
    response_model=EventIngestResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def ingest_event(
    event: AutomationEvent,
    _caller: ServiceCaller,
    service: EventSvc,
) -> EventIngestResponse:
    """Enqueue an event for every active flow whose trigger matches it."""
    return await service.ingest(event)
