from __future__ import annotations

from fastapi import Depends, FastAPI, Path, Response

from . import schemas
from .core.config import settings
from .services.ticket_service import TicketService, get_ticket_service

app = FastAPI(title="Ticket Discovery API", version="0.1.0", debug=settings.debug)


def _ticket_service() -> TicketService:
    """Provide the process-wide ticket service."""

    return get_ticket_service()


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness probe consumed by infrastructure monitors."""

    return {"status": "ok"}


@app.get("/users/{address}/tickets", response_model=schemas.TicketList, tags=["tickets"])
async def list_user_tickets(
    address: str = Path(min_length=1, description="Stacks principal of the wallet"),
    service: TicketService = Depends(_ticket_service),
):
    """Return the normalized tickets held by a wallet, cached briefly."""

    tickets = await service.get_user_tickets(address)
    return schemas.TicketList(
        total=len(tickets),
        items=[schemas.Ticket.model_validate(ticket) for ticket in tickets],
    )


@app.delete("/users/{address}/tickets/cache", status_code=204, tags=["tickets"])
def invalidate_user_tickets(
    address: str = Path(min_length=1),
    service: TicketService = Depends(_ticket_service),
) -> Response:
    """Force the next ticket lookup for ``address`` to bypass the cache."""

    service.invalidate_user_tickets(address)
    return Response(status_code=204)


@app.delete("/tickets/cache", status_code=204, tags=["tickets"])
def invalidate_all_tickets(service: TicketService = Depends(_ticket_service)) -> Response:
    """Drop every cached ticket list."""

    service.invalidate_user_tickets()
    return Response(status_code=204)
