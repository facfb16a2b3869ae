from pydantic import BaseModel

from app.domain import TicketStatus


class Ticket(BaseModel):
    id: str
    token_id: int
    contract_id: str
    contract_address: str
    contract_name: str
    event_name: str
    event_date: str
    event_time: str
    location: str
    image: str
    ticket_number: str
    status: TicketStatus
    quantity: int = 1
    category: str
    price: str

    model_config = {"from_attributes": True}


class TicketList(BaseModel):
    total: int
    items: list[Ticket]
