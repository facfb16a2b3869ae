"""On-chain ticket discovery: indexer access, decoding, and normalization."""

from .client import ChainClientError, ContractCallError, HiroClient
from .holdings import group_by_contract, parse_holdings
from .metadata import MetadataResolver, normalize_event_details
from .service import TicketPipeline
from .tickets import derive_status, synthesize_tickets

__all__ = [
    "ChainClientError",
    "ContractCallError",
    "HiroClient",
    "MetadataResolver",
    "TicketPipeline",
    "derive_status",
    "group_by_contract",
    "normalize_event_details",
    "parse_holdings",
    "synthesize_tickets",
]
