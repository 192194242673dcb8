"""Vulnerability ticket preparation and creation."""

from .mapper import (
    NormalizedVulnerability,
    TicketCreationResult,
    TicketDraft,
    TicketTracker,
    build_description,
    build_draft,
    create_tickets,
    prepare_tickets,
)
from .tracker import AzureBoardsTracker

__all__ = [
    "AzureBoardsTracker",
    "NormalizedVulnerability",
    "TicketCreationResult",
    "TicketDraft",
    "TicketTracker",
    "build_description",
    "build_draft",
    "create_tickets",
    "prepare_tickets",
]
