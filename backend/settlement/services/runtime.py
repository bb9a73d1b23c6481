"""Process-wide wiring of the settlement engine from settings."""

import logging

from settlement.core.config import Settings, settings
from settlement.services.clock import WallClock
from settlement.services.collaborators import HttpListingDirectory, HttpReputationRecorder
from settlement.services.ledger.http import HttpLedgerAdapter
from settlement.services.policy import AdminPolicy
from settlement.services.settlement import SettlementEngine

logger = logging.getLogger(__name__)

_engine: SettlementEngine | None = None


def build_engine(cfg: Settings, session_factory=None) -> SettlementEngine:
    """Assemble an engine talking to the configured ledger and collaborators."""
    if session_factory is None:
        from settlement.db.session import async_session_factory

        session_factory = async_session_factory

    reputation = HttpReputationRecorder(cfg.reputation_api_url) if cfg.reputation_api_url else None
    listings = HttpListingDirectory(cfg.listing_api_url) if cfg.listing_api_url else None
    if reputation is None:
        logger.warning("Reputation service not configured; outcomes will not be reported")

    return SettlementEngine(
        session_factory=session_factory,
        policy=AdminPolicy.from_settings(cfg),
        ledger=HttpLedgerAdapter(cfg.ledger_api_base_url, cfg.ledger_api_key),
        escrow_account=cfg.escrow_account,
        clock=WallClock(cfg.clock_unit_seconds),
        reputation=reputation,
        listings=listings,
    )


def get_engine() -> SettlementEngine:
    """Return the shared engine for this process, building it on first use."""
    global _engine
    if _engine is None:
        _engine = build_engine(settings)
    return _engine
