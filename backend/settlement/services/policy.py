"""Admin policy — process-wide settlement configuration owned by one admin.

The policy is an explicit object injected into the SettlementEngine rather
than a module global, so every test (and every process) can build its own.
Reads go through ``snapshot()`` which returns an immutable copy. A
transition pins its snapshot with ``pinned()`` for its whole run, and the
async setters wait until no transition holds one.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from settlement.core.config import Settings
from settlement.core.errors import NotAuthorized, PolicyViolation
from settlement.core.locks import ReadWriteLock
from settlement.services.assets import AssetRef
from settlement.services.fees import MAX_FEE_RATE_BPS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PolicySnapshot:
    admin: str
    treasury: str
    fee_rate_bps: int
    escrow_timeout: int
    supported_assets: frozenset[str]

    def supports(self, asset: AssetRef) -> bool:
        return asset.identity in self.supported_assets


class AdminPolicy:
    """Mutable policy; every setter requires the caller to be the admin."""

    def __init__(
        self,
        admin: str,
        treasury: str,
        fee_rate_bps: int = 0,
        escrow_timeout: int = 1440,
        supported_assets: list[AssetRef] | None = None,
    ) -> None:
        if not admin:
            raise PolicyViolation("Admin identity is required")
        _check_fee_rate(fee_rate_bps)
        _check_timeout(escrow_timeout)
        _check_account(treasury, "treasury")
        self._gate = ReadWriteLock()
        self._admin = admin
        self._pending_admin: str | None = None
        self._treasury = treasury
        self._fee_rate_bps = fee_rate_bps
        self._escrow_timeout = escrow_timeout
        # asset identity → enabled flag; disabled entries are kept for history
        self._assets: dict[str, bool] = {}
        for asset in supported_assets or [AssetRef.native()]:
            self._assets[asset.identity] = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "AdminPolicy":
        return cls(
            admin=settings.admin_account,
            treasury=settings.treasury_account,
            fee_rate_bps=settings.fee_rate_bps,
            escrow_timeout=settings.escrow_timeout,
            supported_assets=[AssetRef.parse(a) for a in settings.supported_assets],
        )

    # -- reads ---------------------------------------------------------------

    @property
    def admin(self) -> str:
        return self._admin

    @property
    def pending_admin(self) -> str | None:
        return self._pending_admin

    @property
    def treasury(self) -> str:
        return self._treasury

    @property
    def fee_rate_bps(self) -> int:
        return self._fee_rate_bps

    @property
    def escrow_timeout(self) -> int:
        return self._escrow_timeout

    def is_asset_supported(self, asset: AssetRef) -> bool:
        return self._assets.get(asset.identity, False)

    def snapshot(self) -> PolicySnapshot:
        return PolicySnapshot(
            admin=self._admin,
            treasury=self._treasury,
            fee_rate_bps=self._fee_rate_bps,
            escrow_timeout=self._escrow_timeout,
            supported_assets=frozenset(k for k, on in self._assets.items() if on),
        )

    @asynccontextmanager
    async def pinned(self) -> AsyncIterator[PolicySnapshot]:
        """Yield a snapshot that stays current until the block exits.

        Admin writes wait for every pinned block to finish, so the admin
        and treasury a transition authorizes against cannot change under it.
        """
        async with self._gate.read():
            yield self.snapshot()

    # -- admin-only writes ---------------------------------------------------

    def _require_admin(self, caller: str) -> None:
        if caller != self._admin:
            raise NotAuthorized(f"{caller!r} is not the admin")

    async def set_fee_rate(self, caller: str, fee_rate_bps: int) -> None:
        async with self._gate.write():
            self._require_admin(caller)
            _check_fee_rate(fee_rate_bps)
            old, self._fee_rate_bps = self._fee_rate_bps, fee_rate_bps
        logger.info("Fee rate changed %s -> %s bps by %s", old, fee_rate_bps, caller)

    async def set_treasury(self, caller: str, treasury: str) -> None:
        async with self._gate.write():
            self._require_admin(caller)
            _check_account(treasury, "treasury")
            old, self._treasury = self._treasury, treasury
        logger.info("Treasury changed %s -> %s by %s", old, treasury, caller)

    async def set_escrow_timeout(self, caller: str, escrow_timeout: int) -> None:
        async with self._gate.write():
            self._require_admin(caller)
            _check_timeout(escrow_timeout)
            old, self._escrow_timeout = self._escrow_timeout, escrow_timeout
        logger.info("Escrow timeout changed %s -> %s by %s", old, escrow_timeout, caller)

    async def set_asset_supported(self, caller: str, asset: AssetRef, enabled: bool) -> None:
        async with self._gate.write():
            self._require_admin(caller)
            self._assets[asset.identity] = enabled
        logger.info(
            "Asset %s %s by %s", asset.identity, "enabled" if enabled else "disabled", caller,
        )

    async def enable_asset(self, caller: str, asset: AssetRef) -> None:
        await self.set_asset_supported(caller, asset, True)

    async def disable_asset(self, caller: str, asset: AssetRef) -> None:
        await self.set_asset_supported(caller, asset, False)

    async def transfer_admin(self, caller: str, new_admin: str) -> None:
        """Hand the admin role over immediately, with no acceptance step.

        A typo here locks everyone out; prefer propose_admin/accept_admin.
        """
        async with self._gate.write():
            self._require_admin(caller)
            _check_account(new_admin, "admin")
            self._admin = new_admin
            self._pending_admin = None
        logger.warning("Admin transferred %s -> %s (immediate)", caller, new_admin)

    async def propose_admin(self, caller: str, candidate: str) -> None:
        async with self._gate.write():
            self._require_admin(caller)
            _check_account(candidate, "admin")
            self._pending_admin = candidate
        logger.info("Admin handoff proposed %s -> %s", caller, candidate)

    async def accept_admin(self, caller: str) -> None:
        async with self._gate.write():
            if self._pending_admin is None or caller != self._pending_admin:
                raise NotAuthorized(f"{caller!r} has no pending admin proposal")
            old, self._admin = self._admin, caller
            self._pending_admin = None
        logger.warning("Admin handoff accepted %s -> %s", old, caller)


def _check_fee_rate(fee_rate_bps: int) -> None:
    if isinstance(fee_rate_bps, bool) or not isinstance(fee_rate_bps, int):
        raise PolicyViolation(f"Fee rate must be an integer, got {fee_rate_bps!r}")
    if not 0 <= fee_rate_bps <= MAX_FEE_RATE_BPS:
        raise PolicyViolation(
            f"Fee rate must be between 0 and {MAX_FEE_RATE_BPS} bps, got {fee_rate_bps}"
        )


def _check_timeout(escrow_timeout: int) -> None:
    if isinstance(escrow_timeout, bool) or not isinstance(escrow_timeout, int):
        raise PolicyViolation(f"Escrow timeout must be an integer, got {escrow_timeout!r}")
    if escrow_timeout <= 0:
        raise PolicyViolation(f"Escrow timeout must be positive, got {escrow_timeout}")


def _check_account(account: str, label: str) -> None:
    if not account:
        raise PolicyViolation(f"{label} account must not be empty")
