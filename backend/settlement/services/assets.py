"""Asset descriptors: the native coin or a fungible-token contract."""

from dataclasses import dataclass
from enum import StrEnum


class AssetKind(StrEnum):
    NATIVE = "native"
    TOKEN = "token"


@dataclass(frozen=True)
class AssetRef:
    """Identifies what an escrow is denominated in.

    ``contract`` is required for tokens and forbidden for the native coin.
    ``token_id`` optionally selects a sub-asset of a multi-token contract.
    """

    kind: AssetKind = AssetKind.NATIVE
    contract: str | None = None
    token_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", AssetKind(self.kind))
        if self.kind == AssetKind.NATIVE and (self.contract or self.token_id):
            raise ValueError("native asset takes no contract or token_id")
        if self.kind == AssetKind.TOKEN and not self.contract:
            raise ValueError("token asset requires a contract")

    @classmethod
    def native(cls) -> "AssetRef":
        return cls(AssetKind.NATIVE)

    @classmethod
    def token(cls, contract: str, token_id: str | None = None) -> "AssetRef":
        return cls(AssetKind.TOKEN, contract, token_id)

    @classmethod
    def parse(cls, value: str) -> "AssetRef":
        """Parse ``native``, ``token:<contract>`` or ``token:<contract>#<id>``."""
        if value == AssetKind.NATIVE:
            return cls.native()
        kind, sep, rest = value.partition(":")
        if kind != AssetKind.TOKEN or not sep or not rest:
            raise ValueError(f"Unrecognised asset reference: {value!r}")
        contract, _, token_id = rest.partition("#")
        return cls.token(contract, token_id or None)

    @property
    def identity(self) -> str:
        """Allow-list key: the contract, ignoring any token id."""
        if self.kind == AssetKind.NATIVE:
            return AssetKind.NATIVE.value
        return f"{AssetKind.TOKEN}:{self.contract}"

    def __str__(self) -> str:
        if self.token_id:
            return f"{self.identity}#{self.token_id}"
        return self.identity
