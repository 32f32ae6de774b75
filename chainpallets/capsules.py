"""Capsules pallet: NFTs that hold a frozen deposit and an extra IPFS reference."""

from __future__ import annotations

import copy
import enum
from dataclasses import dataclass, field
from typing import Any, Optional

from chainpallets.runtime import (
    BALANCE_MAX,
    Balances,
    DispatchError,
    ExistenceRequirement,
    NFTHandler,
    Origin,
    check_bounds,
    ensure_root,
    ensure_signed,
    pallet_account,
    transactional,
)

KEEP_ALIVE = ExistenceRequirement.KEEP_ALIVE
ALLOW_DEATH = ExistenceRequirement.ALLOW_DEATH

DEFAULT_CAPSULE_MINT_FEE = 1_000_000_000_000_000_000_000


@dataclass
class CapsuleData:
    """Owner and IPFS reference of a capsule."""

    owner: Any
    ipfs_reference: bytes


class CapsuleErrorKind(enum.Enum):
    """Reasons a capsules call can fail."""

    CANNOT_CREATE_CAPSULE_FROM_LENT_NFTS = "CannotCreateCapsuleFromLentNFTs"
    ARITHMETIC_ERROR = "ArithmeticError"
    NOT_OWNER = "NotOwner"
    TOO_SHORT_IPFS_REFERENCE = "TooShortIpfsReference"
    TOO_LONG_IPFS_REFERENCE = "TooLongIpfsReference"
    CAPSULE_ALREADY_EXISTS = "CapsuleAlreadyExists"
    INTERNAL_ERROR = "InternalError"
    LISTED_FOR_SALE = "ListedForSale"
    ALREADY_A_CAPSULE = "AlreadyACapsule"
    UNKNOWN_NFT = "UnknownNFT"
    IN_TRANSMISSION = "InTransmission"


class CapsuleError(DispatchError):
    """A capsules call was refused; ``kind`` says why."""

    def __init__(self, kind: CapsuleErrorKind) -> None:
        self.kind = kind
        super().__init__(kind.value)


@dataclass(frozen=True)
class CapsuleIpfsReferenceChanged:
    nft_id: int
    ipfs_reference: bytes


@dataclass(frozen=True)
class CapsuleFundsAdded:
    nft_id: int
    balance: int


@dataclass(frozen=True)
class CapsuleRemoved:
    nft_id: int
    unfrozen_balance: int


@dataclass(frozen=True)
class CapsuleCreated:
    owner: Any
    nft_id: int
    frozen_balance: int


@dataclass(frozen=True)
class CapsuleMintFeeChanged:
    fee: int


@dataclass(frozen=True)
class CapsuleDeposit:
    balance: int


@dataclass(frozen=True)
class CapsuleConfig:
    """Reference length limits and identity of the capsules pallet."""

    min_ipfs_len: int = 1
    max_ipfs_len: int = 256
    pallet_id: bytes = b"capsules"


@dataclass
class CapsuleGenesis:
    """Initial mint fee, capsules and ledgers."""

    capsule_mint_fee: int = 0
    capsules: list = field(default_factory=list)
    ledgers: list = field(default_factory=list)


@dataclass
class _Storage:
    capsule_mint_fee: Optional[int] = None
    capsules: dict = field(default_factory=dict)
    ledgers: dict = field(default_factory=dict)
    events: list = field(default_factory=list)

    def snapshot(self) -> Any:
        return copy.deepcopy(
            (self.capsule_mint_fee, self.capsules, self.ledgers, self.events)
        )

    def restore(self, state: Any) -> None:
        (
            self.capsule_mint_fee,
            self.capsules,
            self.ledgers,
            self.events,
        ) = copy.deepcopy(state)


class CapsulesPallet:
    """Turns NFTs into capsules backed by a deposit held in the pallet's account."""

    def __init__(
        self,
        config: CapsuleConfig,
        currency: Balances,
        nft_handler: NFTHandler,
        genesis: Optional[CapsuleGenesis] = None,
    ) -> None:
        self.config = config
        self.currency = currency
        self.nft_handler = nft_handler
        self.account_id = pallet_account(config.pallet_id)
        self._storage = _Storage()
        if genesis is not None:
            for nft_id, account, reference in genesis.capsules:
                self._storage.capsules[nft_id] = CapsuleData(account, reference)
            for account, data in genesis.ledgers:
                self._storage.ledgers[account] = [tuple(entry) for entry in data]
            self._storage.capsule_mint_fee = genesis.capsule_mint_fee

    @property
    def capsule_mint_fee(self) -> int:
        """Current mint fee; zero when none is stored."""
        fee = self._storage.capsule_mint_fee
        return 0 if fee is None else fee

    @capsule_mint_fee.deleter
    def capsule_mint_fee(self) -> None:
        self._storage.capsule_mint_fee = None

    @property
    def capsules(self) -> dict:
        return self._storage.capsules

    @property
    def ledgers(self) -> dict:
        return self._storage.ledgers

    @property
    def events(self) -> list:
        return self._storage.events

    def transaction_parts(self) -> tuple:
        return (self._storage, self.currency, self.nft_handler)

    def _deposit_event(self, event: Any) -> None:
        self._storage.events.append(event)

    def _check_reference(self, reference: bytes) -> None:
        check_bounds(
            len(reference),
            (
                self.config.min_ipfs_len,
                CapsuleError(CapsuleErrorKind.TOO_SHORT_IPFS_REFERENCE),
            ),
            (
                self.config.max_ipfs_len,
                CapsuleError(CapsuleErrorKind.TOO_LONG_IPFS_REFERENCE),
            ),
        )

    def _send_funds(
        self, sender: Any, receiver: Any, amount: int, liveness: ExistenceRequirement
    ) -> None:
        taken = self.currency.withdraw(sender, amount, liveness)
        self.currency.deposit(receiver, taken)

    def _new_capsule(self, owner: Any, nft_id: int, reference: bytes, funds: int) -> None:
        self._storage.capsules[nft_id] = CapsuleData(owner, reference)
        self._storage.ledgers.setdefault(owner, []).append((nft_id, funds))

    def _ledger_index(self, who: Any, nft_id: int) -> tuple[list, int]:
        ledger = self._storage.ledgers.get(who)
        if ledger is None:
            raise CapsuleError(CapsuleErrorKind.NOT_OWNER)
        for index, (entry_id, _) in enumerate(ledger):
            if entry_id == nft_id:
                return ledger, index
        raise CapsuleError(CapsuleErrorKind.NOT_OWNER)

    def on_runtime_upgrade(self) -> int:
        """Store the default mint fee when none is set; return the weight used."""
        if self._storage.capsule_mint_fee is None:
            self._storage.capsule_mint_fee = DEFAULT_CAPSULE_MINT_FEE
            return 1
        return 0

    @transactional
    def create(
        self,
        origin: Origin,
        nft_ipfs_reference: bytes,
        capsule_ipfs_reference: bytes,
        series_id: Optional[bytes],
    ) -> int:
        """Mint an NFT and turn it into a capsule; return the NFT id."""
        who = ensure_signed(origin)
        self._check_reference(capsule_ipfs_reference)

        amount = self.capsule_mint_fee
        self._send_funds(who, self.account_id, amount, KEEP_ALIVE)

        nft_id = self.nft_handler.create_nft(who, nft_ipfs_reference, series_id)
        self.nft_handler.set_converted_to_capsule(nft_id, True)
        self._new_capsule(who, nft_id, capsule_ipfs_reference, amount)

        self._deposit_event(CapsuleDeposit(balance=amount))
        self._deposit_event(CapsuleCreated(owner=who, nft_id=nft_id, frozen_balance=amount))
        return nft_id

    @transactional
    def create_from_nft(self, origin: Origin, nft_id: int, ipfs_reference: bytes) -> None:
        """Turn an existing NFT into a capsule."""
        who = ensure_signed(origin)
        self._check_reference(ipfs_reference)

        nft = self.nft_handler.get_nft(nft_id)
        if nft is None:
            raise CapsuleError(CapsuleErrorKind.UNKNOWN_NFT)
        if nft.owner != who:
            raise CapsuleError(CapsuleErrorKind.NOT_OWNER)
        if nft.listed_for_sale:
            raise CapsuleError(CapsuleErrorKind.LISTED_FOR_SALE)
        if nft.in_transmission:
            raise CapsuleError(CapsuleErrorKind.IN_TRANSMISSION)
        if nft.converted_to_capsule:
            raise CapsuleError(CapsuleErrorKind.CAPSULE_ALREADY_EXISTS)
        if nft.viewer is not None:
            raise CapsuleError(CapsuleErrorKind.CANNOT_CREATE_CAPSULE_FROM_LENT_NFTS)
        if nft_id in self._storage.capsules:
            raise CapsuleError(CapsuleErrorKind.CAPSULE_ALREADY_EXISTS)

        amount = self.capsule_mint_fee
        self._send_funds(who, self.account_id, amount, KEEP_ALIVE)

        self.nft_handler.set_converted_to_capsule(nft_id, True)
        self._new_capsule(who, nft_id, ipfs_reference, amount)

        self._deposit_event(CapsuleDeposit(balance=amount))
        self._deposit_event(CapsuleCreated(owner=who, nft_id=nft_id, frozen_balance=amount))

    @transactional
    def remove(self, origin: Origin, nft_id: int) -> None:
        """Turn a capsule back into a plain NFT and refund its deposit."""
        who = ensure_signed(origin)
        ledger, index = self._ledger_index(who, nft_id)

        unused_funds = ledger[index][1]
        self._send_funds(self.account_id, who, unused_funds, ALLOW_DEATH)

        last = ledger.pop()
        if index < len(ledger):
            ledger[index] = last
        if not ledger:
            del self._storage.ledgers[who]

        if self._storage.capsules.pop(nft_id, None) is None:
            raise CapsuleError(CapsuleErrorKind.INTERNAL_ERROR)

        self._deposit_event(CapsuleRemoved(nft_id=nft_id, unfrozen_balance=unused_funds))

    @transactional
    def add_funds(self, origin: Origin, nft_id: int, amount: int) -> None:
        """Add ``amount`` to the deposit of a capsule owned by the caller."""
        who = ensure_signed(origin)
        ledger, index = self._ledger_index(who, nft_id)

        self._send_funds(who, self.account_id, amount, KEEP_ALIVE)

        entry_id, funds = ledger[index]
        total = funds + amount
        if total > BALANCE_MAX:
            raise CapsuleError(CapsuleErrorKind.ARITHMETIC_ERROR)
        ledger[index] = (entry_id, total)

        self._deposit_event(CapsuleFundsAdded(nft_id=nft_id, balance=amount))

    def set_ipfs_reference(self, origin: Origin, nft_id: int, ipfs_reference: bytes) -> None:
        """Change the IPFS reference of a capsule owned by the caller."""
        who = ensure_signed(origin)
        self._check_reference(ipfs_reference)

        capsule = self._storage.capsules.get(nft_id)
        if capsule is None:
            raise CapsuleError(CapsuleErrorKind.UNKNOWN_NFT)
        if capsule.owner != who:
            raise CapsuleError(CapsuleErrorKind.NOT_OWNER)
        capsule.ipfs_reference = ipfs_reference

        self._deposit_event(
            CapsuleIpfsReferenceChanged(nft_id=nft_id, ipfs_reference=ipfs_reference)
        )

    def set_capsule_mint_fee(self, origin: Origin, capsule_fee: int) -> None:
        """Set the mint fee; root only."""
        ensure_root(origin)
        self._storage.capsule_mint_fee = capsule_fee
        self._deposit_event(CapsuleMintFeeChanged(fee=capsule_fee))