"""Runtime pieces the pallets rely on: origins, errors, balances, NFTs and marketplaces."""

from __future__ import annotations

import copy
import enum
import functools
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable, Optional

BALANCE_MAX = 2**128 - 1


class DispatchError(Exception):
    """A call failed; ``name`` identifies the reason."""

    def __init__(self, name: Optional[str] = None) -> None:
        self.name = name or type(self).__name__
        super().__init__(self.name)


class BadOrigin(DispatchError):
    """The call came from an origin that may not make it."""


class InsufficientBalance(DispatchError):
    """The account does not hold enough free balance."""


class KeepAliveError(DispatchError):
    """The transfer would take the account below the existential deposit."""

    def __init__(self, name: str = "KeepAlive") -> None:
        super().__init__(name)


class ExistenceRequirement(enum.Enum):
    """Whether a debit may reap the debited account."""

    KEEP_ALIVE = "keep_alive"
    ALLOW_DEATH = "allow_death"


@dataclass(frozen=True)
class Origin:
    """Who dispatched a call: a signed account, root, or nobody."""

    account: Any = None
    is_root: bool = False

    @classmethod
    def signed(cls, account: Any) -> "Origin":
        return cls(account=account)

    @classmethod
    def root(cls) -> "Origin":
        return cls(is_root=True)


def ensure_signed(origin: Origin) -> Any:
    """Return the signing account, or raise BadOrigin."""
    if origin.is_root or origin.account is None:
        raise BadOrigin()
    return origin.account


def ensure_root(origin: Origin) -> None:
    """Raise BadOrigin unless the origin is root."""
    if not origin.is_root:
        raise BadOrigin()


class Balances:
    """Free balances of accounts with an existential deposit."""

    def __init__(self, existential_deposit: int = 0, endowed: Any = ()) -> None:
        if existential_deposit < 0:
            raise ValueError("existential deposit cannot be negative")
        self.existential_deposit = existential_deposit
        self._free: dict[Any, int] = {}
        items = endowed.items() if isinstance(endowed, Mapping) else endowed
        for account, amount in items:
            self.set_balance(account, amount)

    def _store(self, account: Any, amount: int) -> None:
        if amount == 0 or amount < self.existential_deposit:
            self._free.pop(account, None)
        else:
            self._free[account] = amount

    @staticmethod
    def _check_amount(amount: int) -> None:
        if amount < 0 or amount > BALANCE_MAX:
            raise ValueError(f"invalid balance amount: {amount}")

    def free_balance(self, account: Any) -> int:
        return self._free.get(account, 0)

    def set_balance(self, account: Any, amount: int) -> None:
        """Set the free balance; below the existential deposit the account is reaped."""
        self._check_amount(amount)
        self._store(account, amount)

    def _debit(self, account: Any, amount: int, existence: ExistenceRequirement) -> int:
        self._check_amount(amount)
        balance = self.free_balance(account)
        if amount > balance:
            raise InsufficientBalance()
        remaining = balance - amount
        if (
            existence is ExistenceRequirement.KEEP_ALIVE
            and remaining < self.existential_deposit
        ):
            raise KeepAliveError()
        return remaining

    def transfer(
        self,
        source: Any,
        dest: Any,
        amount: int,
        existence: ExistenceRequirement = ExistenceRequirement.ALLOW_DEATH,
    ) -> None:
        """Move ``amount`` from ``source`` to ``dest``."""
        self._check_amount(amount)
        if amount == 0 or source == dest:
            return
        remaining = self._debit(source, amount, existence)
        dest_balance = self.free_balance(dest) + amount
        if dest_balance > BALANCE_MAX:
            raise DispatchError("Overflow")
        if dest_balance < self.existential_deposit:
            raise DispatchError("ExistentialDeposit")
        self._store(source, remaining)
        self._store(dest, dest_balance)

    def withdraw(
        self,
        account: Any,
        amount: int,
        existence: ExistenceRequirement = ExistenceRequirement.KEEP_ALIVE,
    ) -> int:
        """Take ``amount`` out of ``account`` and return it."""
        remaining = self._debit(account, amount, existence)
        self._store(account, remaining)
        return amount

    def deposit(self, account: Any, amount: int) -> int:
        """Credit ``account``; an amount that cannot create the account is dropped."""
        self._check_amount(amount)
        new_balance = self.free_balance(account) + amount
        if new_balance > BALANCE_MAX or new_balance < self.existential_deposit:
            return 0
        self._store(account, new_balance)
        return amount

    def snapshot(self) -> dict[Any, int]:
        return dict(self._free)

    def restore(self, state: dict[Any, int]) -> None:
        self._free = dict(state)


@dataclass
class NFTData:
    """State of one NFT."""

    owner: Any
    ipfs_reference: bytes
    series_id: bytes
    listed_for_sale: bool = False
    in_transmission: bool = False
    converted_to_capsule: bool = False
    viewer: Any = None


@dataclass
class _Series:
    owner: Any
    completed: bool = False


class NFTHandler:
    """In-memory NFT registry with series and a mint fee."""

    def __init__(
        self,
        currency: Optional[Balances] = None,
        mint_fee: int = 0,
        min_ipfs_len: int = 1,
        max_ipfs_len: int = 256,
        nfts: Optional[Mapping[int, NFTData]] = None,
        series: Optional[Mapping[bytes, tuple[Any, bool]]] = None,
    ) -> None:
        self.currency = currency
        self.mint_fee = mint_fee
        self.min_ipfs_len = min_ipfs_len
        self.max_ipfs_len = max_ipfs_len
        self._nfts: dict[int, NFTData] = {k: replace(v) for k, v in (nfts or {}).items()}
        self._series: dict[bytes, _Series] = {
            sid: _Series(owner, completed)
            for sid, (owner, completed) in (series or {}).items()
        }
        self.nft_id_generator = max(self._nfts, default=-1) + 1
        self._series_counter = 0

    def _get(self, nft_id: int) -> NFTData:
        try:
            return self._nfts[nft_id]
        except KeyError:
            raise DispatchError("NFTNotFound") from None

    def _new_series_id(self) -> bytes:
        while True:
            candidate = str(self._series_counter).encode()
            self._series_counter += 1
            if candidate not in self._series:
                return candidate

    def create_nft(
        self, owner: Any, ipfs_reference: bytes, series_id: Optional[bytes] = None
    ) -> int:
        """Mint an NFT for ``owner`` and return its id."""
        check_bounds(
            len(ipfs_reference),
            (self.min_ipfs_len, DispatchError("IPFSReferenceIsTooShort")),
            (self.max_ipfs_len, DispatchError("IPFSReferenceIsTooLong")),
        )
        if series_id is None:
            series_id = self._new_series_id()
        else:
            existing = self._series.get(series_id)
            if existing is not None:
                if existing.owner != owner:
                    raise DispatchError("NotSeriesOwner")
                if existing.completed:
                    raise DispatchError("CannotCreateNFTsWithCompleteSeries")
        if self.currency is not None and self.mint_fee:
            self.currency.withdraw(owner, self.mint_fee, ExistenceRequirement.KEEP_ALIVE)
        self._series.setdefault(series_id, _Series(owner))
        nft_id = self.nft_id_generator
        self.nft_id_generator += 1
        self._nfts[nft_id] = NFTData(owner, ipfs_reference, series_id)
        return nft_id

    def get_nft(self, nft_id: int) -> Optional[NFTData]:
        nft = self._nfts.get(nft_id)
        return replace(nft) if nft is not None else None

    def owner(self, nft_id: int) -> Any:
        nft = self._nfts.get(nft_id)
        return nft.owner if nft is not None else None

    def is_listed_for_sale(self, nft_id: int) -> Optional[bool]:
        nft = self._nfts.get(nft_id)
        return nft.listed_for_sale if nft is not None else None

    def is_converted_to_capsule(self, nft_id: int) -> Optional[bool]:
        nft = self._nfts.get(nft_id)
        return nft.converted_to_capsule if nft is not None else None

    def is_nft_in_completed_series(self, nft_id: int) -> Optional[bool]:
        nft = self._nfts.get(nft_id)
        if nft is None:
            return None
        series = self._series.get(nft.series_id)
        return series.completed if series is not None else None

    def set_owner(self, nft_id: int, owner: Any) -> None:
        self._get(nft_id).owner = owner

    def set_listed_for_sale(self, nft_id: int, value: bool) -> None:
        self._get(nft_id).listed_for_sale = value

    def set_in_transmission(self, nft_id: int, value: bool) -> None:
        self._get(nft_id).in_transmission = value

    def set_converted_to_capsule(self, nft_id: int, value: bool) -> None:
        self._get(nft_id).converted_to_capsule = value

    def set_viewer(self, nft_id: int, viewer: Any) -> None:
        self._get(nft_id).viewer = viewer

    def set_series_completion(self, series_id: bytes, completed: bool) -> None:
        try:
            self._series[series_id].completed = completed
        except KeyError:
            raise DispatchError("SeriesNotFound") from None

    def snapshot(self) -> Any:
        return copy.deepcopy(
            (self._nfts, self._series, self.nft_id_generator, self._series_counter)
        )

    def restore(self, state: Any) -> None:
        nfts, series, generator, counter = copy.deepcopy(state)
        self._nfts, self._series = nfts, series
        self.nft_id_generator, self._series_counter = generator, counter


@dataclass
class MarketplaceInfo:
    """A marketplace, its owner, fee and listing rules."""

    owner: Any
    commission_fee: int
    private: bool = False
    allow_list: list = field(default_factory=list)
    disallow_list: list = field(default_factory=list)


class MarketplaceHandler:
    """In-memory marketplace registry."""

    def __init__(self, marketplaces: Optional[Mapping[int, MarketplaceInfo]] = None) -> None:
        self._markets: dict[int, MarketplaceInfo] = {
            k: copy.deepcopy(v) for k, v in (marketplaces or {}).items()
        }
        self.marketplace_id_generator = max(self._markets, default=-1) + 1

    def _get(self, marketplace_id: int) -> MarketplaceInfo:
        try:
            return self._markets[marketplace_id]
        except KeyError:
            raise DispatchError("UnknownMarketplace") from None

    def create(self, owner: Any, commission_fee: int, private: bool = False) -> int:
        """Register a marketplace and return its id."""
        if not 0 <= commission_fee <= 100:
            raise DispatchError("InvalidCommissionFeeValue")
        marketplace_id = self.marketplace_id_generator
        self.marketplace_id_generator += 1
        self._markets[marketplace_id] = MarketplaceInfo(owner, commission_fee, private)
        return marketplace_id

    def get_marketplace(self, marketplace_id: int) -> Optional[MarketplaceInfo]:
        market = self._markets.get(marketplace_id)
        return copy.deepcopy(market) if market is not None else None

    def is_allowed_to_list(self, marketplace_id: int, account: Any) -> None:
        """Raise unless ``account`` may list on the marketplace."""
        market = self._get(marketplace_id)
        if market.private:
            allowed = account in market.allow_list
        else:
            allowed = account not in market.disallow_list
        if not allowed:
            raise DispatchError("NotAllowedToList")

    def add_account_to_allow_list(self, marketplace_id: int, account: Any) -> None:
        market = self._get(marketplace_id)
        if account not in market.allow_list:
            market.allow_list.append(account)

    def add_account_to_disallow_list(self, marketplace_id: int, account: Any) -> None:
        market = self._get(marketplace_id)
        if account not in market.disallow_list:
            market.disallow_list.append(account)

    def snapshot(self) -> Any:
        return copy.deepcopy((self._markets, self.marketplace_id_generator))

    def restore(self, state: Any) -> None:
        self._markets, self.marketplace_id_generator = copy.deepcopy(state)


def _is_participant(obj: Any) -> bool:
    return hasattr(obj, "snapshot") and hasattr(obj, "restore")


class _Transaction:
    """Snapshots its parts on entry and restores them if the block raises."""

    def __init__(self, parts: Iterable[Any]) -> None:
        self._parts = tuple(parts)
        self._stack: list[list[Any]] = []

    def __enter__(self) -> "_Transaction":
        self._stack.append([part.snapshot() for part in self._parts])
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        states = self._stack.pop()
        if exc_type is not None:
            for part, state in zip(self._parts, states):
                part.restore(state)
        return False


def transactional(*args: Any) -> Any:
    """Roll state back when a call fails.

    ``transactional(a, b, ...)`` is a context manager over objects with
    ``snapshot``/``restore``. Used as a method decorator, it covers the parts
    returned by the instance's ``transaction_parts()``.
    """
    if len(args) == 1 and callable(args[0]) and not _is_participant(args[0]):
        func: Callable[..., Any] = args[0]

        @functools.wraps(func)
        def wrapper(self: Any, *call_args: Any, **call_kwargs: Any) -> Any:
            with _Transaction(self.transaction_parts()):
                return func(self, *call_args, **call_kwargs)

        return wrapper
    for part in args:
        if not _is_participant(part):
            raise TypeError(f"{part!r} cannot take part in a transaction")
    return _Transaction(args)


def check_bounds(length: int, min_bound: tuple[int, Any], max_bound: tuple[int, Any]) -> None:
    """Raise the paired error when ``length`` is outside ``[min, max]``."""
    min_len, too_short = min_bound
    max_len, too_long = max_bound
    if length < min_len:
        raise too_short
    if length > max_len:
        raise too_long


def pallet_account(pallet_id: Any) -> bytes:
    """The 32-byte account owned by an 8-byte pallet id."""
    raw = pallet_id.encode() if isinstance(pallet_id, str) else bytes(pallet_id)
    if len(raw) != 8:
        raise ValueError("pallet id must be 8 bytes long")
    return (b"modl" + raw).ljust(32, b"\0")