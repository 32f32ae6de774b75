"""Auctions pallet: timed NFT auctions with bids, buy-it-now and claims."""

from __future__ import annotations

import copy
import enum
from dataclasses import dataclass, field
from typing import Any, Optional

from chainpallets.auction_types import AuctionData, Bid, BidderList, DeadlineList
from chainpallets.runtime import (
    BALANCE_MAX,
    Balances,
    DispatchError,
    ExistenceRequirement,
    MarketplaceHandler,
    NFTHandler,
    Origin,
    ensure_root,
    ensure_signed,
    pallet_account,
    transactional,
)
from chainpallets.weights import ROCKS_DB_WEIGHT, DbWeight

KEEP_ALIVE = ExistenceRequirement.KEEP_ALIVE
ALLOW_DEATH = ExistenceRequirement.ALLOW_DEATH


class AuctionErrorKind(enum.Enum):
    """Reasons an auctions call can fail."""

    AUCTION_NOT_STARTED = "AuctionNotStarted"
    AUCTION_DOES_NOT_EXIST = "AuctionDoesNotExist"
    AUCTION_DOES_NOT_SUPPORT_BUY_IT_NOW = "AuctionDoesNotSupportBuyItNow"
    AUCTION_CANNOT_START_IN_THE_PAST = "AuctionCannotStartInThePast"
    AUCTION_CANNOT_END_BEFORE_IT_HAS_STARTED = "AuctionCannotEndBeforeItHasStarted"
    AUCTION_DURATION_IS_TOO_LONG = "AuctionDurationIsTooLong"
    AUCTION_DURATION_IS_TOO_SHORT = "AuctionDurationIsTooShort"
    AUCTION_START_IS_TOO_FAR_AWAY = "AuctionStartIsTooFarAway"
    BUY_IT_PRICE_CANNOT_BE_LOWER_OR_EQUAL_THAN_START_PRICE = (
        "BuyItPriceCannotBeLowerOrEqualThanStartPrice"
    )
    BID_DOES_NOT_EXIST = "BidDoesNotExist"
    CANNOT_ADD_BID_TO_YOUR_OWN_AUCTIONS = "CannotAddBidToYourOwnAuctions"
    CANNOT_CANCEL_AUCTION_IN_PROGRESS = "CannotCancelAuctionInProgress"
    CANNOT_BID_LESS_THAN_THE_HIGHEST_BID = "CannotBidLessThanTheHighestBid"
    CANNOT_BID_LESS_THAN_THE_STARTING_PRICE = "CannotBidLessThanTheStartingPrice"
    CANNOT_BUY_IT_WHEN_A_BID_IS_HIGHER_THAN_BUY_IT_PRICE = (
        "CannotBuyItWhenABidIsHigherThanBuyItPrice"
    )
    CANNOT_AUCTION_NFTS_IN_UNCOMPLETED_SERIES = "CannotAuctionNFTsInUncompletedSeries"
    CANNOT_REMOVE_BID_AT_THE_END_OF_AUCTION = "CannotRemoveBidAtTheEndOfAuction"
    CANNOT_END_AUCTION_THAT_WAS_NOT_EXTENDED = "CannotEndAuctionThatWasNotExtended"
    CANNOT_AUCTION_NFTS_LISTED_FOR_SALE = "CannotAuctionNFTsListedForSale"
    CANNOT_AUCTION_NFTS_IN_TRANSMISSION = "CannotAuctionNFTsInTransmission"
    CANNOT_AUCTION_CAPSULES = "CannotAuctionCapsules"
    CANNOT_AUCTION_NOT_OWNED_NFTS = "CannotAuctionNotOwnedNFTs"
    CANNOT_AUCTION_LENT_NFTS = "CannotAuctionLentNFTs"
    CLAIM_DOES_NOT_EXIST = "ClaimDoesNotExist"
    NFT_DOES_NOT_EXIST = "NFTDoesNotExist"
    NOT_THE_AUCTION_CREATOR = "NotTheAuctionCreator"
    UNKNOWN_MARKETPLACE = "UnknownMarketplace"


class AuctionError(DispatchError):
    """An auctions call was refused; ``kind`` says why."""

    def __init__(self, kind: AuctionErrorKind) -> None:
        self.kind = kind
        super().__init__(kind.value)


@dataclass(frozen=True)
class AuctionCreated:
    nft_id: int
    marketplace_id: int
    creator: Any
    start_price: int
    buy_it_price: Optional[int]
    start_block: int
    end_block: int


@dataclass(frozen=True)
class AuctionCancelled:
    nft_id: int


@dataclass(frozen=True)
class AuctionCompleted:
    nft_id: int
    new_owner: Any
    amount: Optional[int]


@dataclass(frozen=True)
class BidAdded:
    nft_id: int
    bidder: Any
    amount: int


@dataclass(frozen=True)
class BidRemoved:
    nft_id: int
    bidder: Any
    amount: int


@dataclass(frozen=True)
class BidUpdated:
    nft_id: int
    bidder: Any
    amount: int


@dataclass(frozen=True)
class BalanceClaimed:
    account: Any
    amount: int


@dataclass(frozen=True)
class AuctionConfig:
    """Limits and identity of the auctions pallet."""

    min_auction_duration: int
    max_auction_duration: int
    max_auction_delay: int
    auction_grace_period: int
    auction_ending_period: int
    pallet_id: bytes = b"tauction"
    db_weight: DbWeight = ROCKS_DB_WEIGHT


@dataclass
class AuctionGenesis:
    """Initial auctions and bid history size."""

    auctions: list = field(default_factory=list)
    bid_history_size: int = 0


@dataclass
class _Storage:
    auctions: dict = field(default_factory=dict)
    deadlines: DeadlineList = field(default_factory=DeadlineList)
    claims: dict = field(default_factory=dict)
    bid_history_size: int = 0
    events: list = field(default_factory=list)

    def snapshot(self) -> Any:
        return copy.deepcopy(
            (self.auctions, self.deadlines, self.claims, self.bid_history_size, self.events)
        )

    def restore(self, state: Any) -> None:
        (
            self.auctions,
            self.deadlines,
            self.claims,
            self.bid_history_size,
            self.events,
        ) = copy.deepcopy(state)


def _saturating_sub(a: int, b: int) -> int:
    return max(a - b, 0)


class AuctionsPallet:
    """NFT auctions listed on marketplaces, settled in the pallet's currency."""

    def __init__(
        self,
        config: AuctionConfig,
        currency: Balances,
        nft_handler: NFTHandler,
        marketplace_handler: MarketplaceHandler,
        genesis: Optional[AuctionGenesis] = None,
    ) -> None:
        self.config = config
        self.currency = currency
        self.nft_handler = nft_handler
        self.marketplace_handler = marketplace_handler
        self.account_id = pallet_account(config.pallet_id)
        self.block_number = 0
        self._storage = _Storage()
        genesis = genesis or AuctionGenesis()
        for nft_id, auction in genesis.auctions:
            self._storage.deadlines.insert(nft_id, auction.end_block)
            self._storage.auctions[nft_id] = copy.deepcopy(auction)
        self._storage.bid_history_size = genesis.bid_history_size

    @property
    def auctions(self) -> dict:
        return self._storage.auctions

    @property
    def deadlines(self) -> DeadlineList:
        return self._storage.deadlines

    @property
    def claims(self) -> dict:
        return self._storage.claims

    @property
    def bid_history_size(self) -> int:
        return self._storage.bid_history_size

    @property
    def events(self) -> list:
        return self._storage.events

    def transaction_parts(self) -> tuple:
        return (self._storage, self.currency, self.nft_handler, self.marketplace_handler)

    def _deposit_event(self, event: Any) -> None:
        self._storage.events.append(event)

    def _get_auction(self, nft_id: int) -> AuctionData:
        auction = self._storage.auctions.get(nft_id)
        if auction is None:
            raise AuctionError(AuctionErrorKind.AUCTION_DOES_NOT_EXIST)
        return auction

    def on_initialize(self, now: int) -> int:
        """Complete every auction whose deadline has passed; return the weight used."""
        reads = writes = 0
        while True:
            reads += 1
            nft_id = self._storage.deadlines.next(now)
            if nft_id is None:
                break
            self.complete_auction(Origin.root(), nft_id)
            reads += 1
            writes += 1
        weight = self.config.db_weight
        return weight.reads(reads) if writes == 0 else weight.reads_writes(reads, writes)

    def run_to_block(self, n: int) -> None:
        """Advance block by block up to ``n``, running the block hook each time."""
        while self.block_number < n:
            self.block_number += 1
            self.on_initialize(self.block_number)

    @transactional
    def create_auction(
        self,
        origin: Origin,
        nft_id: int,
        marketplace_id: int,
        start_block: int,
        end_block: int,
        start_price: int,
        buy_it_price: Optional[int],
    ) -> None:
        creator = ensure_signed(origin)
        current = self.block_number
        cfg = self.config

        if start_block < current:
            raise AuctionError(AuctionErrorKind.AUCTION_CANNOT_START_IN_THE_PAST)
        if start_block >= end_block:
            raise AuctionError(AuctionErrorKind.AUCTION_CANNOT_END_BEFORE_IT_HAS_STARTED)
        duration = _saturating_sub(end_block, start_block)
        buffer = _saturating_sub(start_block, current)
        if duration > cfg.max_auction_duration:
            raise AuctionError(AuctionErrorKind.AUCTION_DURATION_IS_TOO_LONG)
        if duration < cfg.min_auction_duration:
            raise AuctionError(AuctionErrorKind.AUCTION_DURATION_IS_TOO_SHORT)
        if buffer > cfg.max_auction_delay:
            raise AuctionError(AuctionErrorKind.AUCTION_START_IS_TOO_FAR_AWAY)
        if buy_it_price is not None and buy_it_price <= start_price:
            raise AuctionError(
                AuctionErrorKind.BUY_IT_PRICE_CANNOT_BE_LOWER_OR_EQUAL_THAN_START_PRICE
            )

        nft = self.nft_handler.get_nft(nft_id)
        if nft is None:
            raise AuctionError(AuctionErrorKind.NFT_DOES_NOT_EXIST)
        in_completed_series = self.nft_handler.is_nft_in_completed_series(nft_id)
        if nft.owner != creator:
            raise AuctionError(AuctionErrorKind.CANNOT_AUCTION_NOT_OWNED_NFTS)
        if nft.listed_for_sale:
            raise AuctionError(AuctionErrorKind.CANNOT_AUCTION_NFTS_LISTED_FOR_SALE)
        if nft.in_transmission:
            raise AuctionError(AuctionErrorKind.CANNOT_AUCTION_NFTS_IN_TRANSMISSION)
        if nft.converted_to_capsule:
            raise AuctionError(AuctionErrorKind.CANNOT_AUCTION_CAPSULES)
        if nft.viewer is not None:
            raise AuctionError(AuctionErrorKind.CANNOT_AUCTION_LENT_NFTS)
        if in_completed_series is not True:
            raise AuctionError(AuctionErrorKind.CANNOT_AUCTION_NFTS_IN_UNCOMPLETED_SERIES)

        self.marketplace_handler.is_allowed_to_list(marketplace_id, creator)
        self.nft_handler.set_listed_for_sale(nft_id, True)

        self._storage.auctions[nft_id] = AuctionData(
            creator=creator,
            start_block=start_block,
            end_block=end_block,
            start_price=start_price,
            buy_it_price=buy_it_price,
            bidders=BidderList(self._storage.bid_history_size),
            marketplace_id=marketplace_id,
            is_extended=False,
        )
        self._storage.deadlines.insert(nft_id, end_block)

        self._deposit_event(
            AuctionCreated(
                nft_id=nft_id,
                marketplace_id=marketplace_id,
                creator=creator,
                start_price=start_price,
                buy_it_price=buy_it_price,
                start_block=start_block,
                end_block=end_block,
            )
        )

    @transactional
    def cancel_auction(self, origin: Origin, nft_id: int) -> None:
        who = ensure_signed(origin)
        auction = self._get_auction(nft_id)
        if auction.creator != who:
            raise AuctionError(AuctionErrorKind.NOT_THE_AUCTION_CREATOR)
        if self.has_started(self.block_number, auction.start_block):
            raise AuctionError(AuctionErrorKind.CANNOT_CANCEL_AUCTION_IN_PROGRESS)

        self.nft_handler.set_listed_for_sale(nft_id, False)
        self.remove_auction(nft_id, auction)
        self._deposit_event(AuctionCancelled(nft_id))

    @transactional
    def end_auction(self, origin: Origin, nft_id: int) -> None:
        who = ensure_signed(origin)
        auction = self._get_auction(nft_id)
        if auction.creator != who:
            raise AuctionError(AuctionErrorKind.NOT_THE_AUCTION_CREATOR)
        if not auction.is_extended:
            raise AuctionError(AuctionErrorKind.CANNOT_END_AUCTION_THAT_WAS_NOT_EXTENDED)
        self.complete_auction(Origin.root(), nft_id)

    @transactional
    def add_bid(self, origin: Origin, nft_id: int, amount: int) -> None:
        who = ensure_signed(origin)
        current = self.block_number
        auction = self._get_auction(nft_id)

        if auction.creator == who:
            raise AuctionError(AuctionErrorKind.CANNOT_ADD_BID_TO_YOUR_OWN_AUCTIONS)
        if not self.has_started(current, auction.start_block):
            raise AuctionError(AuctionErrorKind.AUCTION_NOT_STARTED)

        highest = auction.bidders.get_highest_bid()
        if highest is not None:
            if amount <= highest.amount:
                raise AuctionError(AuctionErrorKind.CANNOT_BID_LESS_THAN_THE_HIGHEST_BID)
        elif amount <= auction.start_price:
            raise AuctionError(AuctionErrorKind.CANNOT_BID_LESS_THAN_THE_STARTING_PRICE)

        remaining_blocks = _saturating_sub(auction.end_block, current)

        existing = auction.bidders.find_bid(who)
        if existing is not None:
            difference = _saturating_sub(amount, existing.amount)
            self.currency.transfer(who, self.account_id, difference, KEEP_ALIVE)
            auction.bidders.remove_bid(who)
        else:
            self.currency.transfer(who, self.account_id, amount, KEEP_ALIVE)

        evicted = auction.bidders.insert_new_bid(who, amount)
        if evicted is not None:
            self.add_claim(evicted.account, evicted.amount)

        grace_period = self.config.auction_grace_period
        if remaining_blocks < grace_period:
            auction.end_block += grace_period - remaining_blocks
            auction.is_extended = True
            self._storage.deadlines.update(nft_id, auction.end_block)

        self._deposit_event(BidAdded(nft_id=nft_id, bidder=who, amount=amount))

    @transactional
    def remove_bid(self, origin: Origin, nft_id: int) -> None:
        who = ensure_signed(origin)
        auction = self._get_auction(nft_id)

        remaining_blocks = _saturating_sub(auction.end_block, self.block_number)
        if remaining_blocks <= self.config.auction_ending_period:
            raise AuctionError(AuctionErrorKind.CANNOT_REMOVE_BID_AT_THE_END_OF_AUCTION)

        bid = auction.bidders.find_bid(who)
        if bid is None:
            raise AuctionError(AuctionErrorKind.BID_DOES_NOT_EXIST)

        self.currency.transfer(self.account_id, bid.account, bid.amount, ALLOW_DEATH)
        auction.bidders.remove_bid(who)

        self._deposit_event(BidRemoved(nft_id=nft_id, bidder=who, amount=bid.amount))

    @transactional
    def buy_it_now(self, origin: Origin, nft_id: int) -> None:
        who = ensure_signed(origin)
        auction = self._get_auction(nft_id)
        amount = auction.buy_it_price
        if amount is None:
            raise AuctionError(AuctionErrorKind.AUCTION_DOES_NOT_SUPPORT_BUY_IT_NOW)
        if not self.has_started(self.block_number, auction.start_block):
            raise AuctionError(AuctionErrorKind.AUCTION_NOT_STARTED)

        highest = auction.bidders.get_highest_bid()
        if highest is not None and amount <= highest.amount:
            raise AuctionError(
                AuctionErrorKind.CANNOT_BUY_IT_WHEN_A_BID_IS_HIGHER_THAN_BUY_IT_PRICE
            )

        self.close_auction(nft_id, auction, who, amount, who)
        self.remove_auction(nft_id, auction)

        self._deposit_event(AuctionCompleted(nft_id=nft_id, new_owner=who, amount=amount))

    @transactional
    def complete_auction(self, origin: Origin, nft_id: int) -> None:
        ensure_root(origin)
        auction = self._get_auction(nft_id)

        new_owner = None
        amount = None
        winner: Optional[Bid] = auction.bidders.remove_highest_bid()
        if winner is not None:
            new_owner, amount = winner.account, winner.amount
            self.close_auction(nft_id, auction, winner.account, winner.amount, None)

        self.remove_auction(nft_id, auction)
        self._deposit_event(
            AuctionCompleted(nft_id=nft_id, new_owner=new_owner, amount=amount)
        )

    @transactional
    def claim(self, origin: Origin) -> None:
        who = ensure_signed(origin)
        amount = self._storage.claims.get(who)
        if amount is None:
            raise AuctionError(AuctionErrorKind.CLAIM_DOES_NOT_EXIST)

        self.currency.transfer(self.account_id, who, amount, ALLOW_DEATH)
        del self._storage.claims[who]

        self._deposit_event(BalanceClaimed(account=who, amount=amount))

    def close_auction(
        self,
        nft_id: int,
        auction: AuctionData,
        new_owner: Any,
        price: int,
        balance_source: Any,
    ) -> None:
        """Pay the marketplace fee and the creator, then hand the NFT over.

        Funds come from ``balance_source``, or from the pallet's pot when it is None.
        """
        marketplace = self.marketplace_handler.get_marketplace(auction.marketplace_id)
        if marketplace is None:
            raise AuctionError(AuctionErrorKind.UNKNOWN_MARKETPLACE)

        to_marketplace = min(price * marketplace.commission_fee, BALANCE_MAX) // 100
        to_auctioneer = _saturating_sub(price, to_marketplace)

        if balance_source is None:
            existence = KEEP_ALIVE
            balance_source = self.account_id
        else:
            existence = ALLOW_DEATH

        self.currency.transfer(balance_source, marketplace.owner, to_marketplace, existence)
        self.currency.transfer(balance_source, auction.creator, to_auctioneer, existence)

        self.nft_handler.set_owner(nft_id, new_owner)
        self.nft_handler.set_listed_for_sale(nft_id, False)

    def remove_auction(self, nft_id: int, auction: AuctionData) -> None:
        """Drop the auction and its deadline, turning remaining bids into claims."""
        self._storage.deadlines.remove(nft_id)
        for bid in auction.bidders:
            self.add_claim(bid.account, bid.amount)
        self._storage.auctions.pop(nft_id, None)

    def add_claim(self, account: Any, amount: int) -> None:
        """Record a refundable amount for ``account``.

        An account that already holds a claim keeps its existing amount.
        """
        self._storage.claims.setdefault(account, amount)

    @staticmethod
    def has_started(now: int, start_block: int) -> bool:
        return now >= start_block