import pytest

from chainpallets.capsules import (
    CapsuleConfig,
    CapsuleCreated,
    CapsuleData,
    CapsuleDeposit,
    CapsuleError,
    CapsuleErrorKind,
    CapsuleFundsAdded,
    CapsuleGenesis,
    CapsuleIpfsReferenceChanged,
    CapsuleMintFeeChanged,
    CapsuleRemoved,
    CapsulesPallet,
)
from chainpallets.runtime import (
    BadOrigin,
    Balances,
    DispatchError,
    InsufficientBalance,
    NFTHandler,
    Origin,
)

ALICE = 1
BOB = 2


def build(caps=(), genesis=None):
    balances = Balances(existential_deposit=1, endowed=list(caps))
    nfts = NFTHandler(currency=balances, mint_fee=10, min_ipfs_len=1, max_ipfs_len=5)
    if genesis is None:
        genesis = CapsuleGenesis(capsule_mint_fee=1000)
    pallet = CapsulesPallet(
        CapsuleConfig(min_ipfs_len=1, max_ipfs_len=5, pallet_id=b"mockcaps"),
        balances,
        nfts,
        genesis,
    )
    return pallet


def create_nft_fast(pallet, owner):
    return pallet.nft_handler.create_nft(owner, bytes([50]), None)


def create_capsule_fast(pallet, owner):
    nft_id = create_nft_fast(pallet, owner)
    pallet.create_from_nft(Origin.signed(owner), nft_id, bytes([60]))
    return nft_id


def expect_error(kind, func, *args):
    with pytest.raises(CapsuleError) as info:
        func(*args)
    assert info.value.kind is kind


def test_create_happy():
    pallet = build([(ALICE, 10000)])
    ref = bytes([60])
    assert pallet.capsules.get(0) is None
    assert pallet.ledgers.get(ALICE) is None

    nft_id = pallet.create(Origin.signed(ALICE), bytes([50]), ref, None)
    assert nft_id == 0
    assert pallet.capsules.get(0) == CapsuleData(ALICE, ref)
    assert pallet.ledgers.get(ALICE) == [(0, 1000)]
    assert pallet.nft_handler.is_converted_to_capsule(0) is True
    assert pallet.events[-2:] == [
        CapsuleDeposit(balance=1000),
        CapsuleCreated(owner=ALICE, nft_id=0, frozen_balance=1000),
    ]


def test_create_unhappy():
    pallet = build([(ALICE, 10000), (BOB, 101)])
    bob = Origin.signed(BOB)
    expect_error(CapsuleErrorKind.TOO_SHORT_IPFS_REFERENCE, pallet.create, bob, b"", b"", None)
    expect_error(
        CapsuleErrorKind.TOO_LONG_IPFS_REFERENCE,
        pallet.create,
        bob,
        b"",
        bytes([1, 2, 3, 4, 5, 6, 7]),
        None,
    )
    with pytest.raises(InsufficientBalance):
        pallet.create(bob, b"", bytes([1]), None)
    with pytest.raises(DispatchError) as info:
        pallet.create(Origin.signed(ALICE), b"", bytes([1]), None)
    assert info.value.name == "IPFSReferenceIsTooShort"
    assert pallet.capsules == {}
    assert pallet.currency.free_balance(ALICE) == 10000
    assert pallet.currency.free_balance(BOB) == 101


def test_create_caps_transfer():
    pallet = build([(ALICE, 10001)])
    capsule_fee = pallet.capsule_mint_fee
    nft_fee = pallet.nft_handler.mint_fee
    balance = pallet.currency.free_balance(ALICE)
    assert pallet.currency.free_balance(pallet.account_id) == 0

    pallet.create(Origin.signed(ALICE), bytes([50]), bytes([25]), None)
    assert pallet.currency.free_balance(ALICE) == balance - capsule_fee - nft_fee
    assert pallet.currency.free_balance(pallet.account_id) == capsule_fee


def test_create_transactional():
    pallet = build([(ALICE, 1002)])
    balance = pallet.currency.free_balance(ALICE)
    assert balance > pallet.capsule_mint_fee
    assert balance < pallet.capsule_mint_fee + pallet.nft_handler.mint_fee

    with pytest.raises(DispatchError) as info:
        pallet.create(Origin.signed(ALICE), b"", bytes([1]), None)
    assert info.value.name == "IPFSReferenceIsTooShort"
    assert pallet.currency.free_balance(ALICE) == balance
    assert pallet.currency.free_balance(pallet.account_id) == 0
    assert pallet.events == []


def test_create_from_nft_happy():
    pallet = build([(ALICE, 10000)])
    nft_id = create_nft_fast(pallet, ALICE)
    ref = bytes([60])
    assert pallet.capsules.get(nft_id) is None
    assert pallet.ledgers.get(ALICE) is None

    pallet.create_from_nft(Origin.signed(ALICE), nft_id, ref)
    assert pallet.capsules.get(nft_id) == CapsuleData(ALICE, ref)
    assert pallet.ledgers.get(ALICE) == [(nft_id, 1000)]


def test_create_from_nft_unhappy():
    pallet = build([(ALICE, 10000), (BOB, 101)])
    alice = Origin.signed(ALICE)
    bob = Origin.signed(BOB)

    nft_id = create_nft_fast(pallet, ALICE)
    expect_error(CapsuleErrorKind.TOO_SHORT_IPFS_REFERENCE, pallet.create_from_nft, alice, nft_id, b"")
    expect_error(
        CapsuleErrorKind.TOO_LONG_IPFS_REFERENCE,
        pallet.create_from_nft,
        alice,
        nft_id,
        bytes([1, 2, 3, 4, 5, 6, 7]),
    )

    bob_nft = create_nft_fast(pallet, BOB)
    expect_error(CapsuleErrorKind.NOT_OWNER, pallet.create_from_nft, alice, bob_nft, bytes([25]))

    listed = create_nft_fast(pallet, ALICE)
    pallet.nft_handler.set_listed_for_sale(listed, True)
    expect_error(CapsuleErrorKind.LISTED_FOR_SALE, pallet.create_from_nft, alice, listed, bytes([25]))

    moving = create_nft_fast(pallet, ALICE)
    pallet.nft_handler.set_in_transmission(moving, True)
    expect_error(CapsuleErrorKind.IN_TRANSMISSION, pallet.create_from_nft, alice, moving, bytes([25]))

    once = create_nft_fast(pallet, ALICE)
    pallet.create_from_nft(alice, once, bytes([25]))
    expect_error(
        CapsuleErrorKind.CAPSULE_ALREADY_EXISTS, pallet.create_from_nft, alice, once, bytes([30])
    )

    bob_second = create_nft_fast(pallet, BOB)
    with pytest.raises(InsufficientBalance):
        pallet.create_from_nft(bob, bob_second, bytes([30]))


def test_create_from_nft_unknown_and_lent():
    pallet = build([(ALICE, 10000)])
    alice = Origin.signed(ALICE)
    expect_error(CapsuleErrorKind.UNKNOWN_NFT, pallet.create_from_nft, alice, 404, bytes([1]))
    lent = create_nft_fast(pallet, ALICE)
    pallet.nft_handler.set_viewer(lent, BOB)
    expect_error(
        CapsuleErrorKind.CANNOT_CREATE_CAPSULE_FROM_LENT_NFTS,
        pallet.create_from_nft,
        alice,
        lent,
        bytes([1]),
    )


def test_create_from_nft_caps_transfer():
    pallet = build([(ALICE, 10001)])
    capsule_fee = pallet.capsule_mint_fee
    assert pallet.currency.free_balance(pallet.account_id) == 0

    nft_id = create_nft_fast(pallet, ALICE)
    balance = pallet.currency.free_balance(ALICE)
    pallet.create_from_nft(Origin.signed(ALICE), nft_id, bytes([50]))
    assert pallet.currency.free_balance(ALICE) == balance - capsule_fee
    assert pallet.currency.free_balance(pallet.account_id) == capsule_fee


def test_remove_happy():
    pallet = build([(ALICE, 10000)])
    alice = Origin.signed(ALICE)
    first = create_capsule_fast(pallet, ALICE)
    second = create_capsule_fast(pallet, ALICE)

    pallet.remove(alice, first)
    assert pallet.capsules.get(first) is None
    assert pallet.ledgers.get(ALICE) == [(second, 1000)]
    assert pallet.events[-1] == CapsuleRemoved(nft_id=first, unfrozen_balance=1000)

    pallet.remove(alice, second)
    assert pallet.capsules.get(second) is None
    assert pallet.ledgers.get(ALICE) is None


def test_remove_swaps_last_entry_into_place():
    pallet = build([(ALICE, 10000)])
    ids = [create_capsule_fast(pallet, ALICE) for _ in range(3)]
    pallet.remove(Origin.signed(ALICE), ids[0])
    assert pallet.ledgers[ALICE] == [(ids[2], 1000), (ids[1], 1000)]


def test_remove_unhappy():
    pallet = build([(ALICE, 10000), (BOB, 10000)])
    bob_nft = create_capsule_fast(pallet, BOB)
    alice_nft = create_capsule_fast(pallet, ALICE)
    alice = Origin.signed(ALICE)

    expect_error(CapsuleErrorKind.NOT_OWNER, pallet.remove, alice, bob_nft)

    pallet.currency.set_balance(pallet.account_id, 0)
    assert pallet.currency.free_balance(pallet.account_id) == 0
    with pytest.raises(InsufficientBalance):
        pallet.remove(alice, alice_nft)
    assert pallet.capsules.get(alice_nft) == CapsuleData(ALICE, bytes([60]))
    assert pallet.ledgers[ALICE] == [(alice_nft, 1000)]


def test_remove_caps_transfer():
    pallet = build([(ALICE, 10001)])
    nft_id = create_capsule_fast(pallet, ALICE)
    fee = pallet.ledgers[ALICE][0][1]
    pallet_balance = pallet.currency.free_balance(pallet.account_id)
    alice_balance = pallet.currency.free_balance(ALICE)

    pallet.remove(Origin.signed(ALICE), nft_id)
    assert pallet.currency.free_balance(ALICE) == alice_balance + fee
    assert pallet.currency.free_balance(pallet.account_id) == pallet_balance - fee


def test_add_funds_happy():
    pallet = build([(ALICE, 10000)])
    nft_id = create_capsule_fast(pallet, ALICE)
    fee = pallet.capsule_mint_fee
    assert pallet.ledgers.get(ALICE) == [(nft_id, fee)]

    pallet.add_funds(Origin.signed(ALICE), nft_id, 55)
    assert pallet.ledgers.get(ALICE) == [(nft_id, fee + 55)]
    assert pallet.events[-1] == CapsuleFundsAdded(nft_id=nft_id, balance=55)


def test_add_funds_unhappy():
    pallet = build([(ALICE, 10000), (BOB, 10000)])
    bob_nft = create_capsule_fast(pallet, BOB)
    alice_nft = create_capsule_fast(pallet, ALICE)
    alice = Origin.signed(ALICE)
    add = 10000000

    expect_error(CapsuleErrorKind.NOT_OWNER, pallet.add_funds, alice, bob_nft, add)
    with pytest.raises(InsufficientBalance):
        pallet.add_funds(alice, alice_nft, add)
    assert pallet.ledgers[ALICE] == [(alice_nft, 1000)]


def test_add_funds_caps_transfer():
    pallet = build([(ALICE, 10001)])
    nft_id = create_capsule_fast(pallet, ALICE)
    alice_balance = pallet.currency.free_balance(ALICE)
    pallet_balance = pallet.currency.free_balance(pallet.account_id)

    pallet.add_funds(Origin.signed(ALICE), nft_id, 1010)
    assert pallet.currency.free_balance(ALICE) == alice_balance - 1010
    assert pallet.currency.free_balance(pallet.account_id) == pallet_balance + 1010


def test_set_ipfs_reference_happy():
    pallet = build([(ALICE, 10000)])
    nft_id = create_capsule_fast(pallet, ALICE)
    old_reference = pallet.capsules[nft_id].ipfs_reference
    new_reference = bytes([67])
    assert old_reference != new_reference

    pallet.set_ipfs_reference(Origin.signed(ALICE), nft_id, new_reference)
    assert pallet.capsules[nft_id].ipfs_reference == new_reference
    assert pallet.events[-1] == CapsuleIpfsReferenceChanged(nft_id, new_reference)


def test_set_ipfs_reference_unhappy():
    pallet = build([(ALICE, 10000), (BOB, 10000)])
    alice = Origin.signed(ALICE)
    nft_id = create_capsule_fast(pallet, ALICE)

    expect_error(CapsuleErrorKind.TOO_SHORT_IPFS_REFERENCE, pallet.set_ipfs_reference, alice, nft_id, b"")
    expect_error(
        CapsuleErrorKind.TOO_LONG_IPFS_REFERENCE,
        pallet.set_ipfs_reference,
        alice,
        nft_id,
        bytes([1, 2, 3, 4, 5, 6, 7]),
    )
    bob_nft = create_capsule_fast(pallet, BOB)
    expect_error(CapsuleErrorKind.NOT_OWNER, pallet.set_ipfs_reference, alice, bob_nft, bytes([1]))
    expect_error(CapsuleErrorKind.UNKNOWN_NFT, pallet.set_ipfs_reference, alice, 404, bytes([1]))


def test_set_capsule_mint_fee_happy():
    pallet = build()
    assert pallet.capsule_mint_fee == 1000
    pallet.set_capsule_mint_fee(Origin.root(), 654)
    assert pallet.capsule_mint_fee == 654
    assert pallet.events[-1] == CapsuleMintFeeChanged(fee=654)


def test_set_capsule_mint_fee_unhappy():
    pallet = build([(ALICE, 10000)])
    with pytest.raises(BadOrigin):
        pallet.set_capsule_mint_fee(Origin.signed(ALICE), 654)
    assert pallet.capsule_mint_fee == 1000


def test_genesis_registers_capsules():
    ledger = [(1, 1000)]
    pallet = build(
        genesis=CapsuleGenesis(
            capsule_mint_fee=1000,
            capsules=[(1, ALICE, bytes([20]))],
            ledgers=[(ALICE, ledger)],
        )
    )
    assert pallet.ledgers.get(ALICE) == ledger
    assert pallet.capsules.get(1) == CapsuleData(ALICE, bytes([20]))
    assert pallet.capsule_mint_fee == 1000


def test_upgrade_sets_version_1_fee():
    pallet = build()
    del pallet.capsule_mint_fee
    assert pallet.capsule_mint_fee == 0
    assert pallet.on_runtime_upgrade() == 1
    assert pallet.capsule_mint_fee == 1000000000000000000000


def test_upgrade_from_latest_to_latest():
    pallet = build()
    assert pallet.on_runtime_upgrade() == 0
    assert pallet.capsule_mint_fee == 1000