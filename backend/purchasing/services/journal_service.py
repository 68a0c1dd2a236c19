# Overview: Default accounting journal; balanced double-entry postings for purchasing.

"""
Accounting Journal

APPEND-ONLY: entries are never edited or deleted. A voided payment is
undone with a new entry whose lines mirror the original (debits become
credits) and whose reverses_entry_id points at it.

POSTING RULES:
    receipt          Dr Inventory (1300)       Cr Accounts Payable (2100)
    return           Dr Accounts Payable       Cr Inventory
    payment          Dr Accounts Payable       Cr Cash (1100) / Bank (1200)
    refund received  Dr Cash / Bank            Cr Accounts Payable
    reversal         mirror of the reversed entry

Every post_* call commits its own entry and returns the entry id.
"""

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..models import Account, JournalEntry, JournalLine
from purchasing.errors import NotFoundError, SideEffectError
from purchasing.time_utils import utcnow
from .concurrency import read_with_retry


# =============================================================================
# STANDARD ACCOUNTS
# =============================================================================

ACCOUNT_CASH = "1100"
ACCOUNT_BANK = "1200"
ACCOUNT_INVENTORY = "1300"
ACCOUNT_PAYABLE = "2100"

STANDARD_ACCOUNTS = {
    ACCOUNT_CASH: ("Cash", "asset"),
    ACCOUNT_BANK: ("Bank", "asset"),
    ACCOUNT_INVENTORY: ("Inventory", "asset"),
    ACCOUNT_PAYABLE: ("Accounts Payable", "liability"),
}

REF_PURCHASE_RECEIPT = "purchase_receipt"
REF_PURCHASE_RETURN = "purchase_return"
REF_PURCHASE_PAYMENT = "purchase_payment"
REF_PAYMENT_REVERSAL = "payment_reversal"
REF_REFUND_RECEIVED = "refund_received"


def _resolve_accounts(codes) -> dict[str, Account]:
    """
    Load accounts by code in one retried read, then create missing standard ones.

    Must run before any other row is staged in the session.
    """
    codes = sorted(set(codes))
    found = read_with_retry(
        lambda: db.session.query(Account).filter(Account.code.in_(codes)).all()
    )
    accounts = {account.code: account for account in found}
    for code in codes:
        if code in accounts:
            continue
        if code not in STANDARD_ACCOUNTS:
            raise NotFoundError(f"Account {code} not found")
        name, account_type = STANDARD_ACCOUNTS[code]
        account = Account(code=code, name=name, account_type=account_type)
        db.session.add(account)
        accounts[code] = account
    db.session.flush()
    return accounts


def ensure_account(code: str) -> Account:
    """Idempotent: return the standard account for code, creating it if missing."""
    return _resolve_accounts([code])[code]


def cash_account_for(method: str | None) -> str:
    """Cash-like methods settle through Cash; everything else through Bank."""
    if method == "cash":
        return ACCOUNT_CASH
    return ACCOUNT_BANK


def _post_entry(
    *,
    reference_type: str,
    reference_id: int,
    purchase_id: int | None,
    description: str,
    entry_date: date,
    actor: str | None,
    lines: list[tuple[str, int, int]],
    reverses_entry_id: int | None = None,
) -> int:
    """
    Insert a balanced entry. lines are (account_code, debit_cents, credit_cents).

    Raises:
        SideEffectError: entry does not balance or has a non-positive amount
    """
    total_debit = sum(d for _, d, _ in lines)
    total_credit = sum(c for _, _, c in lines)
    if total_debit != total_credit:
        raise SideEffectError(
            f"Journal entry for {reference_type} {reference_id} does not balance "
            f"(debit={total_debit}, credit={total_credit})"
        )
    if total_debit <= 0:
        raise SideEffectError(f"Journal entry for {reference_type} {reference_id} has no amount")

    accounts = _resolve_accounts(code for code, _, _ in lines)
    entry = JournalEntry(
        entry_date=entry_date,
        description=description,
        reference_type=reference_type,
        reference_id=reference_id,
        purchase_id=purchase_id,
        reverses_entry_id=reverses_entry_id,
        created_by=actor,
        created_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()

    for code, debit, credit in lines:
        db.session.add(JournalLine(
            entry_id=entry.id,
            account_id=accounts[code].id,
            debit_cents=debit,
            credit_cents=credit,
        ))

    db.session.commit()
    return entry.id


def post_purchase_receipt(
    reference_id: int,
    purchase_id: int,
    counterparty_name: str,
    amount_cents: int,
    entry_date: date,
    actor: str | None,
) -> int:
    return _post_entry(
        reference_type=REF_PURCHASE_RECEIPT,
        reference_id=reference_id,
        purchase_id=purchase_id,
        description=f"Goods received from {counterparty_name} (purchase #{purchase_id})",
        entry_date=entry_date,
        actor=actor,
        lines=[
            (ACCOUNT_INVENTORY, amount_cents, 0),
            (ACCOUNT_PAYABLE, 0, amount_cents),
        ],
    )


def post_purchase_return(
    reference_id: int,
    purchase_id: int,
    counterparty_name: str,
    amount_cents: int,
    entry_date: date,
    actor: str | None,
) -> int:
    return _post_entry(
        reference_type=REF_PURCHASE_RETURN,
        reference_id=reference_id,
        purchase_id=purchase_id,
        description=f"Goods returned to {counterparty_name} (purchase #{purchase_id})",
        entry_date=entry_date,
        actor=actor,
        lines=[
            (ACCOUNT_PAYABLE, amount_cents, 0),
            (ACCOUNT_INVENTORY, 0, amount_cents),
        ],
    )


def post_payment(
    reference_id: int,
    purchase_id: int,
    counterparty_name: str,
    amount_cents: int,
    entry_date: date,
    actor: str | None,
    payment_method: str | None = None,
) -> int:
    return _post_entry(
        reference_type=REF_PURCHASE_PAYMENT,
        reference_id=reference_id,
        purchase_id=purchase_id,
        description=f"Payment to {counterparty_name} (purchase #{purchase_id})",
        entry_date=entry_date,
        actor=actor,
        lines=[
            (ACCOUNT_PAYABLE, amount_cents, 0),
            (cash_account_for(payment_method), 0, amount_cents),
        ],
    )


def post_payment_reversal(
    reference_id: int,
    purchase_id: int,
    counterparty_name: str,
    amount_cents: int,
    entry_date: date,
    actor: str | None,
    reverses_entry_id: int | None = None,
) -> int:
    """
    Reverse a payment entry by mirroring its lines.

    The original entry is left untouched. amount_cents must match the
    original entry's total.
    """
    original = None
    if reverses_entry_id:
        original = read_with_retry(lambda: db.session.get(JournalEntry, reverses_entry_id))
    if original is None:
        raise SideEffectError(f"Journal entry {reverses_entry_id} to reverse not found")

    lines = [(line.account.code, line.credit_cents, line.debit_cents) for line in original.lines]
    original_total = sum(d for _, d, _ in lines)
    if original_total != amount_cents:
        raise SideEffectError(
            f"Reversal amount {amount_cents} does not match entry {original.id} total {original_total}"
        )

    return _post_entry(
        reference_type=REF_PAYMENT_REVERSAL,
        reference_id=reference_id,
        purchase_id=purchase_id,
        description=f"Reversal of payment to {counterparty_name} (purchase #{purchase_id})",
        entry_date=entry_date,
        actor=actor,
        lines=lines,
        reverses_entry_id=original.id,
    )


def post_refund_received(
    reference_id: int,
    purchase_id: int,
    counterparty_name: str,
    amount_cents: int,
    entry_date: date,
    actor: str | None,
    refund_method: str | None = None,
) -> int:
    return _post_entry(
        reference_type=REF_REFUND_RECEIVED,
        reference_id=reference_id,
        purchase_id=purchase_id,
        description=f"Refund received from {counterparty_name} (purchase #{purchase_id})",
        entry_date=entry_date,
        actor=actor,
        lines=[
            (cash_account_for(refund_method), amount_cents, 0),
            (ACCOUNT_PAYABLE, 0, amount_cents),
        ],
    )


def get_account_balance(code: str) -> int:
    """Debit-positive balance of an account across all entries."""
    debit, credit = read_with_retry(
        lambda: db.session.query(
            db.func.coalesce(db.func.sum(JournalLine.debit_cents), 0),
            db.func.coalesce(db.func.sum(JournalLine.credit_cents), 0),
        )
        .select_from(JournalLine)
        .join(Account, JournalLine.account_id == Account.id)
        .filter(Account.code == code)
        .one()
    )
    return int(debit) - int(credit)
