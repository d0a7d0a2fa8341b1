"""Ledger primitives — atomic points movements with row-level locking.

Every operation follows the same pattern:

1. Validate the request shape (amount, parties)
2. SELECT ... FOR UPDATE the rows that will change (accounts ordered by id)
3. Re-check balances / allowance against the locked rows
4. Mutate balances and append exactly one PointTransaction
5. Commit, or roll back everything on any error

Because the checks run after the locks are taken, two concurrent transfers
from the same sender serialize on the sender row and cannot jointly overdraw
the balance or the monthly allowance.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from enum import StrEnum

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import InsufficientBalance, InvalidAmount, InvalidMember
from app.models.account import Account, AccountStatus
from app.models.base import utcnow
from app.models.company import Company
from app.models.point_transaction import PointTransaction, TransactionKind
from app.services.allowance import available_allowance, ensure_within_allowance
from app.services.platform_settings import SettingsProvider

logger = logging.getLogger(__name__)


class PoolOperation(StrEnum):
    GRANT = "grant"
    DEDUCT = "deduct"


@dataclass
class TransferOutcome:
    transaction_id: uuid.UUID
    sender_id: uuid.UUID
    recipient_id: uuid.UUID
    points: int
    new_sender_balance: int
    new_recipient_balance: int


@dataclass
class AdjustmentOutcome:
    transaction_id: uuid.UUID
    points: int
    account_balance: int | None
    pool_balance: int


# ── Helpers ──────────────────────────────────────────────────

def validate_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount(f"Amount must be a positive integer, got {amount!r}")


async def lock_company(session: AsyncSession, company_id: uuid.UUID) -> Company:
    result = await session.execute(
        select(Company)
        .where(Company.id == company_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    company = result.scalar_one_or_none()
    if company is None:
        raise InvalidMember("Company not found")
    return company


async def lock_accounts(
    session: AsyncSession, company_id: uuid.UUID, account_ids: list[uuid.UUID]
) -> dict[uuid.UUID, Account]:
    # Fixed lock order avoids deadlocks between opposite-direction transfers
    result = await session.execute(
        select(Account)
        .where(Account.company_id == company_id, Account.id.in_(account_ids))  # type: ignore[attr-defined]
        .order_by(Account.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return {a.id: a for a in result.scalars().all()}


def _require_member(
    account: Account | None, role: str, *, active_only: bool = True
) -> Account:
    if account is None:
        raise InvalidMember(f"{role} is not a member of this company")
    if active_only and account.status != AccountStatus.ACTIVE:
        raise InvalidMember(f"{role} is not an active member of this company")
    if account.status == AccountStatus.DEACTIVATED:
        raise InvalidMember(f"{role} has been removed from this company")
    return account


# ── Peer transfer (atomic) ───────────────────────────────────

async def transfer_points(
    session: AsyncSession,
    *,
    sender_id: uuid.UUID,
    recipient_id: uuid.UUID,
    company_id: uuid.UUID,
    amount: int,
    description: str,
    settings_provider: SettingsProvider,
) -> TransferOutcome:
    """Move ``amount`` points from sender to recipient as one recognition.

    Raises InvalidAmount, InvalidMember, AllowanceExceeded or
    InsufficientBalance; in every error case nothing is committed.
    """
    validate_amount(amount)
    if sender_id == recipient_id:
        raise InvalidMember("You cannot give points to yourself")

    try:
        company = await session.get(Company, company_id, populate_existing=True)
        if company is None:
            raise InvalidMember("Company not found")

        accounts = await lock_accounts(session, company_id, [sender_id, recipient_id])
        sender = _require_member(accounts.get(sender_id), "Sender")
        recipient = _require_member(accounts.get(recipient_id), "Recipient")

        # Commit-time check, same computation as the pre-flight check
        allowance = await available_allowance(session, sender, company, settings_provider)
        ensure_within_allowance(amount, allowance)
        if sender.points < amount:
            raise InsufficientBalance(
                f"Not enough points: {amount} requested, {sender.points} available",
                available=sender.points,
                requested=amount,
            )

        now = utcnow()
        sender.points -= amount
        sender.updated_at = now
        recipient.points += amount
        recipient.updated_at = now

        txn = PointTransaction(
            company_id=company_id,
            sender_id=sender_id,
            recipient_id=recipient_id,
            points=amount,
            description=description,
            kind=TransactionKind.RECOGNITION,
        )
        session.add_all([sender, recipient, txn])
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        "Transfer %d points %s -> %s (company=%s, txn=%s), sender balance %d",
        amount,
        sender_id,
        recipient_id,
        company_id,
        txn.id,
        sender.points,
    )
    return TransferOutcome(
        transaction_id=txn.id,
        sender_id=sender_id,
        recipient_id=recipient_id,
        points=amount,
        new_sender_balance=sender.points,
        new_recipient_balance=recipient.points,
    )


# ── Admin grant / removal (company pool <-> member) ──────────

async def grant_points(
    session: AsyncSession,
    *,
    company_id: uuid.UUID,
    account_id: uuid.UUID,
    amount: int,
    description: str,
    initiated_by: uuid.UUID | None = None,
) -> AdjustmentOutcome:
    """Move points from the company pool to a member.

    Admin grants are not recognition and never count against anyone's
    monthly allowance.
    """
    validate_amount(amount)
    try:
        company = await lock_company(session, company_id)
        accounts = await lock_accounts(session, company_id, [account_id])
        account = _require_member(accounts.get(account_id), "Member", active_only=False)

        if company.points_balance < amount:
            raise InsufficientBalance(
                f"Insufficient company points balance: {amount} requested, "
                f"{company.points_balance} available",
                available=company.points_balance,
                requested=amount,
            )

        now = utcnow()
        company.points_balance -= amount
        company.updated_at = now
        account.points += amount
        account.updated_at = now

        txn = PointTransaction(
            company_id=company_id,
            sender_id=None,
            recipient_id=account_id,
            points=amount,
            description=description,
            kind=TransactionKind.ADMIN_GRANT,
            initiated_by=initiated_by,
        )
        session.add_all([company, account, txn])
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        "Granted %d points from pool to %s (company=%s, by=%s)",
        amount, account_id, company_id, initiated_by,
    )
    return AdjustmentOutcome(
        transaction_id=txn.id,
        points=amount,
        account_balance=account.points,
        pool_balance=company.points_balance,
    )


async def remove_points(
    session: AsyncSession,
    *,
    company_id: uuid.UUID,
    account_id: uuid.UUID,
    amount: int,
    description: str,
    initiated_by: uuid.UUID | None = None,
) -> AdjustmentOutcome:
    """Move points from a member back to the company pool."""
    validate_amount(amount)
    try:
        company = await lock_company(session, company_id)
        accounts = await lock_accounts(session, company_id, [account_id])
        account = _require_member(accounts.get(account_id), "Member", active_only=False)

        if account.points < amount:
            raise InsufficientBalance(
                f"Member has {account.points} points, cannot remove {amount}",
                available=account.points,
                requested=amount,
            )

        now = utcnow()
        account.points -= amount
        account.updated_at = now
        company.points_balance += amount
        company.updated_at = now

        txn = PointTransaction(
            company_id=company_id,
            sender_id=account_id,
            recipient_id=None,
            points=amount,
            description=description,
            kind=TransactionKind.ADMIN_REMOVAL,
            initiated_by=initiated_by,
        )
        session.add_all([company, account, txn])
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        "Removed %d points from %s to pool (company=%s, by=%s)",
        amount, account_id, company_id, initiated_by,
    )
    return AdjustmentOutcome(
        transaction_id=txn.id,
        points=amount,
        account_balance=account.points,
        pool_balance=company.points_balance,
    )


# ── Company pool (platform admin) ────────────────────────────

async def adjust_company_pool(
    session: AsyncSession,
    *,
    company_id: uuid.UUID,
    amount: int,
    operation: PoolOperation,
    description: str,
    initiated_by: uuid.UUID | None = None,
) -> AdjustmentOutcome:
    validate_amount(amount)
    try:
        company = await lock_company(session, company_id)
        if operation == PoolOperation.DEDUCT and company.points_balance < amount:
            raise InsufficientBalance(
                f"Insufficient company points balance: {amount} requested, "
                f"{company.points_balance} available",
                available=company.points_balance,
                requested=amount,
            )

        delta = amount if operation == PoolOperation.GRANT else -amount
        company.points_balance += delta
        company.updated_at = utcnow()

        txn = PointTransaction(
            company_id=company_id,
            points=amount,
            description=description,
            kind=(
                TransactionKind.POOL_GRANT
                if operation == PoolOperation.GRANT
                else TransactionKind.POOL_DEDUCTION
            ),
            initiated_by=initiated_by,
        )
        session.add_all([company, txn])
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        "Company %s pool %s %d points, balance now %d",
        company_id, operation, amount, company.points_balance,
    )
    return AdjustmentOutcome(
        transaction_id=txn.id,
        points=amount,
        account_balance=None,
        pool_balance=company.points_balance,
    )


def release_member_points(company: Company, account: Account) -> PointTransaction | None:
    """Return a leaving member's balance to the pool.

    Mutates the (already locked) rows and returns the ledger entry to add;
    the caller commits as part of the deactivation.
    """
    if account.points <= 0:
        return None
    returned = account.points
    company.points_balance += returned
    account.points = 0
    return PointTransaction(
        company_id=company.id,
        sender_id=account.id,
        recipient_id=None,
        points=returned,
        description="Points returned to company after member removal",
        kind=TransactionKind.MEMBER_REMOVAL_RETURN,
    )
