"""Member lifecycle — every action that changes the billable seat count.

Each action commits the member change first and then reconciles the
subscription quantity. A failed reconciliation is carried back in the
result as a warning; the member change is never undone because of it.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import BillingSetupRequired, DuplicateMembership, InvalidMember
from app.models.account import Account, AccountCreate, AccountStatus, normalize_email
from app.models.base import utcnow
from app.services.billing import BillingGateway
from app.services.feed import FeedBus, FeedEvent
from app.services.ledger import lock_accounts, lock_company, release_member_points
from app.services.onboarding import ensure_billing_before_first_member
from app.services.platform_settings import SettingsProvider
from app.services.seats import ReconcileResult, reconcile_subscription_quantity

logger = logging.getLogger(__name__)


@dataclass
class MemberChangeResult:
    account: Account
    sync: ReconcileResult | None = None

    @property
    def sync_warning(self) -> str | None:
        if self.sync is None or self.sync.warning is None:
            return None
        return str(self.sync.warning)


@dataclass
class SkippedRow:
    email: str
    reason: str


@dataclass
class BulkCreateResult:
    created: list[Account] = field(default_factory=list)
    skipped: list[SkippedRow] = field(default_factory=list)
    sync: ReconcileResult | None = None


def _publish(bus: FeedBus | None, company_id: uuid.UUID, reason: str) -> None:
    if bus is not None:
        bus.publish(FeedEvent(company_id=company_id, reason=reason))


async def _find_by_email(
    session: AsyncSession, company_id: uuid.UUID, email: str
) -> Account | None:
    result = await session.execute(
        select(Account).where(Account.company_id == company_id, Account.email == email)
    )
    return result.scalar_one_or_none()


def _duplicate_error(existing: Account) -> DuplicateMembership:
    if existing.status == AccountStatus.DEACTIVATED:
        return DuplicateMembership(
            f"{existing.email} was removed from this company; reactivate the member instead"
        )
    return DuplicateMembership(f"{existing.email} is already a member of this company")


def _new_account(
    company_id: uuid.UUID, data: AccountCreate, invited_by: uuid.UUID | None
) -> Account:
    now = utcnow()
    return Account(
        company_id=company_id,
        email=normalize_email(data.email),
        display_name=data.display_name,
        department=data.department,
        is_admin=data.is_admin,
        monthly_limit=data.monthly_limit,
        invited_by=invited_by,
        status=AccountStatus.ACTIVE if data.activate else AccountStatus.INVITED,
        activated_at=now if data.activate else None,
    )


async def _load_member(
    session: AsyncSession, company_id: uuid.UUID, account_id: uuid.UUID
) -> Account:
    account = await session.get(Account, account_id, populate_existing=True)
    if account is None or account.company_id != company_id:
        raise InvalidMember("Member not found in this company")
    return account


# ── Invite / create ──────────────────────────────────────────

async def invite_member(
    session: AsyncSession,
    *,
    company_id: uuid.UUID,
    data: AccountCreate,
    billing: BillingGateway,
    settings_provider: SettingsProvider,
    invited_by: uuid.UUID | None = None,
    bus: FeedBus | None = None,
) -> MemberChangeResult:
    """Create one member.

    Raises DuplicateMembership, or BillingSetupRequired when the company must
    complete checkout first (no account is created in that case).
    """
    email = normalize_email(data.email)
    existing = await _find_by_email(session, company_id, email)
    if existing is not None:
        raise _duplicate_error(existing)

    if not data.is_admin:
        gate = await ensure_billing_before_first_member(
            session,
            company_id,
            billing,
            settings_provider,
            seats_to_add=1,
            pending_member=data,
            invited_by=invited_by,
        )
        if gate.needs_billing_setup:
            raise BillingSetupRequired(gate.checkout_url or "", gate.session_id)

    account = _new_account(company_id, data, invited_by)
    session.add(account)
    await session.commit()
    await session.refresh(account)
    logger.info(
        "Member %s (%s) added to company %s as %s",
        account.id, email, company_id, account.status,
    )

    sync = await reconcile_subscription_quantity(session, company_id, billing)
    _publish(bus, company_id, "member.added")
    return MemberChangeResult(account=account, sync=sync)


async def bulk_create_members(
    session: AsyncSession,
    *,
    company_id: uuid.UUID,
    rows: list[AccountCreate],
    billing: BillingGateway,
    settings_provider: SettingsProvider,
    invited_by: uuid.UUID | None = None,
    bus: FeedBus | None = None,
) -> BulkCreateResult:
    """Create already-parsed import rows, skipping duplicates, one sync at the end."""
    result = BulkCreateResult()
    pending: list[AccountCreate] = []
    seen: set[str] = set()

    for row in rows:
        email = normalize_email(row.email)
        if email in seen:
            result.skipped.append(SkippedRow(email=email, reason="duplicate in import"))
            continue
        seen.add(email)
        existing = await _find_by_email(session, company_id, email)
        if existing is not None:
            result.skipped.append(SkippedRow(email=email, reason=_duplicate_error(existing).message))
            continue
        pending.append(row)

    billable_rows = sum(1 for row in pending if not row.is_admin)
    if billable_rows:
        gate = await ensure_billing_before_first_member(
            session,
            company_id,
            billing,
            settings_provider,
            seats_to_add=billable_rows,
            pending_members=pending,
            invited_by=invited_by,
        )
        if gate.needs_billing_setup:
            raise BillingSetupRequired(gate.checkout_url or "", gate.session_id)

    if not pending:
        return result

    for row in pending:
        account = _new_account(company_id, row, invited_by)
        session.add(account)
        result.created.append(account)
    await session.commit()
    for account in result.created:
        await session.refresh(account)
    logger.info(
        "Bulk import for company %s: %d created, %d skipped",
        company_id, len(result.created), len(result.skipped),
    )

    result.sync = await reconcile_subscription_quantity(session, company_id, billing)
    _publish(bus, company_id, "member.added")
    return result


# ── Status transitions ───────────────────────────────────────

async def activate_member(
    session: AsyncSession,
    *,
    company_id: uuid.UUID,
    account_id: uuid.UUID,
    billing: BillingGateway,
    auth_user_id: str | None = None,
) -> MemberChangeResult:
    """First login: invited -> active. Already active accounts are a no-op."""
    account = await _load_member(session, company_id, account_id)
    if account.status == AccountStatus.DEACTIVATED:
        raise InvalidMember("Member has been removed from this company")
    if account.status == AccountStatus.ACTIVE:
        return MemberChangeResult(account=account)

    now = utcnow()
    account.status = AccountStatus.ACTIVE
    account.activated_at = now
    account.updated_at = now
    if auth_user_id:
        account.auth_user_id = auth_user_id
    session.add(account)
    await session.commit()
    await session.refresh(account)
    logger.info("Member %s activated in company %s", account_id, company_id)

    sync = await reconcile_subscription_quantity(session, company_id, billing)
    return MemberChangeResult(account=account, sync=sync)


async def deactivate_member(
    session: AsyncSession,
    *,
    company_id: uuid.UUID,
    account_id: uuid.UUID,
    billing: BillingGateway,
    bus: FeedBus | None = None,
) -> MemberChangeResult:
    """Remove a member: balance back to the pool, status deactivated, sync seats."""
    try:
        company = await lock_company(session, company_id)
        accounts = await lock_accounts(session, company_id, [account_id])
        account = accounts.get(account_id)
        if account is None:
            raise InvalidMember("Member not found in this company")
        if account.status == AccountStatus.DEACTIVATED:
            raise InvalidMember("Member has already been removed")

        if account.is_admin:
            other_admins = await session.execute(
                select(func.count())
                .select_from(Account)
                .where(
                    Account.company_id == company_id,
                    Account.is_admin == True,  # noqa: E712
                    Account.status == AccountStatus.ACTIVE,
                    Account.id != account_id,
                )
            )
            if other_admins.scalar_one() == 0:
                raise InvalidMember("Cannot remove the last admin of a company")

        returned = release_member_points(company, account)
        now = utcnow()
        account.status = AccountStatus.DEACTIVATED
        account.deactivated_at = now
        account.updated_at = now
        company.updated_at = now
        session.add_all([company, account])
        if returned is not None:
            session.add(returned)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    await session.refresh(account)
    logger.info(
        "Member %s removed from company %s, %d points returned to pool",
        account_id, company_id, returned.points if returned else 0,
    )
    sync = await reconcile_subscription_quantity(session, company_id, billing)
    _publish(bus, company_id, "member.removed")
    return MemberChangeResult(account=account, sync=sync)


async def reactivate_member(
    session: AsyncSession,
    *,
    company_id: uuid.UUID,
    account_id: uuid.UUID,
    billing: BillingGateway,
    settings_provider: SettingsProvider,
    bus: FeedBus | None = None,
) -> MemberChangeResult:
    account = await _load_member(session, company_id, account_id)
    if account.status != AccountStatus.DEACTIVATED:
        raise InvalidMember("Only removed members can be reactivated")

    if not account.is_admin:
        gate = await ensure_billing_before_first_member(
            session,
            company_id,
            billing,
            settings_provider,
            seats_to_add=1,
            reactivate_account_ids=[account.id],
        )
        if gate.needs_billing_setup:
            raise BillingSetupRequired(gate.checkout_url or "", gate.session_id)

    now = utcnow()
    account.status = AccountStatus.ACTIVE
    account.deactivated_at = None
    account.activated_at = now
    account.updated_at = now
    session.add(account)
    await session.commit()
    await session.refresh(account)
    logger.info("Member %s reactivated in company %s", account_id, company_id)

    sync = await reconcile_subscription_quantity(session, company_id, billing)
    _publish(bus, company_id, "member.added")
    return MemberChangeResult(account=account, sync=sync)
