"""Recognition engine — the "give points" action.

Flow:
  1. Validate the request (recipients, amount)
  2. Pre-flight: total = amount x recipients must fit the sender's remaining
     allowance and balance; otherwise nothing is transferred
  3. One atomic ledger transfer per recipient, each for the full amount
  4. Collect per-recipient successes / failures (no rollback of successes)
  5. Publish a feed refresh when anything moved
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InsufficientBalance, InvalidMember, PointsError
from app.models.account import Account, AccountStatus
from app.models.company import Company
from app.services.allowance import Allowance, available_allowance, ensure_within_allowance
from app.services.feed import FeedBus, FeedEvent
from app.services.ledger import TransferOutcome, transfer_points, validate_amount
from app.services.platform_settings import SettingsProvider

logger = logging.getLogger(__name__)

INTERNAL_ERROR_CODE = "internal_error"


class GiveStatus(StrEnum):
    SUCCEEDED = "succeeded"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class RecipientFailure:
    recipient_id: uuid.UUID
    code: str
    message: str


@dataclass
class GivePointsResult:
    amount_per_recipient: int
    succeeded: list[TransferOutcome] = field(default_factory=list)
    failed: list[RecipientFailure] = field(default_factory=list)

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @property
    def total_points(self) -> int:
        return self.amount_per_recipient * self.succeeded_count

    @property
    def status(self) -> GiveStatus:
        if not self.failed:
            return GiveStatus.SUCCEEDED
        if self.succeeded:
            return GiveStatus.PARTIAL
        return GiveStatus.FAILED


def _validate_recipients(sender_id: uuid.UUID, recipient_ids: list[uuid.UUID]) -> None:
    if not recipient_ids:
        raise InvalidMember("Select at least one recipient")
    if sender_id in recipient_ids:
        raise InvalidMember("You cannot give points to yourself")
    if len(set(recipient_ids)) != len(recipient_ids):
        raise InvalidMember("Each recipient may only be listed once")


async def preflight_check(
    session: AsyncSession,
    *,
    sender_id: uuid.UUID,
    company_id: uuid.UUID,
    recipient_ids: list[uuid.UUID],
    amount_per_recipient: int,
    settings_provider: SettingsProvider,
    as_of: datetime | None = None,
) -> Allowance:
    """Soft check run before any transfer; the ledger repeats it at commit."""
    validate_amount(amount_per_recipient)
    _validate_recipients(sender_id, recipient_ids)

    company = await session.get(Company, company_id, populate_existing=True)
    sender = await session.get(Account, sender_id, populate_existing=True)
    if company is None or sender is None or sender.company_id != company_id:
        raise InvalidMember("Sender is not a member of this company")
    if sender.status != AccountStatus.ACTIVE:
        raise InvalidMember("Sender is not an active member of this company")

    total = amount_per_recipient * len(recipient_ids)
    allowance = await available_allowance(session, sender, company, settings_provider, as_of)
    ensure_within_allowance(total, allowance)
    if sender.points < total:
        raise InsufficientBalance(
            f"Not enough points: {total} needed for {len(recipient_ids)} recipients, "
            f"{sender.points} available",
            available=sender.points,
            requested=total,
        )
    return allowance


async def give_points(
    session: AsyncSession,
    *,
    sender_id: uuid.UUID,
    company_id: uuid.UUID,
    recipient_ids: list[uuid.UUID],
    amount_per_recipient: int,
    description: str,
    settings_provider: SettingsProvider,
    bus: FeedBus,
) -> GivePointsResult:
    """Give ``amount_per_recipient`` to every recipient.

    Pre-flight errors (InvalidAmount, InvalidMember, AllowanceExceeded,
    InsufficientBalance) are raised before anything moves. After that, each
    transfer stands on its own and failures are reported per recipient.
    """
    await preflight_check(
        session,
        sender_id=sender_id,
        company_id=company_id,
        recipient_ids=recipient_ids,
        amount_per_recipient=amount_per_recipient,
        settings_provider=settings_provider,
    )

    result = GivePointsResult(amount_per_recipient=amount_per_recipient)
    for recipient_id in recipient_ids:
        try:
            outcome = await transfer_points(
                session,
                sender_id=sender_id,
                recipient_id=recipient_id,
                company_id=company_id,
                amount=amount_per_recipient,
                description=description,
                settings_provider=settings_provider,
            )
        except PointsError as exc:
            logger.warning(
                "Transfer to %s failed (%s): %s", recipient_id, exc.code, exc.message
            )
            result.failed.append(
                RecipientFailure(recipient_id=recipient_id, code=exc.code, message=exc.message)
            )
            continue
        except Exception:
            logger.exception("Transfer to %s failed unexpectedly", recipient_id)
            result.failed.append(
                RecipientFailure(
                    recipient_id=recipient_id,
                    code=INTERNAL_ERROR_CODE,
                    message="Transfer failed due to an internal error",
                )
            )
            continue
        result.succeeded.append(outcome)

    if result.succeeded:
        bus.publish(FeedEvent(company_id=company_id, reason="points.given"))

    logger.info(
        "give_points sender=%s company=%s: %d succeeded, %d failed",
        sender_id, company_id, result.succeeded_count, result.failed_count,
    )
    return result
