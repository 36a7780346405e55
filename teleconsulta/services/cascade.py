"""Consultation assignment cascade.

A pending consultation is offered to a handful of eligible doctors per
round. The first doctor to accept wins; after max_rounds without an
acceptance the consultation becomes unattended.

Every state transition is a conditional UPDATE checked by rowcount, so
concurrent accepts, duplicate round starts and late sweeps cannot
overwrite each other:

- assignment:   WHERE assigned_doctor_id IS NULL AND status = 'pending'
- next round:    WHERE cascade_round = N AND status = 'pending' AND unassigned
- unattended:    WHERE cascade_round = N AND status = 'pending' AND unassigned
- responses:     WHERE response = 'pending'

On SQLite the conditional UPDATE must be the first write of its
transaction; reads before it do not hold locks.
"""

import asyncio
import logging
import random
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from teleconsulta.core.config import settings as app_settings
from teleconsulta.core.logging import audit_logger
from teleconsulta.models.cascade import (
    CascadeNotification,
    CascadeSettings,
    NotificationChannel,
    NotificationResponse,
)
from teleconsulta.models.consultation import (
    ConsultationEventType,
    ConsultationRequest,
    ConsultationStatus,
    Urgency,
)
from teleconsulta.models.doctor import Doctor
from teleconsulta.models.staff_notification import StaffNotificationType
from teleconsulta.services.candidates import select_candidates
from teleconsulta.services.cascade_settings import CascadeSettingsService
from teleconsulta.services.change_feed import append_event
from teleconsulta.services.notifications import (
    CascadeOffer,
    ChannelNotificationSink,
    NotificationSink,
)
from teleconsulta.services.staff_notifications import build_staff_notification
from teleconsulta.utils.time import as_utc, utc_now

logger = logging.getLogger(__name__)

NO_CANDIDATES_MESSAGE = "No available doctors found for this specialty"
RACE_LOST_MESSAGE = "This consultation was already accepted by another doctor"
ACCEPTED_MESSAGE = "Consultation accepted successfully. You can start the appointment."
ALREADY_ACCEPTED_MESSAGE = "You have already accepted this consultation"
REJECTED_MESSAGE = "Consultation declined"
DEADLINE_PASSED_MESSAGE = "The response deadline for this offer has passed"
DEFAULT_REJECTION_REASON = "Not specified"


class RoundAlreadyAdvancedError(Exception):
    """Raised when another process advanced the round first."""

    pass


@dataclass
class CascadeResult:
    """Outcome of starting a round."""
    success: bool
    consultation_id: str
    doctors_notified: int = 0
    round_number: int = 0
    message: str | None = None
    error: str | None = None


@dataclass
class ActionResult:
    """Outcome of a doctor's accept or reject."""
    success: bool
    message: str


@dataclass
class CascadeHistoryEntry:
    """A notification row enriched with the doctor's contact data."""
    id: str
    consultation_id: str
    doctor_id: str
    round_number: int
    channel: str
    notified_at: datetime
    response_deadline: datetime
    response: str
    responded_at: datetime | None
    response_time_seconds: int | None
    rejection_reason: str | None
    doctor_name: str | None = None
    doctor_email: str | None = None
    doctor_crm: str | None = None
    doctor_whatsapp: str | None = None


@dataclass
class CascadeState:
    """Observer view: idle, running, completed, expired or cancelled."""
    consultation_id: str
    status: str
    current_round: int
    history: list[CascadeHistoryEntry] = field(default_factory=list)


@dataclass
class PendingCall:
    """The offer a doctor should be looking at right now."""
    notification_id: str
    consultation: ConsultationRequest
    round_number: int
    response_deadline: datetime
    seconds_remaining: int
    timeout_seconds: int


@dataclass
class SweepSummary:
    """Counters from one sweeper pass."""
    consultations_checked: int = 0
    notifications_expired: int = 0
    rounds_started: int = 0
    marked_unattended: int = 0
    errors: int = 0


class CascadeService:
    """Service orchestrating rounds, responses and expiry."""

    def __init__(
        self,
        session: AsyncSession,
        sink: NotificationSink | None = None,
        clock: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
    ):
        self.session = session
        self.sink = sink or ChannelNotificationSink()
        self.clock = clock or utc_now
        self.rng = rng or random.Random()
        self.settings_service = CascadeSettingsService(session)

    # =========================================================================
    # Lookups
    # =========================================================================

    async def _get_consultation(self, consultation_id: str) -> ConsultationRequest | None:
        result = await self.session.execute(
            select(ConsultationRequest)
            .where(ConsultationRequest.id == consultation_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_pending_notification(
        self,
        consultation_id: str,
        doctor_id: str,
        round_number: int | None = None,
    ) -> CascadeNotification | None:
        """The doctor's most recent unanswered offer for a consultation."""
        query = select(CascadeNotification).where(
            CascadeNotification.consultation_id == consultation_id,
            CascadeNotification.doctor_id == doctor_id,
            CascadeNotification.response == NotificationResponse.PENDING.value,
        )
        if round_number is not None:
            query = query.where(CascadeNotification.round_number == round_number)

        result = await self.session.execute(
            query.order_by(CascadeNotification.round_number.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    # =========================================================================
    # Round start
    # =========================================================================

    async def start_cascade(self, consultation_id: str) -> CascadeResult:
        """Start the next round for a pending consultation.

        Preconditions: pending, unassigned, cascade_round < max_rounds.
        Offers are written in one transaction with the round increment;
        delivery happens after commit and never fails the call.
        """
        try:
            result, offers, channels = await self._start_round(consultation_id)
        except RoundAlreadyAdvancedError:
            return CascadeResult(
                success=False,
                consultation_id=consultation_id,
                error="Round was already started by another process",
            )
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                f"Failed to start cascade for {consultation_id[:8]}: {e}",
                extra={"consultation_id": consultation_id},
            )
            return CascadeResult(
                success=False,
                consultation_id=consultation_id,
                error=str(e),
            )

        await self._dispatch(offers, channels)
        return result

    async def _start_round(
        self,
        consultation_id: str,
        cascade_settings: CascadeSettings | None = None,
        expected_round: int | None = None,
        consume_empty_round: bool = False,
    ) -> tuple[CascadeResult, list[CascadeOffer], list[NotificationChannel]]:
        """Advance to the next round and write its offers.

        With consume_empty_round, a round with no candidates still uses up
        a round so that an exhausted doctor pool ends in unattended.
        """
        if cascade_settings is None:
            cascade_settings = await self.settings_service.get_settings()

        consultation = await self._get_consultation(consultation_id)
        if consultation is None:
            return self._failure(consultation_id, "Consultation not found"), [], []

        if (
            consultation.status != ConsultationStatus.PENDING.value
            or consultation.assigned_doctor_id is not None
        ):
            return self._failure(
                consultation_id,
                f"Consultation is {consultation.status}, not pending",
                consultation.cascade_round,
            ), [], []

        current_round = consultation.cascade_round
        if expected_round is not None and current_round != expected_round:
            # Another process moved past the round this caller timed out
            raise RoundAlreadyAdvancedError(consultation_id)

        if current_round >= cascade_settings.max_rounds:
            return self._failure(
                consultation_id,
                f"Maximum of {cascade_settings.max_rounds} rounds reached",
                current_round,
            ), [], []

        candidates = await select_candidates(
            self.session, consultation, cascade_settings, self.rng
        )
        if not candidates and not consume_empty_round:
            # Rollback expires the loaded instances
            specialty = consultation.specialty
            await self.session.rollback()
            logger.warning(
                f"No candidates for consultation {consultation_id[:8]} "
                f"({specialty}) in round {current_round + 1}",
                extra={"consultation_id": consultation_id, "round_number": current_round + 1},
            )
            return CascadeResult(
                success=False,
                consultation_id=consultation_id,
                doctors_notified=0,
                round_number=current_round,
                message=NO_CANDIDATES_MESSAGE,
            ), [], []

        now = self.clock()
        next_round = current_round + 1

        advanced = await self.session.execute(
            update(ConsultationRequest)
            .where(
                ConsultationRequest.id == consultation_id,
                ConsultationRequest.cascade_round == current_round,
                ConsultationRequest.status == ConsultationStatus.PENDING.value,
                ConsultationRequest.assigned_doctor_id.is_(None),
            )
            .values(cascade_round=next_round, cascade_started_at=now)
            .execution_options(synchronize_session=False)
        )
        if advanced.rowcount != 1:
            await self.session.rollback()
            logger.info(
                f"Round {next_round} for {consultation_id[:8]} already started elsewhere",
                extra={"consultation_id": consultation_id, "round_number": next_round},
            )
            raise RoundAlreadyAdvancedError(consultation_id)

        channels = cascade_settings.enabled_channels()
        primary_channel = channels[0] if channels else NotificationChannel.PUSH
        deadline = now + timedelta(seconds=cascade_settings.timeout_seconds)

        for doctor in candidates:
            self.session.add(
                CascadeNotification(
                    consultation_id=consultation_id,
                    doctor_id=doctor.id,
                    round_number=next_round,
                    channel=primary_channel,
                    notified_at=now,
                    response_deadline=deadline,
                    response=NotificationResponse.PENDING,
                )
            )

        event_type = (
            ConsultationEventType.ROUND_STARTED if candidates else ConsultationEventType.ROUND_SKIPPED
        )
        await append_event(
            self.session,
            consultation_id,
            event_type,
            {
                "round_number": next_round,
                "doctor_ids": [d.id for d in candidates],
                "response_deadline": deadline.isoformat(),
            },
        )
        await self.session.commit()

        if not candidates:
            logger.warning(
                f"Round {next_round} for consultation {consultation_id[:8]} "
                f"({consultation.specialty}) had no doctors to notify",
                extra={"consultation_id": consultation_id, "round_number": next_round},
            )
            return CascadeResult(
                success=False,
                consultation_id=consultation_id,
                doctors_notified=0,
                round_number=next_round,
                message=NO_CANDIDATES_MESSAGE,
            ), [], []

        logger.info(
            f"Round {next_round} started for consultation {consultation_id[:8]}: "
            f"{len(candidates)} doctor(s) notified",
            extra={"consultation_id": consultation_id, "round_number": next_round},
        )

        offers = [
            self._build_offer(consultation, doctor, next_round, deadline, cascade_settings)
            for doctor in candidates
        ]
        result = CascadeResult(
            success=True,
            consultation_id=consultation_id,
            doctors_notified=len(candidates),
            round_number=next_round,
            message=f"{len(candidates)} doctor(s) notified in round {next_round}",
        )
        return result, offers, channels

    def _failure(
        self,
        consultation_id: str,
        error: str,
        round_number: int = 0,
    ) -> CascadeResult:
        return CascadeResult(
            success=False,
            consultation_id=consultation_id,
            doctors_notified=0,
            round_number=round_number,
            error=error,
        )

    def _build_offer(
        self,
        consultation: ConsultationRequest,
        doctor: Doctor,
        round_number: int,
        deadline: datetime,
        cascade_settings: CascadeSettings,
    ) -> CascadeOffer:
        return CascadeOffer(
            consultation_id=consultation.id,
            doctor_id=doctor.id,
            doctor_name=doctor.full_name,
            doctor_email=doctor.email,
            doctor_whatsapp=doctor.whatsapp_number,
            round_number=round_number,
            response_deadline=deadline,
            timeout_minutes=cascade_settings.timeout_per_round_minutes,
            patient_name=consultation.patient_name,
            patient_phone=consultation.patient_phone,
            specialty=consultation.specialty,
            urgency=Urgency(consultation.urgency).value,
            description=consultation.description,
            whatsapp_template=cascade_settings.whatsapp_template,
        )

    async def _dispatch(
        self,
        offers: Sequence[CascadeOffer],
        channels: Sequence[NotificationChannel],
    ) -> None:
        """Hand every offer to the sink on every enabled channel."""
        if not offers or not channels:
            return
        await asyncio.gather(
            *(self._notify(offer, channel) for offer in offers for channel in channels)
        )

    async def _notify(self, offer: CascadeOffer, channel: NotificationChannel) -> None:
        extra = {
            "consultation_id": offer.consultation_id,
            "doctor_id": offer.doctor_id,
            "round_number": offer.round_number,
        }
        try:
            await asyncio.wait_for(
                self.sink.notify(offer, channel),
                timeout=app_settings.notification_dispatch_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Timed out notifying doctor {offer.doctor_id[:8]} via {channel.value}",
                extra=extra,
            )
        except Exception as e:
            logger.error(
                f"Failed to notify doctor {offer.doctor_id[:8]} via {channel.value}: {e}",
                extra=extra,
            )

    # =========================================================================
    # Doctor responses
    # =========================================================================

    async def accept_consultation(self, consultation_id: str, doctor_id: str) -> ActionResult:
        """Accept an offer. At most one doctor ever wins a consultation.

        Accepting again as the current assignee is a success.
        """
        try:
            return await self._accept(consultation_id, doctor_id)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                f"Failed to accept consultation {consultation_id[:8]}: {e}",
                extra={"consultation_id": consultation_id, "doctor_id": doctor_id},
            )
            return ActionResult(success=False, message=f"Error accepting consultation: {e}")

    async def _accept(self, consultation_id: str, doctor_id: str) -> ActionResult:
        now = self.clock()
        consultation = await self._get_consultation(consultation_id)
        if consultation is None:
            return ActionResult(success=False, message="Consultation not found")

        outcome = self._assignment_outcome(consultation, doctor_id)
        if outcome is not None:
            return outcome

        if consultation.status != ConsultationStatus.PENDING.value:
            return ActionResult(
                success=False,
                message=f"Consultation is {consultation.status} and can no longer be accepted",
            )

        notification = await self._get_pending_notification(consultation_id, doctor_id)
        if notification is None:
            return ActionResult(
                success=False,
                message="No pending offer for this doctor on this consultation",
            )

        if as_utc(notification.response_deadline) <= now:
            await self._expire_and_commit(notification)
            return ActionResult(success=False, message=DEADLINE_PASSED_MESSAGE)

        assigned = await self.session.execute(
            update(ConsultationRequest)
            .where(
                ConsultationRequest.id == consultation_id,
                ConsultationRequest.assigned_doctor_id.is_(None),
                ConsultationRequest.status == ConsultationStatus.PENDING.value,
            )
            .values(
                assigned_doctor_id=doctor_id,
                status=ConsultationStatus.ASSIGNED.value,
                assigned_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if assigned.rowcount != 1:
            await self.session.rollback()
            consultation = await self._get_consultation(consultation_id)
            if consultation is not None:
                outcome = self._assignment_outcome(consultation, doctor_id)
                if outcome is not None:
                    return outcome
            return ActionResult(
                success=False,
                message="Consultation can no longer be accepted",
            )

        response_time = int((now - as_utc(notification.notified_at)).total_seconds())
        await self.session.execute(
            update(CascadeNotification)
            .where(
                CascadeNotification.id == notification.id,
                CascadeNotification.response == NotificationResponse.PENDING.value,
            )
            .values(
                response=NotificationResponse.ACCEPTED.value,
                responded_at=now,
                response_time_seconds=response_time,
            )
            .execution_options(synchronize_session=False)
        )
        await append_event(
            self.session,
            consultation_id,
            ConsultationEventType.ASSIGNED,
            {
                "doctor_id": doctor_id,
                "round_number": notification.round_number,
                "response_time_seconds": response_time,
            },
        )
        self.session.add(
            build_staff_notification(
                StaffNotificationType.CONSULTATION_ACCEPTED,
                title="Consultation accepted",
                message=(
                    f"Consultation for {consultation.patient_name} ({consultation.specialty}) "
                    f"was accepted by {notification.doctor.full_name}"
                ),
                consultation_id=consultation_id,
            )
        )
        await self.session.commit()

        audit_logger.log(
            action="consultation_assigned",
            consultation_id=consultation_id,
            doctor_id=doctor_id,
            metadata={
                "round_number": notification.round_number,
                "response_time_seconds": response_time,
            },
        )
        return ActionResult(success=True, message=ACCEPTED_MESSAGE)

    def _assignment_outcome(
        self,
        consultation: ConsultationRequest,
        doctor_id: str,
    ) -> ActionResult | None:
        """Result for an already-assigned consultation, or None if unassigned."""
        if consultation.assigned_doctor_id is None:
            return None
        if consultation.assigned_doctor_id == doctor_id:
            return ActionResult(success=True, message=ALREADY_ACCEPTED_MESSAGE)
        logger.info(
            f"Doctor {doctor_id[:8]} lost the race for consultation {consultation.id[:8]}",
            extra={"consultation_id": consultation.id, "doctor_id": doctor_id},
        )
        return ActionResult(success=False, message=RACE_LOST_MESSAGE)

    async def reject_consultation(
        self,
        consultation_id: str,
        doctor_id: str,
        reason: str | None = None,
    ) -> ActionResult:
        """Decline the current round's offer. Never advances the round."""
        try:
            return await self._reject(consultation_id, doctor_id, reason)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                f"Failed to reject consultation {consultation_id[:8]}: {e}",
                extra={"consultation_id": consultation_id, "doctor_id": doctor_id},
            )
            return ActionResult(success=False, message=f"Error rejecting consultation: {e}")

    async def _reject(
        self,
        consultation_id: str,
        doctor_id: str,
        reason: str | None,
    ) -> ActionResult:
        now = self.clock()
        consultation = await self._get_consultation(consultation_id)
        if consultation is None:
            return ActionResult(success=False, message="Consultation not found")

        notification = await self._get_pending_notification(
            consultation_id, doctor_id, round_number=consultation.cascade_round
        )
        if notification is None:
            return ActionResult(
                success=False,
                message="No pending offer for this doctor in the current round",
            )

        if as_utc(notification.response_deadline) <= now:
            await self._expire_and_commit(notification)
            return ActionResult(success=False, message=DEADLINE_PASSED_MESSAGE)

        response_time = int((now - as_utc(notification.notified_at)).total_seconds())
        rejected = await self.session.execute(
            update(CascadeNotification)
            .where(
                CascadeNotification.id == notification.id,
                CascadeNotification.response == NotificationResponse.PENDING.value,
            )
            .values(
                response=NotificationResponse.REJECTED.value,
                responded_at=now,
                response_time_seconds=response_time,
                rejection_reason=reason or DEFAULT_REJECTION_REASON,
            )
            .execution_options(synchronize_session=False)
        )
        if rejected.rowcount != 1:
            await self.session.rollback()
            return ActionResult(success=False, message="This offer was already answered")

        await append_event(
            self.session,
            consultation_id,
            ConsultationEventType.NOTIFICATION_REJECTED,
            {
                "doctor_id": doctor_id,
                "round_number": notification.round_number,
                "reason": reason or DEFAULT_REJECTION_REASON,
            },
        )
        await self.session.commit()

        logger.info(
            f"Doctor {doctor_id[:8]} declined consultation {consultation_id[:8]}",
            extra={
                "consultation_id": consultation_id,
                "doctor_id": doctor_id,
                "round_number": notification.round_number,
            },
        )
        return ActionResult(success=True, message=REJECTED_MESSAGE)

    # =========================================================================
    # Expiry and round advancement
    # =========================================================================

    async def _expire_notification(self, notification: CascadeNotification) -> bool:
        """Mark one pending notification expired inside the open transaction."""
        notified_at = as_utc(notification.notified_at)
        deadline = as_utc(notification.response_deadline)
        expired = await self.session.execute(
            update(CascadeNotification)
            .where(
                CascadeNotification.id == notification.id,
                CascadeNotification.response == NotificationResponse.PENDING.value,
            )
            .values(
                response=NotificationResponse.EXPIRED.value,
                response_time_seconds=int((deadline - notified_at).total_seconds()),
            )
            .execution_options(synchronize_session=False)
        )
        if expired.rowcount != 1:
            return False

        await append_event(
            self.session,
            notification.consultation_id,
            ConsultationEventType.NOTIFICATION_EXPIRED,
            {"doctor_id": notification.doctor_id, "round_number": notification.round_number},
        )
        return True

    async def _expire_and_commit(self, notification: CascadeNotification) -> None:
        await self._expire_notification(notification)
        await self.session.commit()

    async def expire_overdue_notifications(self, consultation_id: str | None = None) -> int:
        """Expire pending notifications whose deadline has passed.

        Args:
            consultation_id: Restrict to one consultation; all when None

        Returns:
            Number of notifications expired
        """
        now = self.clock()
        query = select(CascadeNotification).where(
            CascadeNotification.response == NotificationResponse.PENDING.value,
            CascadeNotification.response_deadline <= now,
        )
        if consultation_id is not None:
            query = query.where(CascadeNotification.consultation_id == consultation_id)

        result = await self.session.execute(
            query.order_by(CascadeNotification.response_deadline)
        )
        overdue = result.scalars().all()
        if not overdue:
            return 0

        count = 0
        for notification in overdue:
            if await self._expire_notification(notification):
                count += 1
        await self.session.commit()

        logger.info(f"Expired {count} overdue notification(s)")
        return count

    async def check_and_start_next_round(self, consultation_id: str) -> CascadeResult | None:
        """Advance a consultation whose round has timed out.

        Returns None when nothing is due: consultation missing, not pending,
        assigned, round still live, marked unattended, or another process
        started the round first.
        """
        result, _ = await self._check_next_round(consultation_id)
        return result

    async def _check_next_round(self, consultation_id: str) -> tuple[CascadeResult | None, bool]:
        """Returns (round result, whether the consultation became unattended)."""
        try:
            cascade_settings = await self.settings_service.get_settings()
            consultation = await self._get_consultation(consultation_id)
            if (
                consultation is None
                or consultation.status != ConsultationStatus.PENDING.value
                or consultation.assigned_doctor_id is not None
            ):
                return None, False

            now = self.clock()
            if consultation.cascade_started_at is not None:
                elapsed = now - as_utc(consultation.cascade_started_at)
                if elapsed < timedelta(seconds=cascade_settings.timeout_seconds):
                    return None, False

            await self.expire_overdue_notifications(consultation_id)

            if consultation.cascade_round >= cascade_settings.max_rounds:
                unattended = await self._mark_unattended(consultation)
                return None, unattended

            result, offers, channels = await self._start_round(
                consultation_id,
                cascade_settings,
                expected_round=consultation.cascade_round,
                # A timed-out round with nobody left still counts toward max_rounds
                consume_empty_round=consultation.cascade_started_at is not None,
            )
        except RoundAlreadyAdvancedError:
            return None, False
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                f"Failed to check next round for {consultation_id[:8]}: {e}",
                extra={"consultation_id": consultation_id},
            )
            return CascadeResult(success=False, consultation_id=consultation_id, error=str(e)), False

        await self._dispatch(offers, channels)
        return result, False

    async def _mark_unattended(self, consultation: ConsultationRequest) -> bool:
        marked = await self.session.execute(
            update(ConsultationRequest)
            .where(
                ConsultationRequest.id == consultation.id,
                ConsultationRequest.cascade_round == consultation.cascade_round,
                ConsultationRequest.status == ConsultationStatus.PENDING.value,
                ConsultationRequest.assigned_doctor_id.is_(None),
            )
            .values(status=ConsultationStatus.UNATTENDED.value)
            .execution_options(synchronize_session=False)
        )
        if marked.rowcount != 1:
            await self.session.rollback()
            return False

        await append_event(
            self.session,
            consultation.id,
            ConsultationEventType.UNATTENDED,
            {"rounds": consultation.cascade_round},
        )
        self.session.add(
            build_staff_notification(
                StaffNotificationType.CONSULTATION_UNATTENDED,
                title="Consultation unattended",
                message=(
                    f"No doctor accepted the consultation for {consultation.patient_name} "
                    f"({consultation.specialty}) after {consultation.cascade_round} round(s)"
                ),
                consultation_id=consultation.id,
            )
        )
        await self.session.commit()

        logger.warning(
            f"Consultation {consultation.id[:8]} unattended after "
            f"{consultation.cascade_round} round(s)",
            extra={"consultation_id": consultation.id, "round_number": consultation.cascade_round},
        )
        audit_logger.log(
            action="consultation_unattended",
            consultation_id=consultation.id,
            metadata={"rounds": consultation.cascade_round},
        )
        return True

    async def sweep(self) -> SweepSummary:
        """One server-side pass: expire overdue offers, then advance every pending cascade."""
        summary = SweepSummary()
        summary.notifications_expired = await self.expire_overdue_notifications()

        result = await self.session.execute(
            select(ConsultationRequest.id)
            .where(ConsultationRequest.status == ConsultationStatus.PENDING.value)
            .order_by(ConsultationRequest.created_at)
        )
        consultation_ids = result.scalars().all()

        for consultation_id in consultation_ids:
            summary.consultations_checked += 1
            round_result, unattended = await self._check_next_round(consultation_id)
            if unattended:
                summary.marked_unattended += 1
            elif round_result is not None:
                if round_result.success:
                    summary.rounds_started += 1
                elif round_result.error:
                    summary.errors += 1

        logger.info(f"Cascade sweep complete: {summary}")
        return summary

    # =========================================================================
    # Observers
    # =========================================================================

    async def get_cascade_history(self, consultation_id: str) -> list[CascadeHistoryEntry]:
        """All offers for a consultation by round, with doctor details."""
        result = await self.session.execute(
            select(CascadeNotification)
            .where(CascadeNotification.consultation_id == consultation_id)
            .order_by(
                CascadeNotification.round_number,
                CascadeNotification.notified_at,
                CascadeNotification.id,
            )
            .execution_options(populate_existing=True)
        )
        history = []
        for n in result.scalars().all():
            doctor = n.doctor
            history.append(
                CascadeHistoryEntry(
                    id=n.id,
                    consultation_id=n.consultation_id,
                    doctor_id=n.doctor_id,
                    round_number=n.round_number,
                    channel=n.channel,
                    notified_at=as_utc(n.notified_at),
                    response_deadline=as_utc(n.response_deadline),
                    response=n.response,
                    responded_at=as_utc(n.responded_at),
                    response_time_seconds=n.response_time_seconds,
                    rejection_reason=n.rejection_reason,
                    doctor_name=doctor.full_name if doctor else None,
                    doctor_email=doctor.email if doctor else None,
                    doctor_crm=doctor.crm if doctor else None,
                    doctor_whatsapp=doctor.whatsapp_number if doctor else None,
                )
            )
        return history

    async def get_cascade_state(self, consultation_id: str) -> CascadeState | None:
        """Derive the observer state of a consultation's cascade."""
        consultation = await self._get_consultation(consultation_id)
        if consultation is None:
            return None

        status = ConsultationStatus(consultation.status)
        if status == ConsultationStatus.CANCELLED:
            state = "cancelled"
        elif status == ConsultationStatus.UNATTENDED:
            state = "expired"
        elif consultation.assigned_doctor_id is not None or status in (
            ConsultationStatus.ASSIGNED,
            ConsultationStatus.IN_PROGRESS,
            ConsultationStatus.COMPLETED,
        ):
            state = "completed"
        elif consultation.cascade_round == 0:
            state = "idle"
        else:
            state = "running"

        return CascadeState(
            consultation_id=consultation_id,
            status=state,
            current_round=consultation.cascade_round,
            history=await self.get_cascade_history(consultation_id),
        )

    async def get_pending_call(self, doctor_id: str) -> PendingCall | None:
        """The doctor's earliest-deadline live offer, if any."""
        now = self.clock()
        result = await self.session.execute(
            select(CascadeNotification, ConsultationRequest)
            .join(
                ConsultationRequest,
                ConsultationRequest.id == CascadeNotification.consultation_id,
            )
            .where(
                CascadeNotification.doctor_id == doctor_id,
                CascadeNotification.response == NotificationResponse.PENDING.value,
                CascadeNotification.response_deadline > now,
                ConsultationRequest.status == ConsultationStatus.PENDING.value,
                ConsultationRequest.assigned_doctor_id.is_(None),
            )
            .order_by(CascadeNotification.response_deadline, CascadeNotification.notified_at)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        row = result.first()
        if row is None:
            return None

        notification, consultation = row
        deadline = as_utc(notification.response_deadline)
        notified_at = as_utc(notification.notified_at)
        return PendingCall(
            notification_id=notification.id,
            consultation=consultation,
            round_number=notification.round_number,
            response_deadline=deadline,
            seconds_remaining=max(0, int((deadline - now).total_seconds())),
            timeout_seconds=int((deadline - notified_at).total_seconds()),
        )

    async def list_active_cascades(self) -> Sequence[ConsultationRequest]:
        """Pending consultations whose cascade has started, most recent first."""
        result = await self.session.execute(
            select(ConsultationRequest)
            .where(
                ConsultationRequest.status == ConsultationStatus.PENDING.value,
                ConsultationRequest.cascade_started_at.is_not(None),
            )
            .order_by(ConsultationRequest.cascade_started_at.desc())
            .execution_options(populate_existing=True)
        )
        return result.scalars().all()
