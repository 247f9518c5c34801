"""Proposal lifecycle: review of proposed actions and tracking of accepted ones.

    pending -> accepted -> tracking active -> completed
    pending -> rejected

Nothing leaves `rejected`, and completed tracking never reverts to active.
Validation happens before any state is touched; events are emitted after commit.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from . import db
from .errors import InvalidTransitionError, NotFoundError, ValidationError
from .events import EventType, emit
from .models import (
    SUCCESS_SCORE_MAX,
    SUCCESS_SCORE_MIN,
    ActionRejection,
    ActionStatus,
    ActionTracking,
    ProposedAction,
    TrackingStatus,
)


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset()


@dataclass
class ActionDetail:
    action: ProposedAction
    tracking: ActionTracking | None = None
    rejection: ActionRejection | None = None


def validate_success_score(score: object) -> int | None:
    if score is None:
        return None
    if isinstance(score, bool) or not isinstance(score, int):
        raise ValidationError(f"Success score must be an integer, got {score!r}")
    if not SUCCESS_SCORE_MIN <= score <= SUCCESS_SCORE_MAX:
        raise ValidationError(
            f"Success score must be between {SUCCESS_SCORE_MIN} and {SUCCESS_SCORE_MAX}, got {score}"
        )
    return score


def _parse_tracking_status(value: str) -> TrackingStatus:
    try:
        return TrackingStatus(value)
    except ValueError as e:
        raise ValidationError(
            f"Invalid tracking status '{value}' (expected 'active' or 'completed')"
        ) from e


def _parse_action_status(value: str) -> ActionStatus:
    try:
        return ActionStatus(value)
    except ValueError as e:
        raise ValidationError(
            f"Invalid action status '{value}' (expected pending, accepted or rejected)"
        ) from e


async def _require_action(session, action_id: str) -> ProposedAction:
    action = await db.get_proposed_action(session, action_id)
    if action is None:
        raise NotFoundError(f"Proposed action not found: {action_id}")
    return action


async def list_actions(project_id: str, status: str | None = None) -> list[ProposedAction]:
    """List a project's proposed actions, newest first."""
    status_filter = _parse_action_status(status).value if status else None
    async with db.get_session() as session:
        return await db.list_proposed_actions(session, project_id, status_filter)


async def get_action_detail(action_id: str) -> ActionDetail:
    async with db.get_session() as session:
        action = await _require_action(session, action_id)
        tracking = await db.get_tracking_for_action(session, action_id)
        rejection = await db.get_rejection(session, action_id)
    return ActionDetail(action=action, tracking=tracking, rejection=rejection)


async def accept_action(action_id: str) -> ActionTracking:
    """pending -> accepted; creates active tracking once. Re-accepting is a no-op."""
    async with db.get_session() as session:
        action = await _require_action(session, action_id)
        if action.status == ActionStatus.REJECTED:
            raise InvalidTransitionError(f"Action {action_id} was rejected and cannot be accepted")

        newly_accepted = action.status != ActionStatus.ACCEPTED
        action.status = ActionStatus.ACCEPTED.value
        tracking, created = await db.get_or_create_tracking(session, action)
        project_id = action.project_id

    if newly_accepted or created:
        await emit(
            EventType.ACTION_ACCEPTED,
            project_id,
            f"Action accepted: {action.title}",
            data={"action_id": action_id, "tracking_id": tracking.id},
        )
    return tracking


async def reject_action(action_id: str, reason: str | None) -> ActionRejection:
    """pending -> rejected; the reason feeds later synthesis runs."""
    cleaned = (reason or "").strip()
    if not cleaned:
        raise ValidationError("Rejection reason is required")

    async with db.get_session() as session:
        action = await _require_action(session, action_id)
        if action.status != ActionStatus.PENDING:
            raise InvalidTransitionError(
                f"Only pending actions can be rejected (action {action_id} is {action.status})"
            )
        action.status = ActionStatus.REJECTED.value
        rejection = await db.add_rejection(session, action, cleaned)
        project_id = action.project_id

    await emit(
        EventType.ACTION_REJECTED,
        project_id,
        f"Action rejected: {action.title}",
        data={"action_id": action_id, "reason": cleaned},
    )
    return rejection


async def update_tracking(
    tracking_id: str,
    *,
    status: str | None = None,
    comments: str | None | _Unset = UNSET,
    success_score: int | None | _Unset = UNSET,
) -> ActionTracking:
    """Update comments/score and optionally complete the tracking.

    Comments and score are applied before completion is stamped; completed_at
    is set only the first time.
    """
    target = _parse_tracking_status(status) if status is not None else None
    score = validate_success_score(success_score) if not isinstance(success_score, _Unset) else None

    async with db.get_session() as session:
        tracking = await db.get_tracking(session, tracking_id)
        if tracking is None:
            raise NotFoundError(f"Tracking not found: {tracking_id}")
        if target == TrackingStatus.ACTIVE and tracking.status == TrackingStatus.COMPLETED:
            raise InvalidTransitionError("Completed tracking cannot be reopened")

        if not isinstance(comments, _Unset):
            tracking.comments = comments
        if not isinstance(success_score, _Unset):
            tracking.success_score = score

        newly_completed = False
        if target == TrackingStatus.COMPLETED:
            tracking.status = TrackingStatus.COMPLETED.value
            if tracking.completed_at is None:
                tracking.completed_at = datetime.now(UTC)
                newly_completed = True

        action = await db.get_proposed_action(session, tracking.proposed_action_id)
        project_id = action.project_id if action else None
        await session.flush()
        await session.refresh(tracking)

    if project_id:
        await emit(
            EventType.TRACKING_COMPLETED if newly_completed else EventType.TRACKING_UPDATED,
            project_id,
            "Tracking completed" if newly_completed else "Tracking updated",
            data={
                "tracking_id": tracking_id,
                "status": tracking.status,
                "success_score": tracking.success_score,
            },
        )
    return tracking


async def get_tracking_for_action(action_id: str) -> ActionTracking | None:
    async with db.get_session() as session:
        await _require_action(session, action_id)
        return await db.get_tracking_for_action(session, action_id)
