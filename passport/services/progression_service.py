"""
passport.services.progression_service — Points, Levels & Badges
================================================================

The one place that mutates a user's progression.  Every call to
:meth:`ProgressionEngine.award` runs as a single transaction:

1. Check the action type, then the user.  Nothing is written if either is bad.
2. Lock (or create) the user's ``progression_state`` row.
3. Append to the action ledger inside a SAVEPOINT.  A failed append is
   logged and skipped, and the points still land.
4. Add the points with an atomic ``points = points + n`` update.
5. Re-evaluate the level from the ledger counts.
6. Re-evaluate every badge the user doesn't hold yet.
7. Commit, then queue notifications for new badges and level-ups.

Storage failures other than the ledger append roll the whole transaction
back and surface as :class:`~passport.engine.errors.TransactionFailure`.

Usage::

    progression = ProgressionEngine(engine, catalog, outbox=outbox)
    result = progression.award(42, "review_created", {"review_id": 7})
    stats = progression.get_user_stats(42)
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from passport.database.engine import transaction
from passport.database.models import ActionType, ProgressionState, User, UserBadge
from passport.engine.actions import parse_action_type, points_for
from passport.engine.catalog import BadgeDef
from passport.engine.criteria import LedgerSnapshot, PerEntityVotes, any_satisfied
from passport.engine.errors import ProgressionError, TransactionFailure, UserNotFound
from passport.engine.levels import LevelDef, compute_level, progress_to_next
from passport.services.ledger import ActionLedger
from passport.services.milestones import Milestone, project_milestones
from passport.services.notifications import NotificationMessage, NotificationOutbox

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from passport.engine.catalog import CatalogStore

logger = logging.getLogger(__name__)

LEVEL_UP_MESSAGE = "¡Felicidades! Has alcanzado el Nivel {level}: {name}."


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class EarnedBadge:
    name: str
    description: str | None
    earned_at: datetime | None

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "earnedAt": self.earned_at.isoformat() if self.earned_at else None,
        }


@dataclass(frozen=True, slots=True)
class UserStats:
    user_id: int
    points: int
    level: int
    level_name: str
    progress_to_next: int
    badges: tuple[EarnedBadge, ...] = ()
    next_level: LevelDef | None = None

    def as_dict(self) -> dict:
        return {
            "points": self.points,
            "level": self.level,
            "levelName": self.level_name,
            "progressToNext": self.progress_to_next,
            "badges": [b.as_dict() for b in self.badges],
            "nextLevel": (
                {
                    "level": self.next_level.level_number,
                    "name": self.next_level.name,
                    "minPoints": self.next_level.min_points,
                }
                if self.next_level else None
            ),
        }


@dataclass(frozen=True, slots=True)
class AwardNotification:
    """What changed in this award, for the caller to show the user."""

    new_level: int | None = None
    level_name: str | None = None
    message: str | None = None
    new_badges: tuple[str, ...] = ()

    def as_dict(self) -> dict:
        data: dict = {"newBadges": list(self.new_badges)}
        if self.new_level is not None:
            data.update(newLevel=self.new_level, levelName=self.level_name, message=self.message)
        return data


@dataclass(frozen=True, slots=True)
class AwardResult:
    """Post-commit snapshot plus the notification block (``None`` if nothing changed).

    ``pending`` holds the outbound messages.  When the engine owned the
    transaction they have already been queued; when the caller passed its
    own session it must call :meth:`ProgressionEngine.dispatch` after commit.
    """

    stats: UserStats
    points_awarded: int
    notification: AwardNotification | None = None
    pending: tuple[NotificationMessage, ...] = field(default=(), compare=False)

    def as_dict(self) -> dict:
        data = self.stats.as_dict()
        data["pointsAwarded"] = self.points_awarded
        data["notification"] = self.notification.as_dict() if self.notification else None
        return data


@dataclass(frozen=True, slots=True)
class RecalculationResult:
    user_id: int
    points: int
    level: int
    level_name: str
    previous_points: int
    previous_level: int

    @property
    def changed(self) -> bool:
        return self.points != self.previous_points or self.level != self.previous_level


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------
def _require_user(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise UserNotFound(user_id)
    return user


def _lock_state(session: Session, user_id: int) -> ProgressionState | None:
    return session.scalar(
        select(ProgressionState)
        .where(ProgressionState.user_id == user_id)
        .with_for_update()
    )


def get_or_create_state(
    session: Session, user_id: int, default_level: LevelDef
) -> ProgressionState:
    """Fetch the user's state row under a row lock, creating it on first use.

    Two first-ever awards for the same user may both try the insert; the
    loser's SAVEPOINT rolls back and it locks the winner's row instead.
    """
    state = _lock_state(session, user_id)
    if state is not None:
        return state
    try:
        with session.begin_nested():
            state = ProgressionState(
                user_id=user_id,
                points=0,
                level=default_level.level_number,
                level_name=default_level.name,
            )
            session.add(state)
    except IntegrityError:
        logger.info("State row for user %d created concurrently — locking it", user_id)
        state = _lock_state(session, user_id)
        if state is None:
            raise
    return state


def _earned_badges(session: Session, user_id: int) -> list[UserBadge]:
    return list(session.scalars(
        select(UserBadge)
        .where(UserBadge.user_id == user_id)
        .order_by(UserBadge.earned_at, UserBadge.id)
    ).all())


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
class ProgressionEngine:
    """Award actions and answer progression queries for one database."""

    def __init__(
        self,
        engine: Engine,
        catalog: CatalogStore,
        ledger: ActionLedger | None = None,
        outbox: NotificationOutbox | None = None,
    ) -> None:
        self.engine = engine
        self.catalog = catalog
        self.ledger = ledger or ActionLedger()
        self.outbox = outbox

    # -------------------------------------------------------------------
    # Award
    # -------------------------------------------------------------------
    def award(
        self,
        user_id: int,
        action_type: ActionType | str,
        metadata: dict | None = None,
        *,
        session: Session | None = None,
    ) -> AwardResult:
        """Record *action_type* for *user_id* and update points, level and badges.

        Raises
        ------
        InvalidAction
            *action_type* is not a known action.  Nothing is written.
        UserNotFound
            No such user.  Nothing is written.
        TransactionFailure
            The transaction failed and was rolled back.  Safe to retry.
        """
        action = parse_action_type(action_type)
        metadata = dict(metadata or {})
        levels = self.catalog.levels()
        badges = self.catalog.badges()

        try:
            with transaction(self.engine, session) as s:
                result = self._award(s, user_id, action, metadata, levels, badges)
        except ProgressionError:
            raise
        except SQLAlchemyError as exc:
            logger.exception("Award %s for user %d rolled back", action, user_id)
            raise TransactionFailure(user_id, exc) from exc

        if session is None:
            self.dispatch(result)
        return result

    def _award(
        self,
        session: Session,
        user_id: int,
        action: ActionType,
        metadata: dict,
        levels: tuple[LevelDef, ...],
        badges: tuple[BadgeDef, ...],
    ) -> AwardResult:
        user = _require_user(session, user_id)
        state = get_or_create_state(session, user_id, compute_level(levels, LedgerSnapshot()))
        old_level = state.level
        points = points_for(action)
        now = datetime.now(UTC)

        try:
            with session.begin_nested():
                self.ledger.append(session, user_id, action, points, metadata)
        except SQLAlchemyError:
            logger.exception(
                "Ledger append failed for user %d (%s) — awarding points anyway",
                user_id, action,
            )

        session.execute(
            update(ProgressionState)
            .where(ProgressionState.user_id == user_id)
            .values(points=ProgressionState.points + points, last_activity_at=now)
            .execution_options(synchronize_session=False)
        )
        session.refresh(state)

        # Level
        counts = self.ledger.counts_by_type(session, user_id)
        new_level = compute_level(levels, LedgerSnapshot(action_counts=counts))
        pending: list[NotificationMessage] = []
        level_up: LevelDef | None = None
        level_up_message: str | None = None
        if new_level.level_number != state.level or new_level.name != state.level_name:
            state.level = new_level.level_number
            state.level_name = new_level.name
        if new_level.level_number > old_level:
            level_up = new_level
            level_up_message = LEVEL_UP_MESSAGE.format(level=new_level.level_number, name=new_level.name)
            logger.info("User %d reached level %d (%s)", user_id, new_level.level_number, new_level.name)
            pending.append(NotificationMessage(
                kind="level_up",
                user_id=user_id,
                user_email=user.email,
                level=new_level.level_number,
                level_name=new_level.name,
                message=level_up_message,
            ))

        # Badges
        held = set(session.scalars(
            select(UserBadge.badge_name).where(UserBadge.user_id == user_id)
        ).all())
        candidates = [b for b in badges if b.name not in held]
        entity_votes = self._entity_votes_for(session, user_id, candidates, metadata)
        snap = LedgerSnapshot(
            level=new_level.level_number, action_counts=counts, entity_votes=entity_votes
        )
        new_badges: list[str] = []
        for badge in candidates:
            if not any_satisfied(badge.criteria, snap):
                continue
            session.add(UserBadge(
                user_id=user_id,
                badge_name=badge.name,
                description=badge.description,
                earned_at=now,
            ))
            info = {"name": badge.name, "description": badge.description}
            new_badges.append(badge.name)
            pending.append(NotificationMessage(
                kind="badge_earned", user_id=user_id, user_email=user.email, badge=info
            ))
            logger.info("User %d earned badge %r", user_id, badge.name)
        session.flush()

        notification = None
        if level_up is not None or new_badges:
            notification = AwardNotification(
                new_level=level_up.level_number if level_up else None,
                level_name=level_up.name if level_up else None,
                message=level_up_message,
                new_badges=tuple(new_badges),
            )

        return AwardResult(
            stats=self._build_stats(session, user_id, state, levels),
            points_awarded=points,
            notification=notification,
            pending=tuple(pending),
        )

    def _entity_votes_for(
        self,
        session: Session,
        user_id: int,
        badges: list[BadgeDef],
        metadata: dict,
    ) -> dict[str, int]:
        """Vote counts for the entities named in this action's metadata."""
        votes: dict[str, int] = {}
        for badge in badges:
            for criterion in badge.criteria:
                if not isinstance(criterion, PerEntityVotes):
                    continue
                key = criterion.entity_key
                if key in votes:
                    continue
                votes[key] = self.ledger.count_entity_votes(
                    session, user_id, key, metadata.get(key)
                )
        return votes

    def dispatch(self, result: AwardResult) -> None:
        """Queue *result*'s notifications.  Call only after the award committed."""
        if self.outbox is None:
            return
        for message in result.pending:
            self.outbox.enqueue(message)

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def _build_stats(
        self,
        session: Session,
        user_id: int,
        state: ProgressionState | None,
        levels: tuple[LevelDef, ...],
    ) -> UserStats:
        if state is None:
            current = compute_level(levels, LedgerSnapshot())
            points, level_number, level_name = 0, current.level_number, current.name
        else:
            points, level_number, level_name = state.points, state.level, state.level_name
        badge_rows = _earned_badges(session, user_id)

        by_number = {lvl.level_number: lvl for lvl in levels}
        current_def = by_number.get(level_number)
        next_def = by_number.get(level_number + 1)
        return UserStats(
            user_id=user_id,
            points=points,
            level=level_number,
            level_name=level_name or (current_def.name if current_def else ""),
            progress_to_next=progress_to_next(points, current_def, next_def),
            badges=tuple(
                EarnedBadge(name=b.badge_name, description=b.description, earned_at=b.earned_at)
                for b in badge_rows
            ),
            next_level=next_def,
        )

    def get_user_stats(self, user_id: int, *, session: Session | None = None) -> UserStats:
        """Current snapshot.  A user with no activity yet gets level-1 defaults."""
        levels = self.catalog.levels()
        with transaction(self.engine, session) as s:
            _require_user(s, user_id)
            state = s.get(ProgressionState, user_id)
            return self._build_stats(s, user_id, state, levels)

    def get_all_levels(self) -> tuple[LevelDef, ...]:
        return self.catalog.levels()

    def get_all_badges(self) -> tuple[BadgeDef, ...]:
        return self.catalog.badges()

    def get_user_milestones(
        self, user_id: int, *, session: Session | None = None
    ) -> Iterator[Milestone]:
        """Lazy milestone sequence for *user_id*.

        The user's ledger counts are read up front (so ``UserNotFound`` is
        raised here, not on first iteration); the milestones themselves are
        built as the caller iterates.
        """
        levels = self.catalog.levels()
        badges = self.catalog.badges()
        with transaction(self.engine, session) as s:
            _require_user(s, user_id)
            counts = self.ledger.counts_by_type(s, user_id)
            earned = frozenset(b.badge_name for b in _earned_badges(s, user_id))
            entity_keys = {
                c.entity_key
                for b in badges
                for c in b.criteria
                if isinstance(c, PerEntityVotes)
            }
            entity_votes = {
                key: self.ledger.max_entity_votes(s, user_id, key)
                for key in sorted(entity_keys)
            }

        current = compute_level(levels, LedgerSnapshot(action_counts=counts))
        snap = LedgerSnapshot(
            level=current.level_number, action_counts=counts, entity_votes=entity_votes
        )
        return project_milestones(levels, badges, snap, earned)

    # -------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------
    def recalculate_user_stats(
        self, user_id: int, *, session: Session | None = None
    ) -> RecalculationResult:
        """Overwrite points and level from the ledger.  Badges are left alone.

        Idempotent: running it twice with no new actions changes nothing.
        """
        levels = self.catalog.levels()
        try:
            with transaction(self.engine, session) as s:
                _require_user(s, user_id)
                state = get_or_create_state(s, user_id, compute_level(levels, LedgerSnapshot()))
                previous_points, previous_level = state.points, state.level

                total = self.ledger.sum_points(s, user_id)
                counts = self.ledger.counts_by_type(s, user_id)
                level = compute_level(levels, LedgerSnapshot(action_counts=counts))

                state.points = total
                state.level = level.level_number
                state.level_name = level.name
                s.flush()
        except ProgressionError:
            raise
        except SQLAlchemyError as exc:
            logger.exception("Recalculation for user %d rolled back", user_id)
            raise TransactionFailure(user_id, exc) from exc

        if total != previous_points or level.level_number != previous_level:
            logger.info(
                "Recalculated user %d: points %d → %d, level %d → %d",
                user_id, previous_points, total, previous_level, level.level_number,
            )
        return RecalculationResult(
            user_id=user_id,
            points=total,
            level=level.level_number,
            level_name=level.name,
            previous_points=previous_points,
            previous_level=previous_level,
        )
