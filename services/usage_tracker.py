"""
Usage tracking and plan limits
Per-user daily query counters with a plan-dependent ceiling (free = FREE_DAILY_LIMIT, pro = unlimited).
"""
from abc import ABC, abstractmethod
from calendar import monthrange
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Tuple
import logging
import threading

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import settings
from models import DailyUsage, Plan, User, utcnow
from schemas import DailyUsageEntry, PlanState, UNLIMITED, UsageState
from services.errors import NotFoundError

logger = logging.getLogger(__name__)


def today() -> date:
    """Usage days follow the process-local calendar"""
    return date.today()


def add_one_month(moment: datetime) -> datetime:
    """Same day next month, clamped to the month's last day (Jan 31 -> Feb 28/29)"""
    year = moment.year + (1 if moment.month == 12 else 0)
    month = 1 if moment.month == 12 else moment.month + 1
    day = min(moment.day, monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


# =============================================================================
# BACKENDS
# =============================================================================

class UsageBackend(ABC):
    """Plan and counter storage shared by both backends"""

    backend_name = "abstract"

    @abstractmethod
    def get_plan(self, user_id: str) -> PlanState:
        """
        Raises:
            NotFoundError: if the user does not exist (durable backend only)
        """

    @abstractmethod
    def set_plan(self, user_id: str, plan: str, plan_expires_at: Optional[datetime]) -> None:
        ...

    @abstractmethod
    def get_count(self, user_id: str, usage_date: date) -> int:
        ...

    @abstractmethod
    def increment(self, user_id: str, usage_date: date) -> int:
        """Atomically add one to the day's counter (creating it at 1) and return the new count"""

    @abstractmethod
    def history(self, user_id: str, days: int) -> List[DailyUsageEntry]:
        """Most recent daily counters, newest first"""

    @abstractmethod
    def register_user(
        self,
        user_id: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
        plan: str = Plan.FREE.value,
        plan_expires_at: Optional[datetime] = None,
    ) -> None:
        """Create the user if absent (registration itself happens elsewhere)"""


class SqlUsageBackend(UsageBackend):
    """Durable backend on the users / user_daily_usage tables"""

    backend_name = "database"

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def _require_user(self, db: Session, user_id: str) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def get_plan(self, user_id: str) -> PlanState:
        db = self.session_factory()
        try:
            user = self._require_user(db, user_id)
            return PlanState(user_id=user.id, plan=user.plan, plan_expires_at=user.plan_expires_at)
        finally:
            db.close()

    def set_plan(self, user_id, plan, plan_expires_at) -> None:
        db = self.session_factory()
        try:
            updated = db.query(User).filter(User.id == user_id).update(
                {User.plan: plan, User.plan_expires_at: plan_expires_at, User.updated_at: utcnow()},
                synchronize_session=False,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        if not updated:
            raise NotFoundError(f"User {user_id} not found")

    def get_count(self, user_id: str, usage_date: date) -> int:
        db = self.session_factory()
        try:
            row = db.query(DailyUsage.query_count).filter(
                DailyUsage.user_id == user_id,
                DailyUsage.usage_date == usage_date,
            ).first()
            return row[0] if row else 0
        finally:
            db.close()

    def _upsert_statement(self, dialect: str, user_id: str, usage_date: date):
        now = utcnow()
        if dialect == "postgresql":
            insert = pg_insert
        elif dialect == "sqlite":
            insert = sqlite_insert
        else:
            return None
        stmt = insert(DailyUsage).values(
            user_id=user_id,
            usage_date=usage_date,
            query_count=1,
            created_at=now,
            updated_at=now,
        )
        return stmt.on_conflict_do_update(
            index_elements=[DailyUsage.user_id, DailyUsage.usage_date],
            set_={"query_count": DailyUsage.query_count + 1, "updated_at": now},
        )

    def increment(self, user_id: str, usage_date: date) -> int:
        db = self.session_factory()
        try:
            self._require_user(db, user_id)
            stmt = self._upsert_statement(db.get_bind().dialect.name, user_id, usage_date)
            if stmt is not None:
                db.execute(stmt)
                db.commit()
            else:
                self._increment_fallback(db, user_id, usage_date)

            return db.query(DailyUsage.query_count).filter(
                DailyUsage.user_id == user_id,
                DailyUsage.usage_date == usage_date,
            ).scalar()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _increment_fallback(self, db: Session, user_id: str, usage_date: date) -> None:
        """Dialects without ON CONFLICT: in-database UPDATE, INSERT on miss, retry once on a lost insert race"""
        for _ in range(2):
            updated = db.query(DailyUsage).filter(
                DailyUsage.user_id == user_id,
                DailyUsage.usage_date == usage_date,
            ).update(
                {DailyUsage.query_count: DailyUsage.query_count + 1, DailyUsage.updated_at: utcnow()},
                synchronize_session=False,
            )
            if updated:
                db.commit()
                return
            try:
                db.add(DailyUsage(user_id=user_id, usage_date=usage_date, query_count=1))
                db.commit()
                return
            except IntegrityError:
                db.rollback()
        raise RuntimeError(f"Could not increment usage for user {user_id}")

    def history(self, user_id: str, days: int) -> List[DailyUsageEntry]:
        db = self.session_factory()
        try:
            self._require_user(db, user_id)
            rows = db.query(DailyUsage).filter(
                DailyUsage.user_id == user_id
            ).order_by(DailyUsage.usage_date.desc()).limit(days).all()
            return [DailyUsageEntry(usage_date=r.usage_date, query_count=r.query_count) for r in rows]
        finally:
            db.close()

    def register_user(self, user_id, email=None, name=None, plan=Plan.FREE.value, plan_expires_at=None) -> None:
        db = self.session_factory()
        try:
            if db.query(User.id).filter(User.id == user_id).first():
                return
            db.add(User(id=user_id, email=email, name=name, plan=plan, plan_expires_at=plan_expires_at))
            db.commit()
        except IntegrityError:
            db.rollback()
        finally:
            db.close()


class MemoryUsageBackend(UsageBackend):
    """
    In-process backend; counters and plans are lost on restart.
    Any user id the token layer vouches for is known here: an unseen id starts on the free plan.
    """

    backend_name = "memory"

    def __init__(self):
        self._plans: Dict[str, PlanState] = {}
        self._counts: Dict[Tuple[str, date], int] = {}
        self._lock = threading.Lock()

    def _ensure_user(self, user_id: str) -> PlanState:
        state = self._plans.get(user_id)
        if state is None:
            state = PlanState(user_id=user_id, plan=Plan.FREE.value, plan_expires_at=None)
            self._plans[user_id] = state
        return state

    def get_plan(self, user_id: str) -> PlanState:
        with self._lock:
            return self._ensure_user(user_id)

    def set_plan(self, user_id, plan, plan_expires_at) -> None:
        with self._lock:
            self._plans[user_id] = PlanState(user_id=user_id, plan=plan, plan_expires_at=plan_expires_at)

    def get_count(self, user_id: str, usage_date: date) -> int:
        with self._lock:
            return self._counts.get((user_id, usage_date), 0)

    def increment(self, user_id: str, usage_date: date) -> int:
        with self._lock:
            self._ensure_user(user_id)
            key = (user_id, usage_date)
            self._counts[key] = self._counts.get(key, 0) + 1
            return self._counts[key]

    def history(self, user_id: str, days: int) -> List[DailyUsageEntry]:
        with self._lock:
            self._ensure_user(user_id)
            entries = [
                DailyUsageEntry(usage_date=d, query_count=count)
                for (uid, d), count in self._counts.items()
                if uid == user_id
            ]
        entries.sort(key=lambda e: e.usage_date, reverse=True)
        return entries[:days]

    def register_user(self, user_id, email=None, name=None, plan=Plan.FREE.value, plan_expires_at=None) -> None:
        with self._lock:
            self._plans.setdefault(user_id, PlanState(user_id=user_id, plan=plan, plan_expires_at=plan_expires_at))


# =============================================================================
# TRACKER
# =============================================================================

class UsageTracker:
    """Quota checks on top of a usage backend"""

    def __init__(self, backend: UsageBackend, free_daily_limit: Optional[int] = None):
        self.backend = backend
        self.free_daily_limit = settings.FREE_DAILY_LIMIT if free_daily_limit is None else free_daily_limit

    @staticmethod
    def effective_plan(state: PlanState, now: Optional[datetime] = None) -> str:
        """Pro counts only while unexpired; the stored plan is left untouched"""
        if state.plan != Plan.PRO.value:
            return Plan.FREE.value
        now = now or utcnow()
        if state.plan_expires_at is None or state.plan_expires_at > now:
            return Plan.PRO.value
        return Plan.FREE.value

    def check(self, user_id: str) -> UsageState:
        """
        Current daily usage against the user's effective plan.

        Raises:
            NotFoundError: if the user does not exist (durable backend only)
        """
        plan = self.effective_plan(self.backend.get_plan(user_id))
        current_usage = self.backend.get_count(user_id, today())

        if plan == Plan.PRO.value:
            return UsageState(
                daily_limit=UNLIMITED,
                current_usage=current_usage,
                remaining=UNLIMITED,
                is_exceeded=False,
                plan=plan,
            )

        daily_limit = self.free_daily_limit
        return UsageState(
            daily_limit=daily_limit,
            current_usage=current_usage,
            remaining=max(0, daily_limit - current_usage),
            is_exceeded=current_usage >= daily_limit,
            plan=plan,
        )

    def increment(self, user_id: str) -> UsageState:
        """Count one query for today (the ceiling is not enforced here) and return the fresh state"""
        count = self.backend.increment(user_id, today())
        logger.debug(f"[USAGE] user={user_id} count={count}")
        return self.check(user_id)

    def upgrade(self, user_id: str) -> UsageState:
        """Switch to pro for one calendar month from now (replaces any previous expiry)"""
        expires_at = add_one_month(utcnow())
        self.backend.set_plan(user_id, Plan.PRO.value, expires_at)
        logger.info(f"User {user_id} upgraded to PRO until {expires_at.isoformat()}")
        return self.check(user_id)

    def history(self, user_id: str, days: int = 30) -> List[DailyUsageEntry]:
        return self.backend.history(user_id, days)

    def plan_state(self, user_id: str) -> PlanState:
        return self.backend.get_plan(user_id)
