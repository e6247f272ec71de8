from sqlalchemy import (
    Column, Integer, String, DateTime, Date, Boolean,
    ForeignKey, UniqueConstraint, CheckConstraint, TypeDecorator
)
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime
from typing import Dict
import uuid

import pytz

from engagement.constants import TaskConstants, StreakConstants

Base = declarative_base()


def _utcnow():
    return datetime.now(pytz.utc)


def _new_task_id():
    return uuid.uuid4().hex


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, hands back aware UTC datetimes."""
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("Naive datetimes cannot be stored; attach a time zone first")
        return value.astimezone(pytz.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=pytz.utc)


class DailyRecord(Base):
    """
    One user's task checklist for one calendar day.

    A record's day never changes. When a request observes a record from an
    earlier day, a new record is created for today and the old one is left
    for housekeeping.
    """
    __tablename__ = 'daily_records'

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    day = Column(Date, nullable=False)
    last_completed_at = Column(UTCDateTime, nullable=True)

    # Optimistic concurrency token, bumped by the ORM on every UPDATE
    version = Column(Integer, nullable=False)

    created_at = Column(UTCDateTime, default=_utcnow)

    slots = relationship(
        "TaskSlot",
        back_populates="record",
        cascade="all, delete-orphan",
        order_by="TaskSlot.slot_number",
        lazy="selectin"
    )

    __table_args__ = (UniqueConstraint('user_id', 'day', name='uq_daily_record_user_day'),)
    __mapper_args__ = {"version_id_col": version}

    @property
    def completed_count(self) -> int:
        return sum(1 for slot in self.slots if slot.completed)

    @property
    def is_full(self) -> bool:
        return self.completed_count >= TaskConstants.DAILY_SLOT_COUNT

    def slot_by_number(self, slot_number: int):
        for slot in self.slots:
            if slot.slot_number == slot_number:
                return slot
        return None

    def slot_by_task_id(self, task_id: str):
        for slot in self.slots:
            if slot.task_id == task_id:
                return slot
        return None

    @classmethod
    def fresh(cls, user_id: str, day, now: datetime) -> "DailyRecord":
        """Build a record with every slot open."""
        record = cls(user_id=user_id, day=day, created_at=now)
        record.slots = [
            TaskSlot(slot_number=number, task_id=_new_task_id(), completed=False)
            for number in range(1, TaskConstants.DAILY_SLOT_COUNT + 1)
        ]
        return record

    def __repr__(self):
        return f"<DailyRecord(user_id='{self.user_id}', day={self.day}, completed={self.completed_count})>"


class TaskSlot(Base):
    __tablename__ = 'task_slots'

    id = Column(Integer, primary_key=True)
    record_id = Column(Integer, ForeignKey('daily_records.id', ondelete='CASCADE'), nullable=False, index=True)
    slot_number = Column(Integer, nullable=False)

    # Stable external handle; the slot number is the key inside a record
    task_id = Column(String(32), nullable=False, unique=True, default=_new_task_id)

    completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(UTCDateTime, nullable=True)

    record = relationship("DailyRecord", back_populates="slots")

    __table_args__ = (
        UniqueConstraint('record_id', 'slot_number', name='uq_task_slot_record_number'),
        CheckConstraint(
            f'slot_number >= 1 AND slot_number <= {TaskConstants.DAILY_SLOT_COUNT}',
            name='ck_task_slot_number_range'
        ),
    )

    def __repr__(self):
        return f"<TaskSlot(number={self.slot_number}, completed={self.completed})>"


class PointsAccount(Base):
    """Cached point balance per user; the ledger below is the audit trail."""
    __tablename__ = 'points_accounts'

    user_id = Column(String(64), primary_key=True)
    display_name = Column(String(100), nullable=False)
    total_points = Column(Integer, nullable=False, default=0)

    # When the current total was reached, used to order users with equal totals
    reached_at = Column(UTCDateTime, nullable=False, default=_utcnow)

    created_at = Column(UTCDateTime, default=_utcnow)
    updated_at = Column(UTCDateTime, default=_utcnow)

    history = relationship("PointsLedgerEntry", back_populates="account", cascade="all, delete-orphan")

    __table_args__ = (CheckConstraint('total_points >= 0', name='ck_points_account_non_negative'),)

    def __repr__(self):
        return f"<PointsAccount(user_id='{self.user_id}', points={self.total_points})>"


class PointsLedgerEntry(Base):
    """
    Append-only point credit history.

    Each entry records the credited amount, the reason and the balance after
    the credit, written in the same transaction as the action that earned it.
    """
    __tablename__ = 'points_ledger'

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), ForeignKey('points_accounts.user_id'), nullable=False, index=True)

    change_amount = Column(Integer, nullable=False)
    reason = Column(String(64), nullable=False)  # e.g. "TASK_COMPLETION", "STREAK_CHECK_IN"
    balance_after = Column(Integer, nullable=False)

    # External task id for completions, nothing for check-ins
    related_task_id = Column(String(32), nullable=True)

    timestamp = Column(UTCDateTime, default=_utcnow)

    account = relationship("PointsAccount", back_populates="history")

    __table_args__ = (CheckConstraint('change_amount > 0', name='ck_points_ledger_positive'),)

    def __repr__(self):
        return f"<PointsLedgerEntry(user_id='{self.user_id}', change={self.change_amount}, reason='{self.reason}')>"


class StreakRecord(Base):
    """Weekly check-in grid, one row per user."""
    __tablename__ = 'streak_records'

    user_id = Column(String(64), primary_key=True)

    mon = Column(Boolean, nullable=False, default=False)
    tue = Column(Boolean, nullable=False, default=False)
    wed = Column(Boolean, nullable=False, default=False)
    thu = Column(Boolean, nullable=False, default=False)
    fri = Column(Boolean, nullable=False, default=False)
    sat = Column(Boolean, nullable=False, default=False)
    sun = Column(Boolean, nullable=False, default=False)

    # Weekday flags alone cannot tell this Monday from last Monday
    last_check_in_date = Column(Date, nullable=True)
    week_start = Column(Date, nullable=True)  # Monday the flags belong to

    version = Column(Integer, nullable=False)
    updated_at = Column(UTCDateTime, default=_utcnow)

    __mapper_args__ = {"version_id_col": version}

    @property
    def days(self) -> Dict[str, bool]:
        return {key: bool(getattr(self, key)) for key in StreakConstants.WEEKDAY_KEYS}

    @property
    def days_checked_in(self) -> int:
        return sum(1 for checked in self.days.values() if checked)

    def clear_week(self):
        for key in StreakConstants.WEEKDAY_KEYS:
            setattr(self, key, False)

    def __repr__(self):
        return f"<StreakRecord(user_id='{self.user_id}', week_start={self.week_start}, days={self.days_checked_in})>"
