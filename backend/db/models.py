from datetime import datetime
from sqlalchemy import (
    Column, Integer, Text, Float, Boolean, ForeignKey, ForeignKeyConstraint, Index,
    Date, DateTime, CheckConstraint,
)
from sqlalchemy.orm import relationship
from db.database import Base


HABIT_TYPES = ("build", "quit")
SCHEDULE_OPTIONS = ("interval", "weekly")


def _habit_fk() -> ForeignKeyConstraint:
    return ForeignKeyConstraint(
        ["user_email", "habit_name"],
        ["habits.user_email", "habits.habit_name"],
        ondelete="CASCADE",
        onupdate="CASCADE",
    )


class User(Base):
    __tablename__ = "users"

    email = Column(Text, primary_key=True)
    username = Column(Text, unique=True, nullable=False)
    password_hash = Column(Text, nullable=False)
    token_version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    habits = relationship(
        "Habit",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Habit(Base):
    __tablename__ = "habits"
    __table_args__ = (
        CheckConstraint("habit_type IN ('build', 'quit')", name="ck_habits_habit_type"),
        CheckConstraint("schedule_option IN ('interval', 'weekly')", name="ck_habits_schedule_option"),
    )

    user_email = Column(Text, ForeignKey("users.email", ondelete="CASCADE"), primary_key=True)
    habit_name = Column(Text, primary_key=True)
    habit_description = Column(Text, nullable=False, default="")
    habit_type = Column(Text, nullable=False)  # build | quit
    habit_color = Column(Text, nullable=False)
    schedule_option = Column(Text, nullable=False)  # interval | weekly
    goal_value = Column(Float)
    goal_unit = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="habits")
    interval = relationship(
        "HabitInterval", back_populates="habit", uselist=False, cascade="all, delete-orphan", passive_deletes=True
    )
    days = relationship("HabitDay", back_populates="habit", cascade="all, delete-orphan", passive_deletes=True)
    instances = relationship("HabitInstance", back_populates="habit", cascade="all, delete-orphan", passive_deletes=True)
    progress_rows = relationship(
        "HabitProgress", back_populates="habit", cascade="all, delete-orphan", passive_deletes=True
    )


class HabitInterval(Base):
    __tablename__ = "habit_intervals"
    __table_args__ = (
        _habit_fk(),
        CheckConstraint("increment > 0", name="ck_habit_intervals_increment_positive"),
    )

    user_email = Column(Text, primary_key=True)
    habit_name = Column(Text, primary_key=True)
    increment = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)

    habit = relationship("Habit", back_populates="interval")


class HabitDay(Base):
    __tablename__ = "habit_days"
    __table_args__ = (_habit_fk(),)

    user_email = Column(Text, primary_key=True)
    habit_name = Column(Text, primary_key=True)
    day = Column(Text, primary_key=True)  # Monday .. Sunday

    habit = relationship("Habit", back_populates="days")


class HabitInstance(Base):
    __tablename__ = "habit_instances"
    __table_args__ = (
        _habit_fk(),
        Index("idx_habit_instances_user_due", "user_email", "due_date"),
    )

    user_email = Column(Text, primary_key=True)
    habit_name = Column(Text, primary_key=True)
    due_date = Column(Date, primary_key=True)

    habit = relationship("Habit", back_populates="instances")


class HabitProgress(Base):
    __tablename__ = "habit_progress"
    __table_args__ = (
        _habit_fk(),
        Index("idx_habit_progress_user_date", "user_email", "progress_date"),
    )

    user_email = Column(Text, primary_key=True)
    habit_name = Column(Text, primary_key=True)
    progress_date = Column(Date, primary_key=True)
    progress = Column(Float, nullable=False, default=0.0)
    completed = Column(Boolean, nullable=False, default=False)
    streak = Column(Integer, nullable=False, default=0)

    habit = relationship("Habit", back_populates="progress_rows")
