"""
============================================================
 Focus Timer — Database Models & Session Management
 Timer state, pause history and finished sessions in
 focus_timer.db via SQLAlchemy.
============================================================
"""

import json
import logging
from datetime import datetime

from sqlalchemy import Column, DateTime, Float, Integer, String, Text, create_engine, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, scoped_session, sessionmaker

from focustimer import config
from focustimer.errors import StorageWriteFailure

log = logging.getLogger(__name__)

Base = declarative_base()


class StateRecord(Base):
    """One persisted key → JSON value (timer_state, task_times)."""
    __tablename__ = "state"

    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<StateRecord {self.key}>"


class PauseEvent(Base):
    """An automatic pause requested by the presence gate."""
    __tablename__ = "pause_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
    reason = Column(String(20), nullable=False)             # FACE_LOST, FATIGUE, LOW_ATTENTION
    task_id = Column(String(100), nullable=True)
    elapsed_ms = Column(Integer, nullable=True)
    attention_score = Column(Float, nullable=True)
    fatigue_level = Column(String(10), nullable=True)
    ear_value = Column(Float, nullable=True)
    mar_value = Column(Float, nullable=True)
    blink_rate = Column(Float, nullable=True)

    def __repr__(self):
        return f"<PauseEvent #{self.id} [{self.reason}] {self.task_id} @ {self.timestamp}>"

    def to_dict(self):
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "reason": self.reason,
            "task_id": self.task_id,
            "elapsed_ms": self.elapsed_ms,
            "attention_score": self.attention_score,
            "fatigue_level": self.fatigue_level,
            "ear_value": self.ear_value,
            "mar_value": self.mar_value,
            "blink_rate": self.blink_rate,
        }


class TimerSession(Base):
    """A stopped timer run."""
    __tablename__ = "timer_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(String(100), nullable=False)
    elapsed_ms = Column(Integer, nullable=False, default=0)
    ended_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<TimerSession #{self.id} {self.task_id} {self.elapsed_ms}ms>"

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "elapsed_ms": self.elapsed_ms,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }


class Storage:
    """Engine + scoped session bound to one database URI."""

    def __init__(self, uri: str | None = None):
        self.uri = uri or config.DATABASE_URI
        connect_args = {"check_same_thread": False} if self.uri.startswith("sqlite") else {}
        self.engine = create_engine(self.uri, echo=False, connect_args=connect_args)
        self.Session = scoped_session(sessionmaker(bind=self.engine))

    def init_db(self):
        """Create all tables if they don't exist."""
        Base.metadata.create_all(self.engine)
        log.info("[DB] Ready: %s", self.uri)

    def close(self):
        self.Session.remove()
        self.engine.dispose()

    # ── Key/value state ──────────────────────────────────────

    def load(self, key: str, default=None):
        session = self.Session()
        try:
            record = session.get(StateRecord, key)
            if record is None:
                return default
            return json.loads(record.value)
        except (SQLAlchemyError, ValueError) as e:
            log.warning("[DB] Failed to load '%s': %s", key, e)
            return default
        finally:
            self.Session.remove()

    def save(self, key: str, value) -> None:
        """Upsert `key`. Raises StorageWriteFailure after rollback."""
        session = self.Session()
        try:
            payload = json.dumps(value)
            record = session.get(StateRecord, key)
            if record is None:
                session.add(StateRecord(key=key, value=payload))
            else:
                record.value = payload
            session.commit()
        except (SQLAlchemyError, TypeError, ValueError) as e:
            session.rollback()
            raise StorageWriteFailure(f"could not save '{key}': {e}") from e
        finally:
            self.Session.remove()

    # ── History ──────────────────────────────────────────────

    def log_pause(self, reason: str, **kwargs) -> PauseEvent | None:
        """Record an automatic pause. Thread-safe."""
        session = self.Session()
        try:
            event = PauseEvent(
                reason=reason,
                task_id=kwargs.get("task_id"),
                elapsed_ms=kwargs.get("elapsed_ms"),
                attention_score=kwargs.get("attention_score"),
                fatigue_level=kwargs.get("fatigue_level"),
                ear_value=kwargs.get("ear_value"),
                mar_value=kwargs.get("mar_value"),
                blink_rate=kwargs.get("blink_rate"),
            )
            session.add(event)
            session.commit()
            session.refresh(event)
            session.expunge(event)
            return event
        except SQLAlchemyError as e:
            session.rollback()
            log.error("[DB] Failed to log pause: %s", e)
            return None
        finally:
            self.Session.remove()

    def log_session(self, task_id: str, elapsed_ms: int) -> TimerSession | None:
        session = self.Session()
        try:
            run = TimerSession(task_id=task_id, elapsed_ms=int(elapsed_ms))
            session.add(run)
            session.commit()
            session.refresh(run)
            session.expunge(run)
            return run
        except SQLAlchemyError as e:
            session.rollback()
            log.error("[DB] Failed to log session: %s", e)
            return None
        finally:
            self.Session.remove()

    def recent_pauses(self, limit: int = config.RECENT_PAUSES_LIMIT):
        """Fetch the most recent automatic pauses."""
        session = self.Session()
        try:
            events = (
                session.query(PauseEvent)
                .order_by(PauseEvent.timestamp.desc(), PauseEvent.id.desc())
                .limit(limit)
                .all()
            )
            return [e.to_dict() for e in events]
        finally:
            self.Session.remove()

    def recent_sessions(self, limit: int = config.RECENT_PAUSES_LIMIT):
        session = self.Session()
        try:
            runs = (
                session.query(TimerSession)
                .order_by(TimerSession.ended_at.desc(), TimerSession.id.desc())
                .limit(limit)
                .all()
            )
            return [r.to_dict() for r in runs]
        finally:
            self.Session.remove()

    def pause_stats(self, since=None):
        """Aggregate pause counts, optionally from `since` (datetime) onward."""
        session = self.Session()
        try:
            tf = [PauseEvent.timestamp >= since] if since else []
            total = session.query(func.count(PauseEvent.id)).filter(*tf).scalar() or 0
            by_reason = dict(
                session.query(PauseEvent.reason, func.count(PauseEvent.id))
                .filter(*tf)
                .group_by(PauseEvent.reason)
                .all()
            )
            avg_attention = session.query(func.avg(PauseEvent.attention_score)).filter(
                *tf
            ).scalar()
            return {
                "total": total,
                "face_lost": by_reason.get("FACE_LOST", 0),
                "fatigue": by_reason.get("FATIGUE", 0),
                "low_attention": by_reason.get("LOW_ATTENTION", 0),
                "avg_attention": round(avg_attention, 1) if avg_attention else None,
            }
        finally:
            self.Session.remove()
