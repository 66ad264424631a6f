"""
SQLAlchemy-backed TrainingStore.

Works with SQLite (tests, single host) and PostgreSQL. The claim is a single
conditional UPDATE ... WHERE processed_for_training = false RETURNING, with
candidate rows locked FOR UPDATE SKIP LOCKED on backends that support it, so
concurrent callers can never claim the same record twice.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    func,
    insert,
    or_,
    select,
    update,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from curation.classification.schema import ClassificationRecord, ThreatCategory
from curation.conversation.schema import Conversation, Message
from curation.core.exceptions import StoreError
from curation.examples.schema import TrainingExample

from backend.training.schema import FineTuningJob, JobStatus, PerformanceRecord

from .base import TrainingStore

logger = logging.getLogger("backend.store")

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo; every stored timestamp is UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class ConversationRow(Base):
    __tablename__ = "conversations"

    conversation_id = Column(String(128), primary_key=True)
    messages = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class ClassificationRow(Base):
    __tablename__ = "classification_records"

    conversation_id = Column(String(128), primary_key=True)
    is_security_related = Column(Boolean, nullable=False, default=False, index=True)
    confidence = Column(Float, nullable=False, default=0.0)
    threat_category = Column(String(64), nullable=True)
    matched_keywords = Column(JSON, nullable=False, default=list)
    keyword_match_count = Column(Integer, nullable=False, default=0)
    message_count = Column(Integer, nullable=False, default=0)
    processed_for_training = Column(Boolean, nullable=False, default=False, index=True)
    claimed_job_id = Column(String(64), nullable=True, index=True)
    classified_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class JobRow(Base):
    __tablename__ = "fine_tuning_jobs"

    id = Column(String(64), primary_key=True)
    job_name = Column(String(255), nullable=False)
    model_type = Column(String(128), nullable=False)
    base_model = Column(String(255), nullable=False)
    status = Column(String(32), nullable=False, index=True)
    training_data_count = Column(Integer, nullable=False, default=0)
    hyperparameters = Column(JSON, nullable=False, default=dict)
    provider_job_id = Column(String(255), nullable=True)
    fine_tuned_model_id = Column(String(255), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)


class TrainingExampleRow(Base):
    __tablename__ = "training_examples"

    example_id = Column(String(64), primary_key=True)
    job_id = Column(String(64), nullable=False, index=True)
    conversation_id = Column(String(128), nullable=False)
    system_prompt = Column(Text, nullable=False)
    user_message = Column(Text, nullable=False)
    assistant_response = Column(Text, nullable=False)
    quality_score = Column(Float, nullable=False)
    threat_category = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class PerformanceRow(Base):
    __tablename__ = "model_performance"

    record_id = Column(String(64), primary_key=True)
    model_id = Column(String(255), nullable=False, index=True)
    job_id = Column(String(64), nullable=True)
    evaluation_type = Column(String(64), nullable=False)
    score = Column(Float, nullable=False)
    test_data_size = Column(Integer, nullable=False)
    evaluation_date = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class LeaseRow(Base):
    __tablename__ = "scheduler_leases"

    name = Column(String(128), primary_key=True)
    holder = Column(String(128), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)


def create_store_engine(database_url: str) -> Engine:
    """
    Create an engine; in-memory SQLite shares one connection across threads.
    """

    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, pool_pre_ping=True)


def _record_from_row(row: ClassificationRow) -> ClassificationRecord:
    return ClassificationRecord(
        conversation_id=row.conversation_id,
        is_security_related=row.is_security_related,
        confidence=row.confidence,
        threat_category=ThreatCategory(row.threat_category) if row.threat_category else None,
        matched_keywords=list(row.matched_keywords or []),
        keyword_match_count=row.keyword_match_count,
        message_count=row.message_count,
        processed_for_training=row.processed_for_training,
        claimed_job_id=row.claimed_job_id,
        classified_at=_aware(row.classified_at),
    )


def _job_from_row(row: JobRow) -> FineTuningJob:
    return FineTuningJob(
        id=row.id,
        job_name=row.job_name,
        model_type=row.model_type,
        base_model=row.base_model,
        status=JobStatus(row.status),
        training_data_count=row.training_data_count,
        hyperparameters=dict(row.hyperparameters or {}),
        provider_job_id=row.provider_job_id,
        fine_tuned_model_id=row.fine_tuned_model_id,
        error_message=row.error_message,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
        completed_at=_aware(row.completed_at),
    )


def _example_from_row(row: TrainingExampleRow) -> TrainingExample:
    return TrainingExample(
        example_id=row.example_id,
        conversation_id=row.conversation_id,
        job_id=row.job_id,
        system_prompt=row.system_prompt,
        user_message=row.user_message,
        assistant_response=row.assistant_response,
        quality_score=row.quality_score,
        threat_category=ThreatCategory(row.threat_category) if row.threat_category else None,
        created_at=_aware(row.created_at),
    )


def _performance_from_row(row: PerformanceRow) -> PerformanceRecord:
    return PerformanceRecord(
        record_id=row.record_id,
        model_id=row.model_id,
        job_id=row.job_id,
        evaluation_type=row.evaluation_type,
        score=row.score,
        test_data_size=row.test_data_size,
        evaluation_date=_aware(row.evaluation_date),
    )


def _job_values(changes: Mapping[str, Any]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for key, value in changes.items():
        if not hasattr(JobRow, key):
            raise StoreError(f"Unknown job field: {key}")
        values[key] = value.value if isinstance(value, JobStatus) else value
    return values


class SqlStore(TrainingStore):
    """
    Relational TrainingStore.

    Notes:
    - create_schema() issues CREATE TABLE IF NOT EXISTS for all tables;
      production schemas are owned by migrations elsewhere.
    - Each public method runs in its own transaction.
    """

    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None) -> None:
        if engine is None and database_url is None:
            raise StoreError("SqlStore needs a database_url or an engine")
        self.engine = engine or create_store_engine(database_url)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    def _qualifying(self, min_confidence: float):
        return (
            ClassificationRow.is_security_related.is_(True),
            ClassificationRow.processed_for_training.is_(False),
            ClassificationRow.confidence >= min_confidence,
        )

    # Conversations

    def save_conversation(self, conversation: Conversation) -> None:
        payload = [m.model_dump(mode="json") for m in conversation.messages]
        try:
            with self._sessions.begin() as session:
                row = session.get(ConversationRow, conversation.conversation_id)
                if row is None:
                    session.add(
                        ConversationRow(
                            conversation_id=conversation.conversation_id,
                            messages=payload,
                            created_at=conversation.created_at,
                        )
                    )
                else:
                    row.messages = payload
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not save conversation {conversation.conversation_id}: {exc}") from exc

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        with self._sessions() as session:
            row = session.get(ConversationRow, conversation_id)
            if row is None:
                return None
            return Conversation(
                conversation_id=row.conversation_id,
                messages=[Message(**m) for m in row.messages],
                created_at=_aware(row.created_at),
            )

    # Classification records

    def save_classification(self, record: ClassificationRecord) -> ClassificationRecord:
        try:
            return self._upsert_classification(record)
        except IntegrityError:
            # Lost an insert race with a concurrent save of the same conversation.
            logger.info("Retrying classification save for %s as update", record.conversation_id)
            return self._upsert_classification(record)
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not save classification {record.conversation_id}: {exc}") from exc

    def _upsert_classification(self, record: ClassificationRecord) -> ClassificationRecord:
        fields = {
            "is_security_related": record.is_security_related,
            "confidence": record.confidence,
            "threat_category": record.threat_category.value if record.threat_category else None,
            "matched_keywords": list(record.matched_keywords),
            "keyword_match_count": record.keyword_match_count,
            "message_count": record.message_count,
            "classified_at": record.classified_at,
        }
        with self._sessions.begin() as session:
            row = session.get(ClassificationRow, record.conversation_id)
            if row is None:
                row = ClassificationRow(
                    conversation_id=record.conversation_id,
                    processed_for_training=record.processed_for_training,
                    claimed_job_id=record.claimed_job_id,
                    **fields,
                )
                session.add(row)
            else:
                for key, value in fields.items():
                    setattr(row, key, value)
            session.flush()
            return _record_from_row(row)

    def get_classification(self, conversation_id: str) -> Optional[ClassificationRecord]:
        with self._sessions() as session:
            row = session.get(ClassificationRow, conversation_id)
            return _record_from_row(row) if row is not None else None

    def count_qualifying(self, min_confidence: float) -> int:
        stmt = select(func.count()).select_from(ClassificationRow).where(*self._qualifying(min_confidence))
        with self._sessions() as session:
            return int(session.scalar(stmt) or 0)

    def claim_batch(
        self, limit: int, min_confidence: float, job_id: Optional[str] = None
    ) -> List[ClassificationRecord]:
        candidates = (
            select(ClassificationRow.conversation_id)
            .where(*self._qualifying(min_confidence))
            .order_by(ClassificationRow.classified_at, ClassificationRow.conversation_id)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        table = ClassificationRow.__table__
        try:
            with self._sessions.begin() as session:
                ids = list(session.scalars(candidates))
                if not ids:
                    return []
                claim = (
                    update(table)
                    .where(
                        table.c.conversation_id.in_(ids),
                        table.c.processed_for_training.is_(False),
                    )
                    .values(processed_for_training=True, claimed_job_id=job_id)
                    .returning(table.c.conversation_id)
                )
                claimed_ids = list(session.scalars(claim))
                if not claimed_ids:
                    return []
                rows = session.scalars(
                    select(ClassificationRow)
                    .where(ClassificationRow.conversation_id.in_(claimed_ids))
                    .order_by(ClassificationRow.classified_at, ClassificationRow.conversation_id)
                ).all()
                return [_record_from_row(row) for row in rows]
        except SQLAlchemyError as exc:
            raise StoreError(f"Claim failed: {exc}") from exc

    def select_evaluation_sample(
        self, min_confidence: float, limit: int, exclude_job_id: Optional[str] = None
    ) -> List[ClassificationRecord]:
        stmt = select(ClassificationRow).where(
            ClassificationRow.is_security_related.is_(True),
            ClassificationRow.threat_category.is_not(None),
            ClassificationRow.confidence >= min_confidence,
        )
        if exclude_job_id is not None:
            stmt = stmt.where(
                or_(
                    ClassificationRow.claimed_job_id.is_(None),
                    ClassificationRow.claimed_job_id != exclude_job_id,
                )
            )
        stmt = stmt.order_by(
            ClassificationRow.confidence.desc(), ClassificationRow.conversation_id
        ).limit(limit)
        with self._sessions() as session:
            return [_record_from_row(row) for row in session.scalars(stmt)]

    # Jobs

    def create_job(self, job: FineTuningJob) -> FineTuningJob:
        row = JobRow(
            id=job.id,
            job_name=job.job_name,
            model_type=job.model_type,
            base_model=job.base_model,
            status=job.status.value,
            training_data_count=job.training_data_count,
            hyperparameters=dict(job.hyperparameters),
            provider_job_id=job.provider_job_id,
            fine_tuned_model_id=job.fine_tuned_model_id,
            error_message=job.error_message,
            created_at=job.created_at,
            updated_at=job.updated_at,
            completed_at=job.completed_at,
        )
        try:
            with self._sessions.begin() as session:
                session.add(row)
        except IntegrityError as exc:
            raise StoreError(f"Job already exists: {job.id}") from exc
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not create job {job.id}: {exc}") from exc
        return job

    def get_job(self, job_id: str) -> Optional[FineTuningJob]:
        with self._sessions() as session:
            row = session.get(JobRow, job_id)
            return _job_from_row(row) if row is not None else None

    def transition_job(
        self, job_id: str, expected_status: JobStatus, changes: Mapping[str, Any]
    ) -> Optional[FineTuningJob]:
        values = _job_values(changes)
        values["updated_at"] = _utcnow()
        table = JobRow.__table__
        stmt = (
            update(table)
            .where(table.c.id == job_id, table.c.status == expected_status.value)
            .values(**values)
        )
        try:
            with self._sessions.begin() as session:
                result = session.execute(stmt)
                if result.rowcount == 0:
                    if session.get(JobRow, job_id) is None:
                        raise StoreError(f"Unknown job: {job_id}")
                    return None
                row = session.get(JobRow, job_id, populate_existing=True)
                return _job_from_row(row)
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not transition job {job_id}: {exc}") from exc

    def list_jobs(self, statuses: Optional[Iterable[JobStatus]] = None) -> List[FineTuningJob]:
        stmt = select(JobRow).order_by(JobRow.created_at, JobRow.id)
        if statuses is not None:
            stmt = stmt.where(JobRow.status.in_([s.value for s in statuses]))
        with self._sessions() as session:
            return [_job_from_row(row) for row in session.scalars(stmt)]

    # Training examples

    def add_training_examples(self, job_id: str, examples: Sequence[TrainingExample]) -> int:
        try:
            with self._sessions.begin() as session:
                if session.get(JobRow, job_id) is None:
                    raise StoreError(f"Unknown job: {job_id}")
                session.add_all(
                    TrainingExampleRow(
                        example_id=e.example_id,
                        job_id=job_id,
                        conversation_id=e.conversation_id,
                        system_prompt=e.system_prompt,
                        user_message=e.user_message,
                        assistant_response=e.assistant_response,
                        quality_score=e.quality_score,
                        threat_category=e.threat_category.value if e.threat_category else None,
                        created_at=e.created_at,
                    )
                    for e in examples
                )
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not add training examples to job {job_id}: {exc}") from exc
        return len(examples)

    def list_training_examples(self, job_id: str) -> List[TrainingExample]:
        stmt = (
            select(TrainingExampleRow)
            .where(TrainingExampleRow.job_id == job_id)
            .order_by(TrainingExampleRow.created_at, TrainingExampleRow.example_id)
        )
        with self._sessions() as session:
            return [_example_from_row(row) for row in session.scalars(stmt)]

    # Performance records

    def add_performance_record(self, record: PerformanceRecord) -> PerformanceRecord:
        try:
            with self._sessions.begin() as session:
                session.add(
                    PerformanceRow(
                        record_id=record.record_id,
                        model_id=record.model_id,
                        job_id=record.job_id,
                        evaluation_type=record.evaluation_type,
                        score=record.score,
                        test_data_size=record.test_data_size,
                        evaluation_date=record.evaluation_date,
                    )
                )
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not add performance record {record.record_id}: {exc}") from exc
        return record

    def list_performance_records(self, model_id: Optional[str] = None) -> List[PerformanceRecord]:
        stmt = select(PerformanceRow).order_by(PerformanceRow.evaluation_date)
        if model_id is not None:
            stmt = stmt.where(PerformanceRow.model_id == model_id)
        with self._sessions() as session:
            return [_performance_from_row(row) for row in session.scalars(stmt)]

    # Leases

    def acquire_lease(self, name: str, holder: str, ttl_seconds: int) -> bool:
        now = _utcnow()
        expires_at = now + timedelta(seconds=ttl_seconds)
        table = LeaseRow.__table__

        try:
            with self._sessions.begin() as session:
                result = session.execute(
                    update(table)
                    .where(
                        table.c.name == name,
                        or_(table.c.holder == holder, table.c.expires_at < now),
                    )
                    .values(holder=holder, expires_at=expires_at)
                )
                if result.rowcount:
                    return True

            with self._sessions.begin() as session:
                session.execute(insert(table).values(name=name, holder=holder, expires_at=expires_at))
        except IntegrityError:
            return False
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not acquire lease {name}: {exc}") from exc
        return True

    def release_lease(self, name: str, holder: str) -> None:
        table = LeaseRow.__table__
        try:
            with self._sessions.begin() as session:
                session.execute(delete(table).where(table.c.name == name, table.c.holder == holder))
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not release lease {name}: {exc}") from exc
