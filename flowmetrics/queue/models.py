import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from flowmetrics.models.base import Base, enum_column_type, generate_uuid

MAX_ATTEMPTS = 3


class EventSource(str, enum.Enum):
    GITHUB = "github"
    JIRA = "jira"
    DEPLOYMENT = "deployment"
    INCIDENT = "incident"


class QueueStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    DEAD_LETTERED = "dead_lettered"

    @property
    def is_terminal(self) -> bool:
        return self is not QueueStatus.PENDING


class IllegalQueueTransitionError(Exception):
    def __init__(self, item_id: uuid.UUID, status: QueueStatus):
        super().__init__(f"Queue item {item_id} is already {status.value}")
        self.item_id = item_id
        self.status = status


class EventQueueItem(Base):
    __tablename__ = "event_queue"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid)
    event_source: Mapped[EventSource] = mapped_column(enum_column_type(EventSource), nullable=False)
    event_kind: Mapped[str | None] = mapped_column(String(100))
    signature: Mapped[str | None] = mapped_column(String(255))
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    status: Mapped[QueueStatus] = mapped_column(
        enum_column_type(QueueStatus), nullable=False, default=QueueStatus.PENDING, index=True
    )
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text)
    enqueued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def mark_completed(self, now: datetime) -> None:
        if self.status.is_terminal:
            raise IllegalQueueTransitionError(self.id, self.status)
        self.status = QueueStatus.COMPLETED
        self.processed_at = now

    def record_failure(self, error: str) -> QueueStatus:
        """Count a failed attempt; dead-letter once MAX_ATTEMPTS is reached."""
        if self.status.is_terminal:
            raise IllegalQueueTransitionError(self.id, self.status)
        self.attempt_count += 1
        self.last_error = error
        if self.attempt_count >= MAX_ATTEMPTS:
            self.status = QueueStatus.DEAD_LETTERED
        return self.status
