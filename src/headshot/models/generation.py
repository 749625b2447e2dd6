"""Generation entity - one AI headshot job with lifecycle status tracking."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime
from sqlmodel import Field, SQLModel

from headshot.core.timezone import utcnow


class GenerationStatus(str, Enum):
    """Generation lifecycle status."""

    PENDING_PAYMENT = "PENDING_PAYMENT"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Gender(str, Enum):
    """Gender option accepted by the headshot model."""

    MALE = "male"
    FEMALE = "female"


class Background(str, Enum):
    """Background option accepted by the headshot model."""

    NEUTRAL = "neutral"
    OFFICE = "office"
    CITY = "city"
    NATURE = "nature"


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid generation state transition."""

    pass


class Generation(SQLModel, table=True):
    """Generation ties one input image and option set to one purchase attempt.

    ``image_url`` is set if and only if ``status`` is COMPLETED.
    """

    __tablename__ = "generations"  # type: ignore[assignment]
    __table_args__ = (
        CheckConstraint(
            "(status = 'COMPLETED') = (image_url IS NOT NULL)",
            name="ck_generations_image_url_iff_completed",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    gender: str = Field(max_length=16)
    background: str = Field(max_length=32)
    input_image_url: str = Field(max_length=2048)
    image_url: Optional[str] = Field(default=None, max_length=2048)
    status: GenerationStatus = Field(default=GenerationStatus.PENDING_PAYMENT, index=True)
    retry_count: int = Field(default=0, ge=0)
    error_message: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    def mark_processing(self) -> None:
        """Transition from pending payment to processing.

        Raises:
            InvalidStateTransition: If current status is not PENDING_PAYMENT
        """
        if self.status != GenerationStatus.PENDING_PAYMENT:
            raise InvalidStateTransition(
                f"Cannot mark processing from {self.status.value}. "
                "Generation must be in PENDING_PAYMENT state."
            )
        self.status = GenerationStatus.PROCESSING
        self.image_url = None

    def mark_retrying(self) -> None:
        """Transition from failed back to processing, counting the retry.

        Raises:
            InvalidStateTransition: If current status is not FAILED
        """
        if self.status != GenerationStatus.FAILED:
            raise InvalidStateTransition(
                f"Cannot retry from {self.status.value}. Generation must be in FAILED state."
            )
        self.retry_count += 1
        self.status = GenerationStatus.PROCESSING

    def mark_completed(self, image_url: str) -> None:
        """Transition from processing to completed.

        Args:
            image_url: Stable hosted URL of the generated headshot

        Raises:
            InvalidStateTransition: If current status is not PROCESSING
            ValueError: If image_url is empty
        """
        if self.status != GenerationStatus.PROCESSING:
            raise InvalidStateTransition(
                f"Cannot mark completed from {self.status.value}. "
                "Generation must be in PROCESSING state."
            )
        if not image_url:
            raise ValueError("image_url is required")
        self.image_url = image_url
        self.error_message = None
        self.status = GenerationStatus.COMPLETED

    def mark_failed(self, reason: str) -> None:
        """Transition from processing to failed.

        Args:
            reason: Failure description (truncated to 1000 characters)

        Raises:
            InvalidStateTransition: If current status is not PROCESSING
        """
        if self.status != GenerationStatus.PROCESSING:
            raise InvalidStateTransition(
                f"Cannot mark failed from {self.status.value}. "
                "Generation must be in PROCESSING state."
            )
        self.image_url = None
        self.error_message = reason[:1000]
        self.status = GenerationStatus.FAILED
