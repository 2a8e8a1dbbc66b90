from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, DateTime, ForeignKey, func
from sqlalchemy.dialects.postgresql import UUID
from runpool.db import Base

class RankSnapshot(Base):
    """
    Server-held standings per challenge, one row per ranked user.
      - rank          => rank at the latest computation
      - previous_rank => rank before the latest change of `rank` (NULL until it moves)
    Rank deltas are measured against previous_rank so every viewer sees the same
    movement until standings change again. Best-effort, never a source of truth.
    """
    __tablename__ = "rank_snapshots"

    challenge_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("challenges.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
