from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import DateTime, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from clubhouse.database.tables.base_class import Base


class Links(Base):
    """Links attached to posts. ``metadata`` holds the fetched preview."""

    __tablename__ = "links"

    id: Mapped[UUID] = mapped_column(primary_key=True)
    post_id: Mapped[Optional[UUID]] = mapped_column(nullable=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)

    # "metadata" is reserved on declarative classes
    link_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(
        "metadata", JSONB, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
