"""analysis_snapshots table."""

from sqlalchemy import Integer, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from depsentinel.core.database import Base, TimestampMixin


class AnalysisSnapshot(TimestampMixin, Base):
    """The persisted current analysis of one project (one row per project)."""

    __tablename__ = "analysis_snapshots"

    project_key: Mapped[str] = mapped_column(Text, primary_key=True)
    schema_version: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("1")
    )
    # JSON envelope produced by SnapshotService
    payload: Mapped[str] = mapped_column(Text, nullable=False)
