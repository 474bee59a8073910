"""SQLAlchemy ORM models — one file per table."""

from depsentinel.models.analysis_snapshot import AnalysisSnapshot

__all__ = ["AnalysisSnapshot"]
