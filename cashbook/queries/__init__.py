"""Report summaries package."""

from cashbook.queries.summaries import SummaryExecutor

__all__ = ["SummaryExecutor"]
