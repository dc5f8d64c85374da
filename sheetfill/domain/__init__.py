"""Domain layer definitions."""

from .grid import Cell, GridView, Point, Selection, Sheet
from .runs import CorrelationTable, JobSpec, PendingSet, RunEntry, RunOutcome, RunState, RunSummary

__all__ = [
    "Cell",
    "CorrelationTable",
    "GridView",
    "JobSpec",
    "PendingSet",
    "Point",
    "RunEntry",
    "RunOutcome",
    "RunState",
    "RunSummary",
    "Selection",
    "Sheet",
]
