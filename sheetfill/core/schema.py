from __future__ import annotations

from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field

CellValue = Union[str, int, float, None]


class ProcessorTier(str, Enum):
    LITE = "lite"
    BASE = "base"
    CORE = "core"
    PRO = "pro"

    @property
    def description(self) -> str:
        return PROCESSOR_DESCRIPTIONS[self]


PROCESSOR_DESCRIPTIONS: dict[ProcessorTier, str] = {
    ProcessorTier.LITE: "Basic information retrieval",
    ProcessorTier.BASE: "Simple web research",
    ProcessorTier.CORE: "Complex web research",
    ProcessorTier.PRO: "Exploratory web research",
}


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RowJob(WireModel):
    row: int = Field(ge=1)
    context: dict[str, CellValue] = Field(default_factory=dict)
    target_headers: list[str] = Field(alias="targetHeaders")
    target_cols: list[int] = Field(alias="targetCols")


class SelectionBounds(WireModel):
    start_row: int = Field(alias="startRow")
    end_row: int = Field(alias="endRow")
    start_col: int = Field(alias="startCol")
    end_col: int = Field(alias="endCol")


class SheetSnapshot(WireModel):
    headers: list[str] = Field(default_factory=list)
    rows: list[list[CellValue]] = Field(default_factory=list)


class SubmitRequest(WireModel):
    sheet: SheetSnapshot | None = None
    selection: SelectionBounds | None = None
    rows: list[RowJob] = Field(default_factory=list)
    processor: ProcessorTier = ProcessorTier.LITE


class RunMapEntry(WireModel):
    row: int
    target_cols: list[int] = Field(alias="targetCols")
    target_headers: list[str] = Field(alias="targetHeaders")


class SubmitResponse(WireModel):
    taskgroup_id: str
    run_map: dict[str, RunMapEntry] = Field(default_factory=dict)


class CancelResponse(WireModel):
    success: bool = True
    message: str = "Client-side cancellation initiated"
    note: str = "Tasks will continue on server but results will not be processed"
