# batchscore/pipeline/record.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple, Union

Record = Dict[str, Any]
Schema = Tuple[str, ...]


@dataclass(frozen=True)
class TrapRecord:
    """
    A record a stage refused, plus why.

    Trap records are ordinary data: stages return them instead of raising,
    the runner routes them to the trap sink.
    """

    record: Record
    reason: str
    stage: str

    def to_row(self, reason_field: str) -> Record:
        row = dict(self.record)
        row[reason_field] = f"[{self.stage}] {self.reason}"
        return row


# what the reader hands the runner: rows, plus rows it already refused
Partition = List[Union[Record, TrapRecord]]


def extend_schema(upstream: Schema, fields: Tuple[str, ...]) -> Schema:
    return tuple(upstream) + tuple(f for f in fields if f not in upstream)
