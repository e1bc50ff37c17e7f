# batchscore/pipeline/stage.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Union

from batchscore.pipeline.record import Record, Schema, TrapRecord
from batchscore.utils.errors import FieldCollision, MissingRequiredField


class Stage(ABC):
    """
    Pipeline Stage base class (FINAL / FROZEN)

    Responsibilities:
      1. declare required input fields / appended output fields
      2. map one record to one record, or to one TrapRecord

    Rules:
      - process() is pure: no shared mutable state across records
      - process() never mutates its input record
      - per-record failures are returned as TrapRecord, never raised
      - schema problems are found by bind() at build time
    """

    # whether rejected records can come out of this stage
    traps: bool = True

    @property
    def stage_name(self) -> str:
        return self.__class__.__name__

    # --------------------------------------------------
    # schema contract
    # --------------------------------------------------
    def required_fields(self) -> Schema:
        return ()

    def declared_fields(self) -> Schema:
        return ()

    def bind(self, upstream: Schema) -> Schema:
        """
        Check this stage against the upstream schema and return the
        schema it produces. Raises at build time only.
        """
        missing = [f for f in self.required_fields() if f not in upstream]
        if missing:
            raise MissingRequiredField(self.stage_name, missing, upstream)

        collisions = [f for f in self.declared_fields() if f in upstream]
        if collisions:
            raise FieldCollision(self.stage_name, collisions)

        return tuple(upstream) + tuple(self.declared_fields())

    # --------------------------------------------------
    # record contract
    # --------------------------------------------------
    @abstractmethod
    def process(self, record: Record) -> Union[Record, TrapRecord]:
        raise NotImplementedError

    def assertion_failed(self, record: Record) -> bool:
        """True when a processed record violates a strict assertion."""
        return False

    def trap(self, record: Record, reason: str) -> TrapRecord:
        return TrapRecord(record=dict(record), reason=reason, stage=self.stage_name)

    def describe(self) -> str:
        return self.stage_name
