# batchscore/pipeline/reference.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from batchscore.pipeline.record import Record, Schema
from batchscore.utils.errors import DuplicateReferenceKey, MissingRequiredField


@dataclass(frozen=True)
class ReferenceTable:
    """
    Known-good results, keyed for a broadcast hash join.

    - key_field: join key, present in the reference and the scored records
    - fields: reference columns other than the key, in file order
    """

    key_field: str
    fields: Schema
    rows: Dict[str, Record]

    @classmethod
    def from_records(
        cls,
        records: Iterable[Record],
        *,
        schema: Schema,
        key_field: str,
    ) -> "ReferenceTable":
        if key_field not in schema:
            raise MissingRequiredField("ReferenceTable", [key_field], schema)

        fields = tuple(f for f in schema if f != key_field)
        rows: Dict[str, Record] = {}

        for record in records:
            key = record.get(key_field)
            if key is None:
                continue
            if key in rows:
                raise DuplicateReferenceKey(key_field, key)
            rows[key] = {f: record.get(f) for f in fields}

        return cls(key_field=key_field, fields=fields, rows=rows)

    def lookup(self, key: Any) -> Optional[Record]:
        return self.rows.get(key)

    def __len__(self) -> int:
        return len(self.rows)
