#!filepath: batchscore/tables/writer.py
from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pyarrow as pa
import pyarrow.csv as csv

from batchscore.pipeline.record import Record, Schema


def render_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return repr(value)
    return str(value)


class RecordSink(ABC):
    """A tap records are written to, in the order given."""

    def __init__(self, schema: Schema):
        self.schema = tuple(schema)
        self.rows_written = 0

    @abstractmethod
    def write(self, records: Iterable[Record]) -> None:
        ...

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class MemorySink(RecordSink):
    """Keeps projected rows in memory."""

    def __init__(self, schema: Schema):
        super().__init__(schema)
        self.rows: List[Record] = []

    def write(self, records: Iterable[Record]) -> None:
        for r in records:
            self.rows.append({f: r.get(f) for f in self.schema})
            self.rows_written += 1


class TsvSink(RecordSink):
    """
    Delimited text writer (incremental), plain TSV.

    - opened lazily, so the header is written even when no record arrives
    - rows are projected onto the sink schema; absent fields are empty
    - cells are written unquoted; a batch holding a value with the
      delimiter, a quote or a line break is written with quoted cells
    """

    def __init__(self, path: str | Path, schema: Schema, delimiter: str = "\t"):
        super().__init__(schema)
        self.path = Path(path)
        self.delimiter = delimiter
        self.arrow_schema = pa.schema([(name, pa.string()) for name in self.schema])
        self.stream: Optional[pa.NativeFile] = None
        self.closed = False
        self._special = (delimiter, '"', "\n", "\r")

    def _open(self) -> pa.NativeFile:
        if self.stream is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.stream = pa.OSFile(str(self.path), mode="w")
            self.stream.write((self.delimiter.join(self.schema) + "\n").encode("utf-8"))
        return self.stream

    def _quoting(self, columns: Dict[str, List[Optional[str]]]) -> str:
        for values in columns.values():
            for v in values:
                if v is not None and any(c in v for c in self._special):
                    return "needed"
        return "none"

    def write(self, records: Iterable[Record]) -> None:
        records = list(records)
        if not records:
            return

        columns = {name: [render_value(r.get(name)) for r in records] for name in self.schema}
        table = pa.table(
            {name: pa.array(values, type=pa.string()) for name, values in columns.items()},
            schema=self.arrow_schema,
        )
        csv.write_csv(
            table,
            self._open(),
            write_options=csv.WriteOptions(
                include_header=False,
                delimiter=self.delimiter,
                quoting_style=self._quoting(columns),
            ),
        )
        self.rows_written += len(records)

    def close(self) -> None:
        if self.closed:
            return
        self._open().close()
        self.closed = True
