#!filepath: batchscore/tables/reader.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Iterator, List, Tuple

import pyarrow as pa
import pyarrow.csv as csv

from batchscore.pipeline.record import Partition, Record, Schema, TrapRecord
from batchscore.utils.errors import UserInputError
from batchscore.utils.logger import logs

# 4MB read blocks; partitions are cut by record count, not by block
_BLOCK_SIZE = 1 << 22

READER_STAGE = "TableReader"


class RejectedRows:
    """
    invalid_row_handler for pyarrow: ragged rows are skipped by the parser
    and kept here until the reader turns them into trap records.
    """

    def __init__(self):
        self.rows: List[Any] = []

    def __call__(self, row) -> str:
        self.rows.append(row)
        return "skip"

    def drain(self) -> List[Any]:
        rows, self.rows = self.rows, []
        return rows


def _skip_row(row) -> str:
    return "skip"


def _parse_options(delimiter: str, handler=_skip_row) -> csv.ParseOptions:
    return csv.ParseOptions(delimiter=delimiter, invalid_row_handler=handler)


def _to_trap(row, names: Schema, delimiter: str) -> TrapRecord:
    values = row.text.split(delimiter)
    record: Record = {
        name: (values[i] if i < len(values) and values[i] != "" else None)
        for i, name in enumerate(names)
    }
    where = f" at row {row.number}" if row.number is not None else ""
    return TrapRecord(
        record=record,
        reason=f"expected {row.expected_columns} columns, got {row.actual_columns}{where}",
        stage=READER_STAGE,
    )


def _check_file(path: Path) -> None:
    if not path.is_file():
        raise UserInputError(f"input file not found: {path}")
    if path.stat().st_size == 0:
        raise UserInputError(f"input file is empty (no header row): {path}")


def read_header(path: str | Path, delimiter: str = "\t") -> Schema:
    path = Path(path)
    _check_file(path)

    try:
        reader = csv.open_csv(
            str(path),
            read_options=csv.ReadOptions(block_size=_BLOCK_SIZE),
            parse_options=_parse_options(delimiter),
        )
    except pa.ArrowInvalid as e:
        raise UserInputError(f"cannot read header of {path}: {e}") from e

    names = tuple(reader.schema.names)
    reader.close()

    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise UserInputError(f"duplicate column(s) {dupes} in {path}")
    return names


def iter_records(
    path: str | Path,
    delimiter: str = "\t",
    batch_size: int = 10_000,
) -> Iterator[Partition]:
    """
    Stream records as partitions of at most batch_size rows.

    Every value is read as a string; empty cells are None.
    Rows with the wrong number of columns come out as TrapRecords in the
    same partition stream, after the rows of the block they were found in.
    """
    path = Path(path)
    names = read_header(path, delimiter)
    rejected = RejectedRows()

    try:
        reader = csv.open_csv(
            str(path),
            read_options=csv.ReadOptions(block_size=_BLOCK_SIZE, use_threads=True),
            parse_options=_parse_options(delimiter, rejected),
            convert_options=csv.ConvertOptions(
                column_types={name: pa.string() for name in names},
                null_values=[""],
                strings_can_be_null=True,
            ),
        )
    except pa.ArrowInvalid as e:
        raise UserInputError(f"cannot parse {path}: {e}") from e

    pending: Partition = []
    try:
        for batch in reader:
            pending.extend(batch.to_pylist())
            pending.extend(_to_trap(row, names, delimiter) for row in rejected.drain())
            while len(pending) >= batch_size:
                yield pending[:batch_size]
                pending = pending[batch_size:]
    except pa.ArrowInvalid as e:
        raise UserInputError(f"cannot parse {path}: {e}") from e
    finally:
        reader.close()

    pending.extend(_to_trap(row, names, delimiter) for row in rejected.drain())
    if pending:
        yield pending


def read_records(path: str | Path, delimiter: str = "\t") -> Tuple[Schema, List[Record]]:
    """Read a whole (small) table, e.g. the reference side of a join."""
    schema = read_header(path, delimiter)
    records: List[Record] = []
    for part in iter_records(path, delimiter):
        for item in part:
            if isinstance(item, TrapRecord):
                logs.warning(f"[TableReader] {path}: skipped row, {item.reason}")
                continue
            records.append(item)
    return schema, records
