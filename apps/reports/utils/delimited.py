import csv
import io
from typing import Iterable, Sequence


def encode_rows(rows: Iterable[Sequence[str]]) -> str:
    """Quote every cell, double embedded quotes, one record per line.

    Ragged rows are written as-is; an empty row becomes an empty record.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for row in rows:
        writer.writerow(["" if cell is None else str(cell) for cell in row])
    text = buffer.getvalue()
    # Records are newline-joined, not newline-terminated.
    return text[:-1] if text.endswith("\n") else text
