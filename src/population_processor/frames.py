"""CSV reading, transformation and writing for population files."""

from __future__ import annotations

import io
import logging
from collections import Counter
from typing import BinaryIO

import polars as pl

from .exceptions import CsvParseError, EmptyDatasetError

logger = logging.getLogger(__name__)


def read_csv_frame(source: BinaryIO | bytes, separator: str = ",") -> pl.DataFrame:
    """Load a CSV with a header row into a DataFrame.

    Args:
        source: File-like object (or bytes) positioned at the start of the CSV
        separator: Field separator

    Returns:
        Polars DataFrame with every column read as text

    Raises:
        CsvParseError: The content is not parseable as CSV
        EmptyDatasetError: The content has no header (and therefore no columns)
    """
    try:
        df = pl.read_csv(
            source,
            has_header=True,
            separator=separator,
            # Cells keep their exact text (leading zeros, number formatting).
            infer_schema=False,
            raise_if_empty=False,
        )
    except pl.exceptions.PolarsError as e:
        raise CsvParseError(str(e)) from e

    if df.width == 0:
        raise EmptyDatasetError()

    logger.debug("Parsed CSV", extra={"rows": df.height, "columns": df.width})
    return df


def _trim_headers(df: pl.DataFrame) -> pl.DataFrame:
    trimmed = [name.strip() for name in df.columns]
    if len(set(trimmed)) != len(trimmed):
        duplicates = sorted(n for n, count in Counter(trimmed).items() if count > 1)
        raise CsvParseError(
            "duplicate column names after trimming whitespace",
            context={"duplicates": duplicates},
        )
    if any(not name for name in trimmed):
        raise CsvParseError("blank column name in header")
    return df.rename(dict(zip(df.columns, trimmed)))


def _strip_string_cells(df: pl.DataFrame) -> pl.DataFrame:
    string_cols = [name for name, dtype in df.schema.items() if dtype == pl.String]
    if not string_cols:
        return df

    # Whitespace-only cells become null so they count as missing.
    return df.with_columns(
        [
            pl.when(pl.col(name).str.strip_chars() == "")
            .then(pl.lit(None, dtype=pl.String))
            .otherwise(pl.col(name).str.strip_chars())
            .alias(name)
            for name in string_cols
        ]
    )


def transform(df: pl.DataFrame, preview_rows: int = 5) -> pl.DataFrame:
    """Normalise a raw population frame.

    - header names are trimmed (clashing or blank names are rejected)
    - string cells are trimmed, blank cells become null
    - rows where every cell is null are dropped

    Row order is preserved.
    """
    if preview_rows:
        logger.debug(f"Input preview:\n{df.head(preview_rows)}")

    df = _trim_headers(df)
    df = _strip_string_cells(df)

    before = df.height
    df = df.filter(~pl.all_horizontal(pl.all().is_null()))
    dropped = before - df.height
    if dropped:
        logger.info("Dropped empty rows", extra={"dropped_rows": dropped})

    return df


def write_csv_bytes(df: pl.DataFrame, separator: str = ",") -> bytes:
    """Serialise a frame as CSV: header row, '"' quoting, '\\n' line endings."""
    buffer = io.BytesIO()
    df.write_csv(
        buffer,
        include_header=True,
        separator=separator,
        quote_char='"',
        line_terminator="\n",
    )
    return buffer.getvalue()
