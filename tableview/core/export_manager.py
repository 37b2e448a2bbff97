"""Export manager for writing view results to files."""

import asyncio
import csv
import json
import logging
import os
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from .data_access import QueryResult
from .protocol import json_default

logger = logging.getLogger(__name__)


class ExportFormat(Enum):
    """Supported export formats."""
    CSV = "csv"
    TSV = "tsv"
    JSON = "json"
    SQL = "sql"


class ExportOptions:
    """Options for exporting data."""

    def __init__(
        self,
        include_headers: bool = True,
        null_string: str = "",
        delimiter: str = ",",
        quote_char: str = '"',
        encoding: str = "utf-8",
        json_pretty_print: bool = True,
    ):
        self.include_headers = include_headers
        self.null_string = null_string
        self.delimiter = delimiter
        self.quote_char = quote_char
        self.encoding = encoding
        self.json_pretty_print = json_pretty_print


class ExportManager:
    """Writes a ``QueryResult`` in one of the ``ExportFormat`` encodings."""

    def __init__(self, export_dir: str = "./exports", options: Optional[ExportOptions] = None):
        self.export_dir = Path(export_dir)
        self.options = options or ExportOptions()

    def format_value(self, value: Any) -> str:
        """Format a value for delimited output."""
        if value is None:
            return self.options.null_string
        elif isinstance(value, bool):
            return "true" if value else "false"
        elif isinstance(value, (dict, list)):
            return json.dumps(value, ensure_ascii=False)
        return str(value)

    def sql_literal(self, value: Any) -> str:
        """Format a value as a SQL literal for INSERT statements."""
        if value is None:
            return "NULL"
        elif isinstance(value, bool):
            return "TRUE" if value else "FALSE"
        elif isinstance(value, (int, float, Decimal)):
            return str(value)
        elif isinstance(value, (datetime, date)):
            return f"'{value.isoformat()}'"
        elif isinstance(value, (dict, list)):
            return "'" + json.dumps(value).replace("'", "''") + "'"
        return "'" + str(value).replace("'", "''") + "'"

    def suggested_filename(self, table_name: str, fmt: ExportFormat, filtered: bool = False) -> str:
        """Generate a file name like ``users_filtered_20240101_120000.csv``."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        safe_table = table_name.replace(".", "_").replace("/", "_")
        suffix = "_filtered" if filtered else ""
        return f"{safe_table}{suffix}_{timestamp}.{fmt.value}"

    async def export(self, result: QueryResult, table_name: str, fmt: ExportFormat,
                     filepath: Optional[str] = None, filtered: bool = False) -> Path:
        """Write ``result`` and return the file path.

        Args:
            result: Rows and columns to write; columns define field order
            table_name: Used for INSERT statements and the default file name
            fmt: Output encoding
            filepath: Explicit destination; defaults to the export directory
            filtered: Whether the result reflects the view's filters
        """
        fmt = ExportFormat(fmt)
        path = Path(filepath) if filepath else self.export_dir / self.suggested_filename(table_name, fmt, filtered)
        os.makedirs(path.parent, exist_ok=True)

        try:
            if fmt in (ExportFormat.CSV, ExportFormat.TSV):
                await self._write_delimited(result, path, "\t" if fmt == ExportFormat.TSV else self.options.delimiter)
            elif fmt == ExportFormat.JSON:
                with open(path, "w", encoding=self.options.encoding) as f:
                    json.dump(result.rows, f, indent=2 if self.options.json_pretty_print else None,
                              ensure_ascii=False, default=json_default)
            else:
                await self._write_inserts(result, path, table_name)
        except OSError as e:
            logger.error(f"IO error writing to {path}: {e}")
            raise

        logger.info(f"Exported {len(result.rows)} rows to {path}")
        return path

    async def _write_delimited(self, result: QueryResult, path: Path, delimiter: str) -> None:
        with open(path, "w", newline="", encoding=self.options.encoding) as f:
            writer = csv.writer(f, delimiter=delimiter, quotechar=self.options.quote_char,
                                quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
            if self.options.include_headers:
                writer.writerow(result.columns)
            for i, row in enumerate(result.rows):
                writer.writerow([self.format_value(row[col]) for col in result.columns])
                if i % 1000 == 0:
                    await asyncio.sleep(0)

    async def _write_inserts(self, result: QueryResult, path: Path, table_name: str) -> None:
        columns = ", ".join(result.columns)
        with open(path, "w", encoding=self.options.encoding) as f:
            for i, row in enumerate(result.rows):
                values = ", ".join(self.sql_literal(row[col]) for col in result.columns)
                f.write(f"INSERT INTO {table_name} ({columns}) VALUES ({values});\n")
                if i % 1000 == 0:
                    await asyncio.sleep(0)
