"""CSV and spreadsheet export of scraped records.

Both formats use the same fixed column set so a finished record (or a
whole listing) renders identically in either.
"""

import csv
from typing import IO, Dict, Iterable, List, Tuple, Union

import pandas as pd

from productscrape.models import ListResult, ProductRecord

__all__ = [
    "EXPORT_COLUMNS",
    "WORKSHEET_NAME",
    "record_to_row",
    "records_from_result",
    "records_to_dataframe",
    "save_records_to_csv",
    "export_records_to_xlsx",
]

# (record attribute, column header)
EXPORT_COLUMNS: List[Tuple[str, str]] = [
    ("title", "Product Title"),
    ("price", "Price"),
    ("item_id", "Item ID"),
    ("rating", "Star Rating"),
    ("review_count", "Number of Reviews"),
    ("url", "Product URL"),
]

WORKSHEET_NAME = "Product Data"


def record_to_row(record: ProductRecord) -> Dict[str, str]:
    """Convert a ProductRecord into a header-keyed export row."""
    return {header: getattr(record, attr) for attr, header in EXPORT_COLUMNS}


def records_from_result(result: Union[ProductRecord, ListResult]) -> List[ProductRecord]:
    """Flatten a scrape result into a list of records."""
    if isinstance(result, ListResult):
        return list(result.items)
    return [result]


def records_to_dataframe(records: Iterable[ProductRecord]) -> pd.DataFrame:
    rows = [record_to_row(r) for r in records]
    return pd.DataFrame(rows, columns=[header for _, header in EXPORT_COLUMNS])


def save_records_to_csv(records: Iterable[ProductRecord], path_or_file: Union[str, IO[str]]) -> int:
    """Write records to CSV and return the number of rows written."""
    headers = [header for _, header in EXPORT_COLUMNS]
    rows = [record_to_row(r) for r in records]

    if isinstance(path_or_file, str):
        with open(path_or_file, "w", newline="", encoding="utf-8") as f:
            _write_csv(f, headers, rows)
    else:
        _write_csv(path_or_file, headers, rows)
    return len(rows)


def _write_csv(f: IO[str], headers: List[str], rows: List[Dict[str, str]]) -> None:
    writer = csv.DictWriter(f, fieldnames=headers)
    writer.writeheader()
    writer.writerows(rows)


def export_records_to_xlsx(records: Iterable[ProductRecord], path_or_buffer) -> None:
    """Write records to an .xlsx workbook (file path or binary buffer).

    The header row is bold and every column is 20 characters wide.
    """
    df = records_to_dataframe(records)
    with pd.ExcelWriter(path_or_buffer, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=WORKSHEET_NAME, index=False)
        worksheet = writer.sheets[WORKSHEET_NAME]
        for column_cells in worksheet.iter_cols(min_row=1, max_row=1):
            for cell in column_cells:
                worksheet.column_dimensions[cell.column_letter].width = 20
