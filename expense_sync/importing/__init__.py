"""Bulk import of expenses from CSV files."""

from expense_sync.importing.csv_import import (
    CSV_HEADERS,
    SAMPLE_CSV,
    CSVImporter,
    ImportResults,
)

__all__ = ["CSV_HEADERS", "SAMPLE_CSV", "CSVImporter", "ImportResults"]
