"""Spreadsheet ingestion of vendor reports, pharmacy reports and patient rosters."""

from .cells import Decoded, decode_date, decode_number, decode_text, split_full_name
from .errors import IngestionValidationError, RowError
from .headers import locate_header_row, normalize_label, resolve_columns
from .pipeline import IngestionSummary, SpreadsheetIngestionPipeline, UploadRequest
from .profiles import PROFILES, IngestionProfile, MatchStrategy, get_profile
from .workbook import read_first_sheet

__all__ = [
    "Decoded",
    "IngestionProfile",
    "IngestionSummary",
    "IngestionValidationError",
    "MatchStrategy",
    "PROFILES",
    "RowError",
    "SpreadsheetIngestionPipeline",
    "UploadRequest",
    "decode_date",
    "decode_number",
    "decode_text",
    "get_profile",
    "locate_header_row",
    "normalize_label",
    "read_first_sheet",
    "resolve_columns",
    "split_full_name",
]
