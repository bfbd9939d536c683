"""
Component Table Ingestion Service

This module turns an external component table (CSV upload, CSV file on disk,
or an in-memory DataFrame) into validated ComponentRecord objects for the
attribution calculator. It never runs the calculation itself.

Table Shape:
- One row per component
- id: component label (aliases: component, name, category)
- revenue_prior / revenue_current (aliases: rev_t0 / rev_t1)
- per period, either profit (profit_prior / profit_current, aliases
  profit_t0 / profit_t1) or cost (cost_prior / cost_current, aliases
  cost_t0 / cost_t1); profit = revenue - cost when only cost is given
- group: optional roll-up label

Key Features:
- Case-insensitive column matching with alias resolution
- Required column validation
- Numeric type validation
- Id presence and uniqueness enforcement
- Negative revenue rejection

Zero revenue is accepted here; the calculator rejects it with a
DivisionByZeroError that names the component.
"""

from typing import Any, BinaryIO, Dict, List, Optional, Tuple, Union
import io
import logging
from pathlib import Path

import pandas as pd
from fastapi import UploadFile

from margin_attribution.models import (
    ComponentRecord,
    IngestionResult,
    ValidationError,
)

# Configure module logger
logger = logging.getLogger(__name__)

# =============================================================================
# CONSTANTS - Column Definitions
# =============================================================================

ID_COLUMN: str = 'id'
GROUP_COLUMN: str = 'group'

REVENUE_COLUMNS: List[str] = ['revenue_prior', 'revenue_current']
PROFIT_COLUMNS: List[str] = ['profit_prior', 'profit_current']
COST_COLUMNS: List[str] = ['cost_prior', 'cost_current']

# Columns of a validated table, in output order
RECORD_COLUMNS: List[str] = [ID_COLUMN] + REVENUE_COLUMNS + PROFIT_COLUMNS

# Alternative header names mapped to canonical names. When several aliases
# of the same canonical column are present, the first one listed wins.
COLUMN_ALIASES: Dict[str, str] = {
    'component': ID_COLUMN,
    'name': ID_COLUMN,
    'category': ID_COLUMN,
    'rev_t0': 'revenue_prior',
    'rev_t1': 'revenue_current',
    'profit_t0': 'profit_prior',
    'profit_t1': 'profit_current',
    'cost_t0': 'cost_prior',
    'cost_t1': 'cost_current',
}

CsvSource = Union[bytes, bytearray, str, Path, BinaryIO]


# =============================================================================
# NORMALIZATION
# =============================================================================

def _normalize_dataframe(df: pd.DataFrame) -> pd.DataFrame:
    """
    Lower-case and strip column names, then resolve aliases.

    An alias is only applied when its canonical column is not already present.
    """
    df_normalized = df.copy()
    df_normalized.columns = df_normalized.columns.astype(str).str.lower().str.strip()

    renames: Dict[str, str] = {}
    present = set(df_normalized.columns)
    for alias, canonical in COLUMN_ALIASES.items():
        if alias in present and canonical not in present and canonical not in renames.values():
            renames[alias] = canonical

    return df_normalized.rename(columns=renames)


def _period_value_columns(df: pd.DataFrame) -> List[str]:
    """
    Numeric columns that feed the calculation: revenue, plus profit for each
    period or cost where profit is absent.
    """
    columns = [col for col in REVENUE_COLUMNS if col in df.columns]
    for profit_col, cost_col in zip(PROFIT_COLUMNS, COST_COLUMNS):
        if profit_col in df.columns:
            columns.append(profit_col)
        elif cost_col in df.columns:
            columns.append(cost_col)
    return columns


def _first_rows(mask: pd.Series, limit: int = 5) -> List[int]:
    """1-based row numbers of the first `limit` rows flagged by `mask`."""
    return [int(i) + 1 for i in mask[mask].index.tolist()[:limit]]


# =============================================================================
# VALIDATION FUNCTIONS
# =============================================================================

def validate_columns(df: pd.DataFrame) -> List[ValidationError]:
    """
    Validate that the columns needed to build records are present.

    Expects a normalized DataFrame. Each period needs revenue plus either
    profit or cost, and no column may appear twice (headers that differ only
    by case or surrounding spaces collapse to the same name).

    Returns:
        List of ValidationError objects for any duplicated or missing columns
    """
    errors: List[ValidationError] = []

    duplicated = df.columns[df.columns.duplicated()]
    for col in sorted(set(duplicated)):
        errors.append(ValidationError(
            field=col,
            message=f"Column '{col}' appears more than once (headers differ only by case or spacing)",
            row_number=None
        ))

    for col in [ID_COLUMN] + REVENUE_COLUMNS:
        if col not in df.columns:
            errors.append(ValidationError(
                field=col,
                message=f"Required column '{col}' is missing",
                row_number=None
            ))

    for profit_col, cost_col in zip(PROFIT_COLUMNS, COST_COLUMNS):
        if profit_col not in df.columns and cost_col not in df.columns:
            errors.append(ValidationError(
                field=profit_col,
                message=f"Either '{profit_col}' or '{cost_col}' is required",
                row_number=None
            ))

    return errors


def validate_data_types(df: pd.DataFrame) -> List[ValidationError]:
    """
    Validate that revenue, profit and cost columns hold numbers.

    Empty cells are reported separately from non-numeric text.

    Returns:
        List of ValidationError objects for any type issues
    """
    errors: List[ValidationError] = []

    for col in _period_value_columns(df):
        numeric_series = pd.to_numeric(df[col], errors='coerce')

        missing_mask = df[col].isna()
        if missing_mask.any():
            rows = _first_rows(missing_mask)
            errors.append(ValidationError(
                field=col,
                message=f"Found {int(missing_mask.sum())} empty values in column '{col}'. First rows: {rows}",
                row_number=rows[0]
            ))

        invalid_mask = numeric_series.isna() & df[col].notna()
        if invalid_mask.any():
            rows = _first_rows(invalid_mask)
            errors.append(ValidationError(
                field=col,
                message=f"Found {int(invalid_mask.sum())} non-numeric values in column '{col}'. First rows: {rows}",
                row_number=rows[0]
            ))

    return errors


def validate_ids(df: pd.DataFrame) -> List[ValidationError]:
    """
    Validate that every row has an id and that ids are unique.

    Returns:
        List of ValidationError objects for missing or duplicate ids
    """
    errors: List[ValidationError] = []
    if ID_COLUMN not in df.columns:
        return errors

    ids = df[ID_COLUMN]
    missing_mask = ids.isna() | (ids.astype(str).str.strip() == '')
    if missing_mask.any():
        rows = _first_rows(missing_mask)
        errors.append(ValidationError(
            field=ID_COLUMN,
            message=f"Found {int(missing_mask.sum())} rows without a component id. First rows: {rows}",
            row_number=rows[0]
        ))

    labels = ids[~missing_mask].astype(str).str.strip()
    duplicated_mask = labels.duplicated(keep=False)
    if duplicated_mask.any():
        duplicate_ids = sorted(labels[duplicated_mask].unique().tolist())
        rows = _first_rows(duplicated_mask)
        errors.append(ValidationError(
            field=ID_COLUMN,
            message=f"Component ids must be unique; duplicated: {duplicate_ids}",
            row_number=rows[0]
        ))

    return errors


def validate_revenue(df: pd.DataFrame) -> List[ValidationError]:
    """
    Validate that revenue is not negative.

    Expects numeric revenue columns (run after validate_data_types passes).

    Returns:
        List of ValidationError objects for negative revenue values
    """
    errors: List[ValidationError] = []

    for col in REVENUE_COLUMNS:
        negative_mask = pd.to_numeric(df[col], errors='coerce') < 0
        if negative_mask.any():
            rows = _first_rows(negative_mask)
            errors.append(ValidationError(
                field=col,
                message=f"Found {int(negative_mask.sum())} negative values in column '{col}'. First rows: {rows}",
                row_number=rows[0]
            ))

    return errors


# =============================================================================
# TRANSFORMATION FUNCTIONS
# =============================================================================

def derive_profit(df: pd.DataFrame) -> pd.DataFrame:
    """
    Fill profit columns from cost where only cost is given.

    profit = revenue - cost, per period. An existing profit column is kept
    as-is even when a cost column is also present.
    """
    df_out = df.copy()
    for revenue_col, profit_col, cost_col in zip(REVENUE_COLUMNS, PROFIT_COLUMNS, COST_COLUMNS):
        if profit_col not in df_out.columns:
            df_out[profit_col] = df_out[revenue_col] - df_out[cost_col]
    return df_out


def _coerce_types(df: pd.DataFrame) -> pd.DataFrame:
    """Cast value columns to float and ids (and groups) to stripped strings."""
    df_out = df.copy()
    for col in _period_value_columns(df_out):
        df_out[col] = pd.to_numeric(df_out[col], errors='coerce').astype(float)
    df_out[ID_COLUMN] = df_out[ID_COLUMN].astype(str).str.strip()
    if GROUP_COLUMN in df_out.columns:
        groups = df_out[GROUP_COLUMN]
        df_out[GROUP_COLUMN] = groups.where(groups.isna(), groups.astype(str).str.strip())
    return df_out


# =============================================================================
# INGESTION FUNCTIONS
# =============================================================================

def ingest_dataframe(df: pd.DataFrame) -> Tuple[Optional[pd.DataFrame], List[ValidationError]]:
    """
    Validate a component table and bring it to canonical shape.

    Performs the following steps:
    1. Normalize column names and resolve aliases
    2. Validate required columns
    3. Validate numeric columns and ids
    4. Coerce types and validate revenue signs
    5. Derive profit from cost where needed

    Args:
        df: Raw component table

    Returns:
        Tuple of (canonical DataFrame or None, list of validation errors).
        The DataFrame has RECORD_COLUMNS plus 'group' when present.
    """
    errors: List[ValidationError] = []

    if df.empty:
        errors.append(ValidationError(
            field='file',
            message='Component table is empty or contains no data rows',
            row_number=None
        ))
        return None, errors

    df = _normalize_dataframe(df).reset_index(drop=True)

    column_errors = validate_columns(df)
    errors.extend(column_errors)

    # If critical columns are missing, stop validation
    if column_errors:
        return None, errors

    errors.extend(validate_data_types(df))
    errors.extend(validate_ids(df))

    if errors:
        return None, errors

    df = _coerce_types(df)

    errors.extend(validate_revenue(df))
    if errors:
        return None, errors

    df = derive_profit(df)

    output_columns = RECORD_COLUMNS + ([GROUP_COLUMN] if GROUP_COLUMN in df.columns else [])
    logger.info(f"Validated component table with {len(df)} rows")
    return df[output_columns], errors


def ingest_csv(file: CsvSource) -> Tuple[Optional[pd.DataFrame], List[ValidationError]]:
    """
    Parse and validate a CSV component table.

    Args:
        file: Raw CSV bytes, a path, or a binary/text file object

    Returns:
        Tuple of (canonical DataFrame or None, list of validation errors)
    """
    errors: List[ValidationError] = []

    try:
        if isinstance(file, (bytes, bytearray)):
            file_like: Any = io.BytesIO(bytes(file))
        elif hasattr(file, 'read'):
            content = file.read()
            if isinstance(content, bytes):
                file_like = io.BytesIO(content)
            else:
                file_like = io.StringIO(content)
        else:
            file_like = file

        # Read as text so ids keep their spelling; numbers are coerced later
        df = pd.read_csv(file_like, dtype=str, skipinitialspace=True)

    except pd.errors.EmptyDataError:
        errors.append(ValidationError(
            field='file',
            message='CSV file is empty',
            row_number=None
        ))
        return None, errors
    except (pd.errors.ParserError, UnicodeDecodeError, OSError) as e:
        errors.append(ValidationError(
            field='file',
            message=f'Failed to parse CSV file: {str(e)}',
            row_number=None
        ))
        return None, errors

    logger.info(f"Parsed CSV with {len(df)} rows and {len(df.columns)} columns")
    return ingest_dataframe(df)


async def ingest_upload(
    file: UploadFile,
    max_bytes: int,
) -> Tuple[Optional[pd.DataFrame], List[ValidationError]]:
    """
    Read an uploaded CSV file and validate it.

    Args:
        file: The uploaded file (must be .csv when a filename is given)
        max_bytes: Largest accepted upload size

    Returns:
        Tuple of (canonical DataFrame or None, list of validation errors)
    """
    filename = file.filename or ''
    if filename and Path(filename).suffix.lower() != '.csv':
        return None, [ValidationError(
            field='file',
            message=f"Unsupported file type '{Path(filename).suffix}'. Accepted: .csv",
            row_number=None
        )]

    contents = await file.read()
    if len(contents) > max_bytes:
        return None, [ValidationError(
            field='file',
            message=f"Upload of {len(contents)} bytes exceeds the {max_bytes} byte limit",
            row_number=None
        )]

    return ingest_csv(contents)


def records_from_frame(df: pd.DataFrame) -> List[ComponentRecord]:
    """
    Build ComponentRecord objects from a table returned by ingest_dataframe.

    Row order is preserved.
    """
    has_group = GROUP_COLUMN in df.columns
    records: List[ComponentRecord] = []

    for row in df.to_dict(orient='records'):
        group = row.get(GROUP_COLUMN) if has_group else None
        records.append(ComponentRecord(
            id=str(row[ID_COLUMN]),
            revenue_prior=float(row['revenue_prior']),
            revenue_current=float(row['revenue_current']),
            profit_prior=float(row['profit_prior']),
            profit_current=float(row['profit_current']),
            group=None if group is None or pd.isna(group) else str(group),
        ))

    return records


def build_ingestion_result(
    df: Optional[pd.DataFrame],
    errors: List[ValidationError],
) -> IngestionResult:
    """Summarize an ingestion attempt for API and CLI reporting."""
    return IngestionResult(
        success=df is not None and not errors,
        rows_processed=len(df) if df is not None else 0,
        errors=errors,
    )


# =============================================================================
# EXPORTS - Public API
# =============================================================================

__all__ = [
    # Ingestion functions
    "ingest_dataframe",
    "ingest_csv",
    "ingest_upload",
    "records_from_frame",
    "build_ingestion_result",
    # Validation functions
    "validate_columns",
    "validate_data_types",
    "validate_ids",
    "validate_revenue",
    # Transformation functions
    "derive_profit",
    # Constants
    "ID_COLUMN",
    "GROUP_COLUMN",
    "REVENUE_COLUMNS",
    "PROFIT_COLUMNS",
    "COST_COLUMNS",
    "RECORD_COLUMNS",
    "COLUMN_ALIASES",
]
