"""
Test Module for Component Table Ingestion.

This module tests the ingestion service validating:
- Column normalization and alias resolution (component/name/category, rev_t0, ...)
- Required column validation (revenue plus profit or cost per period)
- Numeric type checking with separate empty and non-numeric reporting
- Id presence and uniqueness
- Negative revenue rejection
- Profit derivation from cost
- CSV parsing from bytes, paths and uploads, including upload limits

Dependency References:
- margin_attribution/services/ingestion.py: Ingestion functions and constants
- margin_attribution/models/__init__.py: IngestionResult, ValidationError
- margin_attribution/tests/conftest.py: Worked portfolio fixtures
"""

from io import BytesIO
from pathlib import Path

import pandas as pd
import pytest
from fastapi import UploadFile

from margin_attribution.models import IngestionResult
from margin_attribution.services.attribution import attribute_margin
from margin_attribution.services.ingestion import (
    # Ingestion functions
    ingest_dataframe,
    ingest_csv,
    ingest_upload,
    records_from_frame,
    build_ingestion_result,
    # Validation functions
    validate_columns,
    validate_data_types,
    validate_ids,
    validate_revenue,
    # Transformation functions
    derive_profit,
    # Constants
    RECORD_COLUMNS,
)

# Import helper functions from conftest
from margin_attribution.tests.conftest import (
    WORKED_EXAMPLE_CHANGE_BPS,
    assert_close,
    create_csv_bytes,
)


# =============================================================================
# TEST CLASS: Column Normalization
# =============================================================================

class TestColumnNormalization:
    """Tests for case-insensitive matching and alias resolution."""

    def test_aliases_resolved(self, worked_cost_df: pd.DataFrame):
        """Category, rev_t0/t1 and cost_t0/t1 map onto canonical columns."""
        df, errors = ingest_dataframe(worked_cost_df)

        assert errors == [], f"Expected no errors, got: {[e.message for e in errors]}"
        assert list(df.columns) == RECORD_COLUMNS
        assert df['id'].tolist() == ['Tacos', 'Sides', 'Drinks']

    def test_upper_case_headers(self, worked_profit_df: pd.DataFrame):
        df = worked_profit_df.copy()
        df.columns = [f"  {col.upper()} " for col in df.columns]

        result, errors = ingest_dataframe(df)
        assert errors == []
        assert list(result.columns) == RECORD_COLUMNS

    def test_canonical_column_wins_over_alias(self, worked_profit_df: pd.DataFrame):
        """An alias is ignored when the canonical column is already present."""
        df = worked_profit_df.copy()
        df['name'] = ['x', 'y', 'z']

        result, errors = ingest_dataframe(df)
        assert errors == []
        assert result['id'].tolist() == ['Tacos', 'Sides', 'Drinks']

    def test_group_column_kept(self, worked_profit_df: pd.DataFrame):
        df = worked_profit_df.copy()
        df['Group'] = ['Food', 'Food', None]

        result, errors = ingest_dataframe(df)
        assert errors == []
        assert list(result.columns) == RECORD_COLUMNS + ['group']

        records = records_from_frame(result)
        assert [r.group for r in records] == ['Food', 'Food', None]


# =============================================================================
# TEST CLASS: Required Columns
# =============================================================================

class TestRequiredColumns:
    """Tests for validate_columns."""

    def test_valid_profit_table(self, worked_profit_df: pd.DataFrame):
        assert validate_columns(worked_profit_df) == []

    def test_cost_satisfies_profit(self, worked_profit_df: pd.DataFrame):
        df = worked_profit_df.drop(columns=['profit_prior'])
        df['cost_prior'] = [1.0, 2.0, 3.0]
        assert validate_columns(df) == []

    def test_missing_revenue(self, worked_profit_df: pd.DataFrame):
        errors = validate_columns(worked_profit_df.drop(columns=['revenue_current']))

        assert len(errors) == 1
        assert errors[0].field == 'revenue_current'
        assert 'missing' in errors[0].message.lower()

    def test_missing_profit_and_cost(self, worked_profit_df: pd.DataFrame):
        errors = validate_columns(worked_profit_df.drop(columns=['profit_prior', 'profit_current']))

        assert {e.field for e in errors} == {'profit_prior', 'profit_current'}
        assert all('cost' in e.message for e in errors)

    def test_headers_differing_only_by_case(self):
        """Headers that normalize to the same name are reported, not crashed on."""
        csv = (
            b"id,Revenue_Prior,revenue_prior ,revenue_current,profit_prior,profit_current\n"
            b"A,10,11,10,1,2\n"
        )
        df, errors = ingest_csv(csv)

        assert df is None
        assert len(errors) == 1
        assert errors[0].field == 'revenue_prior'
        assert 'more than once' in errors[0].message

    def test_duplicated_alias_headers(self, worked_cost_df: pd.DataFrame):
        """Two spellings of the same alias collapse to one canonical column."""
        df = worked_cost_df.copy()
        df['REV_T0'] = df['rev_t0']

        result, errors = ingest_dataframe(df)
        assert result is None
        assert [e.field for e in errors] == ['revenue_prior']

    def test_missing_columns_stop_ingestion(self, worked_profit_df: pd.DataFrame):
        df, errors = ingest_dataframe(worked_profit_df.drop(columns=['id']))

        assert df is None
        assert [e.field for e in errors] == ['id']


# =============================================================================
# TEST CLASS: Data Types and Values
# =============================================================================

class TestDataValidation:
    """Tests for numeric, id and revenue validation."""

    def test_non_numeric_value(self, worked_profit_df: pd.DataFrame):
        df = worked_profit_df.astype({'revenue_prior': object})
        df.loc[1, 'revenue_prior'] = 'lots'

        errors = validate_data_types(df)
        assert len(errors) == 1
        assert errors[0].field == 'revenue_prior'
        assert errors[0].row_number == 2
        assert 'non-numeric' in errors[0].message

    def test_empty_value(self, worked_profit_df: pd.DataFrame):
        df = worked_profit_df.copy()
        df.loc[0, 'profit_current'] = None

        errors = validate_data_types(df)
        assert len(errors) == 1
        assert errors[0].field == 'profit_current'
        assert errors[0].row_number == 1
        assert 'empty' in errors[0].message

    def test_unused_cost_column_not_checked(self, worked_profit_df: pd.DataFrame):
        """Cost columns are ignored when the matching profit column exists."""
        df = worked_profit_df.copy()
        df['cost_prior'] = ['n/a', 'n/a', 'n/a']
        assert validate_data_types(df) == []

    def test_duplicate_ids(self, worked_profit_df: pd.DataFrame):
        df = worked_profit_df.copy()
        df.loc[2, 'id'] = 'Tacos'

        errors = validate_ids(df)
        assert len(errors) == 1
        assert errors[0].field == 'id'
        assert 'Tacos' in errors[0].message

    def test_missing_id(self, worked_profit_df: pd.DataFrame):
        df = worked_profit_df.copy()
        df.loc[1, 'id'] = '  '

        errors = validate_ids(df)
        assert len(errors) == 1
        assert errors[0].row_number == 2

    def test_negative_revenue(self, worked_profit_df: pd.DataFrame):
        df = worked_profit_df.copy()
        df.loc[2, 'revenue_current'] = -5.0

        errors = validate_revenue(df)
        assert len(errors) == 1
        assert errors[0].field == 'revenue_current'
        assert errors[0].row_number == 3

    def test_zero_revenue_left_to_calculator(self, worked_profit_df: pd.DataFrame):
        """Zero revenue passes ingestion; the calculator reports it."""
        df = worked_profit_df.copy()
        df.loc[0, 'revenue_prior'] = 0.0

        result, errors = ingest_dataframe(df)
        assert errors == []
        assert result.loc[0, 'revenue_prior'] == 0.0


# =============================================================================
# TEST CLASS: Profit Derivation
# =============================================================================

class TestDeriveProfit:
    """Tests for profit = revenue - cost."""

    def test_profit_from_cost(self, worked_cost_df: pd.DataFrame):
        df, errors = ingest_dataframe(worked_cost_df)

        assert errors == []
        assert df['profit_prior'].tolist() == [2550.0, 3000.0, 1600.0]
        assert df['profit_current'].tolist() == [3400.0, 2200.0, 750.0]

    def test_existing_profit_kept(self):
        df = pd.DataFrame({
            'revenue_prior': [10.0], 'revenue_current': [10.0],
            'profit_prior': [4.0], 'profit_current': [5.0],
            'cost_prior': [1.0], 'cost_current': [1.0],
        })
        result = derive_profit(df)
        assert result['profit_prior'].tolist() == [4.0]

    def test_mixed_profit_and_cost(self):
        """Each period independently uses profit or cost."""
        df = pd.DataFrame({
            'id': ['A'],
            'revenue_prior': [10.0], 'revenue_current': [20.0],
            'profit_prior': [4.0], 'cost_current': [15.0],
        })
        result, errors = ingest_dataframe(df)

        assert errors == []
        assert result['profit_prior'].tolist() == [4.0]
        assert result['profit_current'].tolist() == [5.0]


# =============================================================================
# TEST CLASS: CSV Parsing
# =============================================================================

class TestIngestCsv:
    """Tests for ingest_csv and the end-to-end path into the calculator."""

    def test_csv_bytes_to_report(self, worked_csv_bytes: bytes):
        df, errors = ingest_csv(worked_csv_bytes)
        assert errors == []

        report = attribute_margin(records_from_frame(df))
        assert_close(report.summary.margin_change_bps, WORKED_EXAMPLE_CHANGE_BPS)

    def test_csv_path(self, worked_csv_bytes: bytes, tmp_path: Path):
        path = tmp_path / 'portfolio.csv'
        path.write_bytes(worked_csv_bytes)

        df, errors = ingest_csv(path)
        assert errors == []
        assert len(df) == 3

    def test_csv_file_object(self, worked_csv_bytes: bytes):
        df, errors = ingest_csv(BytesIO(worked_csv_bytes))
        assert errors == []
        assert len(df) == 3

    def test_ids_keep_spelling(self):
        """Ids are read as text, so numeric-looking labels are not reformatted."""
        csv = b"id,revenue_prior,revenue_current,profit_prior,profit_current\n007,10,10,1,2\n"
        df, errors = ingest_csv(csv)

        assert errors == []
        assert df['id'].tolist() == ['007']

    def test_empty_csv(self):
        df, errors = ingest_csv(b'')

        assert df is None
        assert errors[0].field == 'file'
        assert 'empty' in errors[0].message.lower()

    def test_header_only_csv(self):
        df, errors = ingest_csv(b"id,revenue_prior,revenue_current,profit_prior,profit_current\n")

        assert df is None
        assert errors[0].field == 'file'

    def test_missing_file(self, tmp_path: Path):
        df, errors = ingest_csv(tmp_path / 'absent.csv')

        assert df is None
        assert errors[0].field == 'file'

    def test_empty_cell_in_csv(self, worked_cost_df: pd.DataFrame):
        df = worked_cost_df.astype({'cost_t1': object})
        df.loc[1, 'cost_t1'] = None

        result, errors = ingest_csv(create_csv_bytes(df))
        assert result is None
        assert errors[0].field == 'cost_current'
        assert errors[0].row_number == 2


# =============================================================================
# TEST CLASS: Uploads
# =============================================================================

class TestIngestUpload:
    """Tests for ingest_upload."""

    @pytest.mark.asyncio
    async def test_upload_accepted(self, worked_csv_bytes: bytes):
        upload = UploadFile(file=BytesIO(worked_csv_bytes), filename='portfolio.csv')
        df, errors = await ingest_upload(upload, max_bytes=10_000)

        assert errors == []
        assert len(df) == 3

    @pytest.mark.asyncio
    async def test_upload_wrong_suffix(self, worked_csv_bytes: bytes):
        upload = UploadFile(file=BytesIO(worked_csv_bytes), filename='portfolio.xlsx')
        df, errors = await ingest_upload(upload, max_bytes=10_000)

        assert df is None
        assert '.xlsx' in errors[0].message

    @pytest.mark.asyncio
    async def test_upload_too_large(self, worked_csv_bytes: bytes):
        upload = UploadFile(file=BytesIO(worked_csv_bytes), filename='portfolio.csv')
        df, errors = await ingest_upload(upload, max_bytes=10)

        assert df is None
        assert 'limit' in errors[0].message


# =============================================================================
# TEST CLASS: Ingestion Result
# =============================================================================

class TestBuildIngestionResult:
    """Tests for build_ingestion_result."""

    def test_success(self, worked_cost_df: pd.DataFrame):
        result = build_ingestion_result(*ingest_dataframe(worked_cost_df))

        assert isinstance(result, IngestionResult)
        assert result.success is True
        assert result.rows_processed == 3

    def test_failure(self, worked_cost_df: pd.DataFrame):
        result = build_ingestion_result(*ingest_dataframe(worked_cost_df.drop(columns=['rev_t0'])))

        assert result.success is False
        assert result.rows_processed == 0
        assert result.errors[0].field == 'revenue_prior'
