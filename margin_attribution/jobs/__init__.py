"""
Reporting Jobs for the margin attribution service.

This module provides batch entry points that sit outside the HTTP API:
- Attribution memo generation (attribution_memo.py): ingest a CSV component
  table, run the attribution and render a fixed-width text memo

Command line:
    python -m margin_attribution.jobs.attribution_memo portfolio.csv --top-n 5
"""

from margin_attribution.jobs.attribution_memo import (
    generate_memo_content,
    run_attribution_memo,
    main,
    MemoInputError,
    DEFAULT_MEMO_TITLE,
)

__all__ = [
    'generate_memo_content',
    'run_attribution_memo',
    'main',
    'MemoInputError',
    'DEFAULT_MEMO_TITLE',
]
