"""
Margin attribution memo job.

This module renders an AttributionReport as a fixed-width text memo and
provides a command line entry point that ingests a CSV component table,
runs the attribution and writes the memo.

Memo Sections:
- Header with title and generation date
- Portfolio summary: margins, change in bps, effect totals, tie-out residual
- Component table: margins, weights, effects per component
- Top drivers by absolute total effect
- Group roll-up (only when the table carries a group column)
- Footer with generation timestamp

Usage:
    # From Python
    content = run_attribution_memo("portfolio.csv")

    # From the shell
    python -m margin_attribution.jobs.attribution_memo portfolio.csv \\
        --output memo.txt --top-n 5
"""

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence, Union

from margin_attribution.core.config import get_settings
from margin_attribution.models import AttributionReport
from margin_attribution.services.attribution import (
    attribute_margin,
    rank_drivers,
    rollup_by_group,
)
from margin_attribution.services.errors import AttributionError
from margin_attribution.services.ingestion import ingest_csv, records_from_frame

logger = logging.getLogger(__name__)

DEFAULT_MEMO_TITLE = "Margin Attribution Report"
MEMO_WIDTH = 78


class MemoInputError(Exception):
    """Raised when the memo's input table fails validation."""

    def __init__(self, messages: List[str]):
        self.messages = messages
        super().__init__("; ".join(messages))


# =============================================================================
# Memo Content
# =============================================================================

def generate_memo_content(
    report: AttributionReport,
    title: str = DEFAULT_MEMO_TITLE,
    top_n: int = 10,
    generated_at: Optional[datetime] = None,
) -> str:
    """
    Generate structured memo text from an attribution report.

    Args:
        report: Attribution report to render
        title: Memo title
        top_n: Number of drivers listed in the top drivers section
        generated_at: Timestamp for the header and footer (defaults to now, UTC)

    Returns:
        str: Formatted memo text content
    """
    generated_at = generated_at or datetime.now(timezone.utc)
    summary = report.summary
    lines = []

    # Header
    lines.append("=" * MEMO_WIDTH)
    lines.append(title)
    lines.append(f"Date: {generated_at.strftime('%B %d, %Y')}")
    lines.append("=" * MEMO_WIDTH)
    lines.append("")

    # Portfolio summary
    lines.append("PORTFOLIO SUMMARY")
    lines.append("-" * 40)
    lines.append(f"Components Analyzed: {summary.component_count}")
    lines.append(f"Revenue:  prior ${summary.revenue_prior:>14,.2f} | current ${summary.revenue_current:>14,.2f}")
    lines.append(f"Profit:   prior ${summary.profit_prior:>14,.2f} | current ${summary.profit_current:>14,.2f}")
    lines.append(f"Margin:   prior {summary.total_margin_prior:>15.2%} | current {summary.total_margin_current:>15.2%}")
    lines.append("")
    lines.append(f"Margin Change:      {summary.margin_change_bps:>+10.2f} bps")
    lines.append(f"  • Performance:    {summary.performance_effect_bps:>+10.2f} bps")
    lines.append(f"  • Mix:            {summary.mix_effect_bps:>+10.2f} bps")
    lines.append(f"Tie-out Residual:   {summary.tie_out_residual_bps:>10.2e} bps")
    lines.append("")

    # Component table
    lines.append("=" * MEMO_WIDTH)
    lines.append("COMPONENTS")
    lines.append("-" * 40)
    lines.append(
        f"{'Component':<20} {'Margin t0':>9} {'Margin t1':>9} {'Wt t0':>7} {'Wt t1':>7}"
        f" {'Perf':>8} {'Mix':>8} {'Total':>8}"
    )
    for c in report.components:
        lines.append(
            f"{c.id[:20]:<20} {c.margin_prior:>9.2%} {c.margin_current:>9.2%}"
            f" {c.weight_prior:>7.1%} {c.weight_current:>7.1%}"
            f" {c.performance_effect_bps:>+8.2f} {c.mix_effect_bps:>+8.2f} {c.total_effect_bps:>+8.2f}"
        )
    lines.append(
        f"{'TOTAL':<20} {summary.total_margin_prior:>9.2%} {summary.total_margin_current:>9.2%}"
        f" {1.0:>7.1%} {1.0:>7.1%}"
        f" {summary.performance_effect_bps:>+8.2f} {summary.mix_effect_bps:>+8.2f} {summary.total_effect_bps:>+8.2f}"
    )
    lines.append("")

    # Top drivers
    lines.append("=" * MEMO_WIDTH)
    lines.append("TOP DRIVERS (By Absolute Total Effect)")
    lines.append("-" * 40)
    for i, c in enumerate(rank_drivers(report, top_n=top_n), 1):
        direction = "tailwind" if c.total_effect_bps >= 0 else "headwind"
        dominant = "performance" if abs(c.performance_effect_bps) >= abs(c.mix_effect_bps) else "mix"
        lines.append(
            f"{i:>2}. {c.id[:30]:<30} | {c.total_effect_bps:>+9.2f} bps | {direction} | mostly {dominant}"
        )
    lines.append("")

    # Group roll-up
    if report.has_groups:
        lines.append("=" * MEMO_WIDTH)
        lines.append("GROUP ROLL-UP")
        lines.append("-" * 40)
        for g in rollup_by_group(report):
            lines.append(
                f"• {g.group[:24]:<24} | {g.component_count:>3} comp | perf {g.performance_effect_bps:>+9.2f}"
                f" | mix {g.mix_effect_bps:>+9.2f} | total {g.total_effect_bps:>+9.2f}"
            )
        lines.append("")

    # Footer
    lines.append("=" * MEMO_WIDTH)
    lines.append(f"Generated: {generated_at.strftime('%Y-%m-%d %H:%M:%S')} UTC")
    lines.append(f"{title} - effects in basis points")
    lines.append("=" * MEMO_WIDTH)

    return "\n".join(lines)


# =============================================================================
# Main Job Function
# =============================================================================

def run_attribution_memo(
    source: Union[str, Path, bytes],
    output: Optional[Union[str, Path]] = None,
    top_n: Optional[int] = None,
    title: str = DEFAULT_MEMO_TITLE,
) -> str:
    """
    Ingest a CSV component table, attribute it and render the memo.

    Args:
        source: CSV path or raw CSV bytes
        output: Optional file path the memo is written to
        top_n: Drivers listed in the memo (defaults to the configured value)
        title: Memo title

    Returns:
        str: The memo text

    Raises:
        MemoInputError: If the table fails validation
        AttributionError: If the calculator rejects the data
    """
    settings = get_settings()

    df, errors = ingest_csv(source)
    if df is None or errors:
        raise MemoInputError([
            f"{e.field}: {e.message}" + (f" (row {e.row_number})" if e.row_number else "")
            for e in errors
        ])

    report = attribute_margin(
        records_from_frame(df),
        tie_out_rel_tolerance=settings.tie_out_rel_tolerance,
        weight_sum_tolerance=settings.weight_sum_tolerance,
    )
    content = generate_memo_content(
        report,
        title=title,
        top_n=top_n or settings.default_top_n,
    )

    if output is not None:
        Path(output).write_text(content + "\n", encoding="utf-8")
        logger.info(f"Wrote attribution memo to {output}")

    return content


# =============================================================================
# Command Line Entry Point
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Decompose a portfolio margin change into performance and mix effects",
    )
    parser.add_argument("csv", type=Path, help="CSV component table")
    parser.add_argument("--output", "-o", type=Path, default=None, help="Write the memo to this file")
    parser.add_argument("--top-n", type=int, default=None, help="Number of top drivers to list")
    parser.add_argument("--title", default=DEFAULT_MEMO_TITLE, help="Memo title")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Run the memo job from the command line.

    Returns:
        Process exit code: 0 on success, 1 on validation or attribution errors.
    """
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.top_n is not None and args.top_n < 1:
        logger.error("--top-n must be at least 1")
        return 1

    try:
        content = run_attribution_memo(
            args.csv,
            output=args.output,
            top_n=args.top_n,
            title=args.title,
        )
    except MemoInputError as e:
        for message in e.messages:
            logger.error(f"Invalid component table: {message}")
        return 1
    except AttributionError as e:
        logger.error(f"Attribution failed: {e}")
        return 1

    if args.output is None:
        print(content)
    return 0


if __name__ == "__main__":
    sys.exit(main())
