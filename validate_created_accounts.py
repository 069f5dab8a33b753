#!/usr/bin/env python3
"""
validate_created_accounts.py

Checks the report of a synthetic_ad_data_generator.py run:
1. No account id was created twice
2. Every account id is <org_short_name><N> with 1 <= N <= requested
3. Office phone extensions are zero-padded to the digit count of the requested total
4. Created count does not exceed the requested count and matches run_summary.json

Usage:
    python validate_created_accounts.py --output-dir out/
"""

import argparse
import json
import logging
import re
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd


def validate_run(accounts_df: pd.DataFrame, summary: Dict[str, Any]) -> List[str]:
    """Return a list of problems; empty when the run report is consistent."""
    problems: List[str] = []
    requested = int(summary['requested'])
    prefix = summary['org_short_name']
    width = len(str(requested))

    account_ids = accounts_df['account_id'].astype(str)
    duplicated = account_ids[account_ids.duplicated()].unique().tolist()
    if duplicated:
        problems.append(f"Duplicate account ids: {duplicated[:10]}")

    id_pattern = re.compile(rf"^{re.escape(prefix)}([1-9][0-9]*)$")
    for account_id, sequence_number in zip(account_ids, accounts_df['sequence_number']):
        match = id_pattern.match(account_id)
        if not match:
            problems.append(f"Malformed account id: {account_id}")
            continue
        n = int(match.group(1))
        if n > requested:
            problems.append(f"Account id {account_id} is beyond the requested count {requested}")
        if n != int(sequence_number):
            problems.append(f"Account id {account_id} does not match sequence number {sequence_number}")

    ext_pattern = re.compile(rf" x(\d{{{width}}})$")
    for account_id, phone in zip(account_ids, accounts_df['office_phone'].astype(str)):
        if not ext_pattern.search(phone):
            problems.append(f"{account_id}: extension in '{phone}' is not {width} digits wide")

    if len(accounts_df) > requested:
        problems.append(f"Created {len(accounts_df)} accounts but only {requested} were requested")
    if len(accounts_df) != int(summary['created']):
        problems.append(
            f"created_accounts.csv has {len(accounts_df)} rows, run_summary.json reports {summary['created']}"
        )

    return problems


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Validate a synthetic AD population run")
    parser.add_argument("--output-dir", type=Path, default=Path("out"),
                        help="Directory containing created_accounts.csv and run_summary.json")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)-8s - %(message)s")
    logger = logging.getLogger("RunValidator")

    accounts_path = args.output_dir / "created_accounts.csv"
    summary_path = args.output_dir / "run_summary.json"
    for path in (accounts_path, summary_path):
        if not path.exists():
            logger.error(f"Missing {path}")
            return 2

    accounts_df = pd.read_csv(accounts_path, dtype=str, keep_default_na=False)
    with open(summary_path, 'r', encoding='utf-8') as f:
        summary = json.load(f)

    problems = validate_run(accounts_df, summary)
    logger.info(f"Requested: {summary['requested']}, created: {len(accounts_df)}, "
                f"duplicate retries: {summary.get('duplicate_retries', 0)}")
    if problems:
        for problem in problems:
            logger.error(problem)
        return 1

    logger.info("Run report is consistent ✓")
    return 0


if __name__ == "__main__":
    sys.exit(main())
