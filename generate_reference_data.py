#!/usr/bin/env python3
"""
generate_reference_data.py

Writes sample reference tables for synthetic_ad_data_generator.py:
- firstnames.csv (Firstname)
- lastnames.csv (Lastname)
- addresses.csv (City, Street, State, PostalCode, Country, PhoneNumber)

Usage:
    python generate_reference_data.py --output-dir input --names 500 --addresses 200 --seed 42
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd
from faker import Faker


class ReferenceDataGenerator:
    """Generates name and address tables with Faker."""

    def __init__(self, seed: Optional[int] = None, locale: str = "en_US"):
        if seed is not None:
            Faker.seed(seed)
        self.faker = Faker(locale)
        self.logger = logging.getLogger(self.__class__.__name__)

    def first_names(self, count: int) -> pd.DataFrame:
        return pd.DataFrame({"Firstname": [self.faker.first_name() for _ in range(count)]})

    def last_names(self, count: int) -> pd.DataFrame:
        return pd.DataFrame({"Lastname": [self.faker.last_name() for _ in range(count)]})

    def addresses(self, count: int, country: str = "United States") -> pd.DataFrame:
        rows = []
        for _ in range(count):
            rows.append({
                "City": self.faker.city(),
                "Street": self.faker.street_address(),
                "State": self.faker.state_abbr(),
                "PostalCode": self.faker.postcode(),
                "Country": country,
                # Office main line; the generator appends " x<extension>"
                "PhoneNumber": self.faker.numerify("(###) ###-####"),
            })
        return pd.DataFrame(rows, columns=["City", "Street", "State", "PostalCode", "Country", "PhoneNumber"])

    def write_all(self, output_dir: Path, names: int, addresses: int) -> None:
        output_dir.mkdir(parents=True, exist_ok=True)
        tables = {
            "firstnames.csv": self.first_names(names),
            "lastnames.csv": self.last_names(names),
            "addresses.csv": self.addresses(addresses),
        }
        for filename, df in tables.items():
            path = output_dir / filename
            df.to_csv(path, index=False)
            self.logger.info(f"Written {len(df)} rows to {path}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Generate sample reference tables for the synthetic AD data generator",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("--output-dir", type=Path, default=Path("input"))
    parser.add_argument("--names", type=int, default=500, help="Rows per name table")
    parser.add_argument("--addresses", type=int, default=200, help="Rows in the address table")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--locale", default="en_US", help="Faker locale")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)-25s - %(levelname)-8s - %(message)s")
    logging.getLogger("faker").setLevel(logging.WARNING)

    if args.names < 1 or args.addresses < 1:
        logging.error("--names and --addresses must be at least 1")
        return 2

    ReferenceDataGenerator(seed=args.seed, locale=args.locale).write_all(
        args.output_dir, args.names, args.addresses
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
