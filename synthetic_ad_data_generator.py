#!/usr/bin/env python3
"""
synthetic_ad_data_generator.py

Populates an Active Directory (or any LDAP directory) with synthetic user accounts
for testing at scale:
- Loads first names, last names and addresses from CSV reference tables
- Samples a set of office locations from the address pool
- Synthesizes identities (name, department, title, office, phone extension)
- Optionally creates one OU per department under the main OU
- Creates each account, re-sampling on duplicate-entry conflicts

Outputs (in global.output_directory):
- created_accounts.csv: one row per account that was created
- run_summary.json: requested vs. created counts, retried and failed slots

Usage:
    python synthetic_ad_data_generator.py --config data_generator_config.json
    python synthetic_ad_data_generator.py --config data_generator_config.json --dry-run -v
"""

import argparse
import copy
import json
import logging
import secrets
import string
import sys
from dataclasses import dataclass, field, asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from directory_client import (
    DirectoryClient,
    DryRunDirectoryClient,
    LdapDirectoryClient,
    WriteStatus,
    ou_dn,
)

# External dependencies
try:
    import numpy as np
    from numpy.random import Generator
    import pandas as pd
    from ldap3.core.exceptions import LDAPException
except ImportError as e:
    print(f"Error: Missing required library: {e}", file=sys.stderr)
    print("Please install dependencies: pip install pandas numpy ldap3 faker", file=sys.stderr)
    sys.exit(1)


EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_FATAL = 2


# =============================================================================
# Errors
# =============================================================================

class SourceUnavailable(FileNotFoundError):
    """A reference table could not be read."""


class MalformedRecord(ValueError):
    """A reference table is missing a required column or has no rows."""


class InsufficientAddressPool(ValueError):
    """Fewer addresses than the number of locations requested."""


class ConfigError(ValueError):
    """Invalid or incomplete configuration."""


class RetryExhausted(RuntimeError):
    """A sequence number kept colliding after all retries."""

    def __init__(self, sequence_number: int, attempts: int):
        super().__init__(f"Sequence number {sequence_number} still conflicting after {attempts} attempts")
        self.sequence_number = sequence_number
        self.attempts = attempts


# =============================================================================
# Data Classes
# =============================================================================

FIRST_NAME = "FirstName"
LAST_NAME = "LastName"


@dataclass(frozen=True)
class ReferenceName:
    value: str
    role: str  # FIRST_NAME or LAST_NAME


@dataclass(frozen=True)
class AddressRecord:
    street: str
    city: str
    state: str
    postal_code: str
    country: str
    phone_number: str


@dataclass(frozen=True)
class Location:
    """An address promoted to an office for this run."""
    source_index: int
    address: AddressRecord

    @property
    def phone_number(self) -> str:
        return self.address.phone_number


@dataclass(frozen=True)
class Department:
    name: str
    titles: tuple


@dataclass(frozen=True)
class SyntheticIdentity:
    """Represents one account to be created."""
    sequence_number: int
    first_name: str
    last_name: str
    display_name: str
    account_id: str
    email: str
    department: str
    title: str
    location: Location
    office_phone: str


@dataclass
class ReferenceData:
    first_names: List[ReferenceName]
    last_names: List[ReferenceName]
    addresses: List[AddressRecord]


@dataclass
class ProvisionReport:
    created: List[str] = field(default_factory=list)
    existing: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


@dataclass
class RunSummary:
    """Running tally of a generation run."""
    requested: int
    created: List[SyntheticIdentity] = field(default_factory=list)
    duplicate_retries: int = 0
    failed_slots: List[int] = field(default_factory=list)
    exhausted_slots: List[int] = field(default_factory=list)
    existing_slots: List[int] = field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.created)

    @property
    def shortfall(self) -> int:
        return self.requested - self.created_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            'requested': self.requested,
            'created': self.created_count,
            'shortfall': self.shortfall,
            'duplicate_retries': self.duplicate_retries,
            'failed_slots': self.failed_slots,
            'exhausted_slots': self.exhausted_slots,
            'existing_slots': self.existing_slots,
        }


# =============================================================================
# Static organization data
# =============================================================================

DEFAULT_DEPARTMENTS = (
    Department("Finance & Accounting", (
        "Manager", "Accountant", "Data Entry", "Financial Analyst", "Payroll Specialist")),
    Department("Human Resources", (
        "Manager", "Administrator", "Officer", "Coordinator", "Recruiter")),
    Department("Sales", (
        "Manager", "Representative", "Consultant", "Account Executive", "Sales Engineer")),
    Department("Marketing", (
        "Manager", "Coordinator", "Assistant", "Specialist", "Content Strategist")),
    Department("Engineering", (
        "Manager", "Engineer", "Scientist", "Architect", "Technician")),
    Department("Consulting", (
        "Manager", "Consultant", "Senior Consultant", "Principal")),
    Department("IT", (
        "Manager", "Engineer", "Technician", "Systems Administrator", "Help Desk Analyst")),
    Department("Planning", (
        "Manager", "Engineer", "Planner", "Scheduler")),
    Department("Contracts", (
        "Manager", "Coordinator", "Clerk", "Contract Administrator")),
    Department("Purchasing", (
        "Manager", "Coordinator", "Clerk", "Purchaser", "Buyer")),
)

DEFAULT_CONFIG: Dict[str, Any] = {
    "global": {
        "seed": None,
        "output_directory": "./out",
    },
    "directory": {
        "server": "",
        "port": None,
        "use_ssl": True,
        "ssl_no_verify": False,
        "bind_dn": "",
        "bind_password": "",
        "timeout_seconds": 30,
        "dry_run": False,
    },
    "organization": {
        "base_path": "",
        "main_ou": "",
        "org_short_name": "",
        "dns_domain": "",
        "company": "",
        "initial_password": "",
        "department_ous": False,
    },
    "generation": {
        "user_count": 1000,
        "location_count": 10,
        "max_retries": 10,
        "precheck_existing": False,
    },
    "input_files": {
        "firstnames": "input/firstnames.csv",
        "lastnames": "input/lastnames.csv",
        "addresses": "input/addresses.csv",
    },
}


# =============================================================================
# Configuration Loader
# =============================================================================

class ConfigLoader:
    """Loads and validates the configuration file."""

    REQUIRED_ORGANIZATION_KEYS = ("base_path", "main_ou", "org_short_name", "dns_domain")

    def __init__(self, config_path: Optional[Path] = None,
                 overrides: Optional[Dict[str, Dict[str, Any]]] = None):
        self.config_path = config_path
        self.overrides = overrides or {}
        self.config: Dict[str, Any] = {}
        self.logger = logging.getLogger(self.__class__.__name__)

    def load(self) -> Dict[str, Any]:
        """Load defaults, then the JSON file, then CLI overrides, and validate."""
        self.config = copy.deepcopy(DEFAULT_CONFIG)

        if self.config_path is not None:
            self.logger.info(f"Loading configuration from {self.config_path}")
            if not self.config_path.exists():
                raise ConfigError(f"Config file not found: {self.config_path}")
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    file_config = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigError(f"Invalid JSON in {self.config_path}: {e}") from e
            self._merge(self.config, self._flatten_recursive(file_config))

        self._merge(self.config, self.overrides)
        self._validate()
        return self.config

    def _merge(self, base: Dict[str, Any], updates: Dict[str, Any]) -> None:
        for key, value in updates.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                self._merge(base[key], value)
            elif value is not None:
                base[key] = value

    def _flatten_recursive(self, obj: Any) -> Any:
        """Recursively flatten objects with 'value' keys."""
        if isinstance(obj, dict):
            # If dict has only 'value' and '_comment' keys, return the value
            keys = set(obj.keys())
            if keys == {'value'} or keys == {'value', '_comment'}:
                return self._flatten_recursive(obj['value'])

            return {k: self._flatten_recursive(v) for k, v in obj.items()
                    if not k.startswith('_comment')}

        elif isinstance(obj, list):
            return [self._flatten_recursive(item) for item in obj]

        return obj

    def _validate(self) -> None:
        org = self.config['organization']
        missing = [key for key in self.REQUIRED_ORGANIZATION_KEYS if not org.get(key)]
        if missing:
            raise ConfigError(f"Missing required organization settings: {', '.join(missing)}")

        gen = self.config['generation']
        for key, minimum in (('user_count', 1), ('location_count', 0), ('max_retries', 0)):
            value = gen.get(key)
            if not isinstance(value, int) or isinstance(value, bool) or value < minimum:
                raise ConfigError(f"generation.{key} must be an integer >= {minimum}, got {value!r}")

        directory = self.config['directory']
        if not directory.get('dry_run') and not directory.get('server'):
            raise ConfigError("directory.server is required unless dry_run is enabled")

        self.config['departments'] = parse_departments(self.config.get('departments'))
        self.logger.info("Configuration validation passed")

    def get(self, *keys, default=None) -> Any:
        """Get nested config value."""
        value = self.config
        for key in keys:
            if isinstance(value, dict):
                value = value.get(key, default)
            else:
                return default
        return value


def parse_departments(raw: Optional[Sequence[Dict[str, Any]]]) -> tuple:
    """Build the department table from config, or return the built-in one."""
    if raw is None:
        return DEFAULT_DEPARTMENTS
    if isinstance(raw, tuple) and all(isinstance(d, Department) for d in raw):
        return raw
    if not raw:
        raise ConfigError("departments must not be empty")

    departments = []
    seen = set()
    for entry in raw:
        name = entry.get('name')
        titles = entry.get('titles') or []
        if not name:
            raise ConfigError(f"Department without a name: {entry}")
        if name in seen:
            raise ConfigError(f"Duplicate department: {name}")
        if not titles:
            raise ConfigError(f"Department {name} has no titles")
        seen.add(name)
        departments.append(Department(name, tuple(titles)))
    return tuple(departments)


# =============================================================================
# Reference Data Loader
# =============================================================================

class ReferenceDataLoader:
    """Reads the name and address reference tables."""

    FIRST_NAME_COLUMN = "Firstname"
    LAST_NAME_COLUMN = "Lastname"
    ADDRESS_COLUMNS = ("City", "Street", "State", "PostalCode", "Country", "PhoneNumber")

    def __init__(self, base_path: Path = Path(".")):
        self.base_path = base_path
        self.logger = logging.getLogger(self.__class__.__name__)

    def read_table(self, file_path, required_columns: Sequence[str]) -> pd.DataFrame:
        """Read a CSV as strings, keeping source order and exact values."""
        full_path = self.base_path / file_path
        try:
            df = pd.read_csv(full_path, dtype=str, keep_default_na=False, encoding='utf-8-sig')
        except pd.errors.EmptyDataError as e:
            raise MalformedRecord(f"{full_path} is empty") from e
        except (OSError, UnicodeDecodeError, pd.errors.ParserError) as e:
            raise SourceUnavailable(f"Cannot read {full_path}: {e}") from e

        df.columns = [str(c).strip() for c in df.columns]
        missing = [c for c in required_columns if c not in df.columns]
        if missing:
            raise MalformedRecord(f"{full_path} is missing required column(s): {', '.join(missing)}")
        if df.empty:
            raise MalformedRecord(f"{full_path} has no rows")

        self.logger.info(f"Loaded {len(df)} rows from {full_path}")
        return df

    def load_names(self, file_path, role: str) -> List[ReferenceName]:
        column = self.FIRST_NAME_COLUMN if role == FIRST_NAME else self.LAST_NAME_COLUMN
        df = self.read_table(file_path, [column])
        return [ReferenceName(value, role) for value in df[column].tolist()]

    def load_addresses(self, file_path) -> List[AddressRecord]:
        df = self.read_table(file_path, self.ADDRESS_COLUMNS)
        return [
            AddressRecord(
                street=row['Street'],
                city=row['City'],
                state=row['State'],
                postal_code=row['PostalCode'],
                country=row['Country'],
                phone_number=row['PhoneNumber'],
            )
            for row in df.to_dict('records')
        ]

    def load_all(self, firstnames, lastnames, addresses) -> ReferenceData:
        return ReferenceData(
            first_names=self.load_names(firstnames, FIRST_NAME),
            last_names=self.load_names(lastnames, LAST_NAME),
            addresses=self.load_addresses(addresses),
        )


# =============================================================================
# Location Sampler
# =============================================================================

class LocationSampler:
    """Picks the office locations for a run, without replacement."""

    def __init__(self, rng: Generator):
        self.rng = rng
        self.logger = logging.getLogger(self.__class__.__name__)

    def sample(self, addresses: Sequence[AddressRecord], location_count: int) -> List[Location]:
        """
        Return location_count + 1 locations from distinct address rows.

        Distinctness is by source row, so two identical rows can both be picked.
        """
        if location_count < 0:
            raise ConfigError(f"location_count must be >= 0, got {location_count}")

        target = location_count + 1
        if target > len(addresses):
            raise InsufficientAddressPool(
                f"Need {target} distinct addresses for location_count={location_count}, "
                f"but only {len(addresses)} are available"
            )

        chosen: List[int] = []
        seen = set()
        while len(chosen) < target:
            index = int(self.rng.integers(0, len(addresses)))
            if index in seen:
                continue
            seen.add(index)
            chosen.append(index)

        locations = [Location(i, addresses[i]) for i in chosen]
        for loc in locations:
            self.logger.debug(f"Office location: {loc.address.street}, {loc.address.city} (row {loc.source_index})")
        self.logger.info(f"Selected {len(locations)} office locations")
        return locations


# =============================================================================
# Identity Synthesizer
# =============================================================================

def extension_width(user_count: int) -> int:
    return len(str(user_count))


class IdentitySynthesizer:
    """Builds one synthetic identity per sequence number."""

    def __init__(self, reference: ReferenceData, locations: Sequence[Location],
                 departments: Sequence[Department], org_short_name: str,
                 dns_domain: str, user_count: int, rng: Generator):
        if not locations:
            raise ConfigError("At least one location is required")
        if not departments:
            raise ConfigError("At least one department is required")
        self.first_names = reference.first_names
        self.last_names = reference.last_names
        self.locations = list(locations)
        self.departments = list(departments)
        self.org_short_name = org_short_name
        self.dns_domain = dns_domain
        self.user_count = user_count
        self.rng = rng
        self.width = extension_width(user_count)

    def _pick(self, items: Sequence):
        return items[int(self.rng.integers(0, len(items)))]

    def synthesize(self, sequence_number: int) -> SyntheticIdentity:
        if sequence_number < 1:
            raise ValueError(f"sequence_number must be >= 1, got {sequence_number}")

        first_name = self._pick(self.first_names).value
        last_name = self._pick(self.last_names).value
        location = self._pick(self.locations)
        department = self._pick(self.departments)
        title = self._pick(department.titles)

        return SyntheticIdentity(
            sequence_number=sequence_number,
            first_name=first_name,
            last_name=last_name,
            display_name=f"{first_name} {last_name}",
            account_id=f"{self.org_short_name}{sequence_number}",
            email=f"{first_name}.{last_name}@{self.dns_domain}",
            department=department.name,
            title=title,
            location=location,
            office_phone=f"{location.phone_number} x{sequence_number:0{self.width}d}",
        )


# =============================================================================
# Organizational Unit Planner
# =============================================================================

def plan_ou_path(main_ou: str, department: str, department_ous: bool, base_path: str) -> str:
    main_path = ou_dn(main_ou, base_path)
    if department_ous:
        return ou_dn(department, main_path)
    return main_path


class OrganizationalUnitPlanner:
    """Derives target containers and creates the department hierarchy."""

    def __init__(self, base_path: str, main_ou: str, department_ous: bool):
        self.base_path = base_path
        self.main_ou = main_ou
        self.department_ous = department_ous
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def main_path(self) -> str:
        return ou_dn(self.main_ou, self.base_path)

    def plan_path(self, department: str) -> str:
        return plan_ou_path(self.main_ou, department, self.department_ous, self.base_path)

    def provision(self, client: DirectoryClient, departments: Sequence[Department]) -> ProvisionReport:
        """Create the main OU and one OU per department. Safe to re-run."""
        report = ProvisionReport()
        if not self.department_ous:
            self.logger.info("Department OUs disabled; skipping OU creation")
            return report

        self._create(client, self.main_ou, self.base_path, report)
        for department in departments:
            self._create(client, department.name, self.main_path, report)

        self.logger.info(
            f"OU provisioning: {len(report.created)} created, "
            f"{len(report.existing)} already existed, {len(report.failed)} failed"
        )
        return report

    def _create(self, client: DirectoryClient, name: str, parent: str, report: ProvisionReport) -> None:
        path = ou_dn(name, parent)
        result = client.create_organizational_unit(name, parent)
        if result.status is WriteStatus.SUCCESS:
            self.logger.info(f"Created OU: {path}")
            report.created.append(path)
        elif result.status is WriteStatus.ALREADY_EXISTS:
            self.logger.warning(f"OU already exists: {path}")
            report.existing.append(path)
        else:
            self.logger.error(f"Failed to create OU {path}: {result.message}")
            report.failed.append(path)


# =============================================================================
# Directory Write Coordinator
# =============================================================================

def build_user_attributes(identity: SyntheticIdentity, company: str, dns_domain: str) -> Dict[str, str]:
    """Full attribute payload for a create-account request."""
    address = identity.location.address
    return {
        'givenName': identity.first_name,
        'surname': identity.last_name,
        'displayName': identity.display_name,
        'email': identity.email,
        'streetAddress': address.street,
        'city': address.city,
        'postalCode': address.postal_code,
        'state': address.state,
        'country': address.country,
        'principalName': f"{identity.account_id}@{dns_domain}",
        'company': company,
        'department': identity.department,
        'employeeNumber': str(identity.sequence_number),
        'title': identity.title,
        'officePhone': identity.office_phone,
    }


class DirectoryWriteCoordinator:
    """
    Creates user_count accounts, one sequence number at a time.

    A duplicate-entry response re-synthesizes the same sequence number (new
    name, department, office) up to max_retries times. Any other failure
    abandons the slot and the run moves on.
    """

    def __init__(self, client: DirectoryClient, synthesizer: IdentitySynthesizer,
                 planner: OrganizationalUnitPlanner, company: str, dns_domain: str,
                 initial_password: str, max_retries: int = 10,
                 precheck_existing: bool = False):
        self.client = client
        self.synthesizer = synthesizer
        self.planner = planner
        self.company = company
        self.dns_domain = dns_domain
        self.initial_password = initial_password
        self.max_retries = max_retries
        self.precheck_existing = precheck_existing
        self.summary: Optional[RunSummary] = None
        self.logger = logging.getLogger(self.__class__.__name__)

    def run(self, user_count: int) -> RunSummary:
        self.summary = RunSummary(requested=user_count)
        self.logger.info(f"Creating {user_count} users...")

        for sequence_number in range(1, user_count + 1):
            try:
                self._create_slot(sequence_number)
            except RetryExhausted as e:
                self.logger.error(str(e))
                self.summary.exhausted_slots.append(sequence_number)

        self.logger.info(
            f"Created {self.summary.created_count} of {user_count} users "
            f"({self.summary.duplicate_retries} duplicate retries, "
            f"{len(self.summary.failed_slots)} failed, "
            f"{len(self.summary.exhausted_slots)} exhausted)"
        )
        return self.summary

    def _create_slot(self, sequence_number: int) -> None:
        summary = self.summary
        attempts = self.max_retries + 1

        for attempt in range(1, attempts + 1):
            identity = self.synthesizer.synthesize(sequence_number)

            if self.precheck_existing and self.client.lookup_account(identity.account_id):
                self.logger.warning(f"Account {identity.account_id} already exists; skipping")
                summary.existing_slots.append(sequence_number)
                return

            path = self.planner.plan_path(identity.department)
            result = self.client.create_user_account(
                identity.account_id,
                identity.display_name,
                path,
                self.initial_password,
                build_user_attributes(identity, self.company, self.dns_domain),
            )

            if result.status is WriteStatus.SUCCESS:
                self.logger.info(
                    f"Created {identity.account_id} ({identity.display_name}, "
                    f"{identity.title}, {identity.department})"
                )
                summary.created.append(identity)
                return

            if result.status is WriteStatus.ALREADY_EXISTS:
                summary.duplicate_retries += 1
                self.logger.info(
                    f"{identity.account_id} ({identity.display_name}) already exists, "
                    f"re-sampling (attempt {attempt}/{attempts})"
                )
                continue

            self.logger.error(f"Failed to create {identity.account_id}: {result.message}")
            summary.failed_slots.append(sequence_number)
            return

        raise RetryExhausted(sequence_number, attempts)


# =============================================================================
# Data Writer
# =============================================================================

class DataWriter:
    """Writes the run report to the output directory."""

    CREATED_COLUMNS = [
        'sequence_number', 'account_id', 'first_name', 'last_name', 'display_name',
        'email', 'department', 'title', 'office_phone', 'street', 'city', 'state',
        'postal_code', 'country', 'location_index', 'ou_path',
    ]

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)
        self.logger = logging.getLogger(self.__class__.__name__)

    def setup_output_dir(self) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.logger.info(f"Output directory: {self.output_dir}")

    def write_created_accounts(self, identities: Sequence[SyntheticIdentity],
                               planner: OrganizationalUnitPlanner) -> Path:
        rows = []
        for identity in identities:
            row = {k: v for k, v in asdict(identity).items() if k != 'location'}
            row.update(
                street=identity.location.address.street,
                city=identity.location.address.city,
                state=identity.location.address.state,
                postal_code=identity.location.address.postal_code,
                country=identity.location.address.country,
                location_index=identity.location.source_index,
                ou_path=planner.plan_path(identity.department),
            )
            rows.append(row)

        df = pd.DataFrame(rows, columns=self.CREATED_COLUMNS)
        output_path = self.output_dir / "created_accounts.csv"
        df.to_csv(output_path, index=False)
        self.logger.info(f"Written {len(df)} created accounts to {output_path}")
        return output_path

    def write_run_summary(self, summary: Dict[str, Any]) -> Path:
        output_path = self.output_dir / "run_summary.json"
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(summary, f, indent=2, default=str)
        self.logger.info(f"Written run summary to {output_path}")
        return output_path


# =============================================================================
# Main Orchestrator
# =============================================================================

def generate_initial_password(length: int = 16) -> str:
    """Random password with at least one upper, lower, digit and symbol."""
    symbols = "!@#$%^&*"
    alphabet = string.ascii_letters + string.digits + symbols
    password = [
        secrets.choice(string.ascii_uppercase),
        secrets.choice(string.ascii_lowercase),
        secrets.choice(string.digits),
        secrets.choice(symbols),
    ]
    password += [secrets.choice(alphabet) for _ in range(length - len(password))]
    secrets.SystemRandom().shuffle(password)
    return ''.join(password)


class SyntheticDirectoryPopulator:
    """Main orchestrator: load, sample, provision, create, report."""

    def __init__(self, config: Dict[str, Any], client: Optional[DirectoryClient] = None):
        self.config = config
        self.client = client
        self.logger = logging.getLogger(self.__class__.__name__)

        self.reference: Optional[ReferenceData] = None
        self.locations: List[Location] = []
        self.provision_report: Optional[ProvisionReport] = None
        self.coordinator: Optional[DirectoryWriteCoordinator] = None
        self.summary: Optional[RunSummary] = None

    def _build_client(self) -> DirectoryClient:
        directory = self.config['directory']
        if directory.get('dry_run'):
            self.logger.info("Dry-run mode: no changes will be made to the directory")
            return DryRunDirectoryClient()

        client = LdapDirectoryClient(
            server=directory['server'],
            port=directory.get('port'),
            use_ssl=directory.get('use_ssl', True),
            ssl_no_verify=directory.get('ssl_no_verify', False),
            bind_dn=directory.get('bind_dn', ''),
            password=directory.get('bind_password', ''),
            timeout_seconds=directory.get('timeout_seconds', 30),
            search_base=self.config['organization']['base_path'],
        )
        client.connect()
        return client

    def run(self) -> RunSummary:
        """Execute the full population run."""
        self.logger.info("=" * 60)
        self.logger.info("SYNTHETIC DIRECTORY POPULATION - STARTING")
        self.logger.info("=" * 60)

        org = self.config['organization']
        gen = self.config['generation']
        files = self.config['input_files']
        departments = self.config.get('departments') or DEFAULT_DEPARTMENTS

        seed = self.config['global'].get('seed')
        self.logger.info(f"Using seed: {seed}")
        rng = np.random.default_rng(seed)

        # Everything that can fail fatally happens before the first write
        self.reference = ReferenceDataLoader().load_all(
            files['firstnames'], files['lastnames'], files['addresses']
        )
        self.locations = LocationSampler(rng).sample(self.reference.addresses, gen['location_count'])

        synthesizer = IdentitySynthesizer(
            self.reference, self.locations, departments,
            org_short_name=org['org_short_name'],
            dns_domain=org['dns_domain'],
            user_count=gen['user_count'],
            rng=rng,
        )
        planner = OrganizationalUnitPlanner(org['base_path'], org['main_ou'], org.get('department_ous', False))

        initial_password = org.get('initial_password') or ''
        generated_password = not initial_password
        if generated_password:
            initial_password = generate_initial_password()
            self.logger.warning("No initial password configured; generated one (see run_summary.json)")

        if self.client is None:
            self.client = self._build_client()

        self.coordinator = DirectoryWriteCoordinator(
            self.client, synthesizer, planner,
            company=org.get('company', ''),
            dns_domain=org['dns_domain'],
            initial_password=initial_password,
            max_retries=gen['max_retries'],
            precheck_existing=gen.get('precheck_existing', False),
        )
        try:
            self.provision_report = planner.provision(self.client, departments)
            self.summary = self.coordinator.run(gen['user_count'])
        except KeyboardInterrupt:
            self.summary = self.coordinator.summary or RunSummary(requested=gen['user_count'])
            self.logger.warning(
                f"Interrupted after creating {self.summary.created_count} users; "
                f"created accounts are left in place"
            )
        finally:
            self._close_client()

        self._write_outputs(planner, initial_password if generated_password else None)

        self.logger.info("=" * 60)
        self.logger.info(
            f"SYNTHETIC DIRECTORY POPULATION - COMPLETE "
            f"({self.summary.created_count}/{self.summary.requested} created)"
        )
        self.logger.info("=" * 60)
        return self.summary

    def _close_client(self) -> None:
        """Unbind; a failure here does not undo the writes already made."""
        try:
            self.client.close()
        except LDAPException as e:
            self.logger.warning(f"Error closing directory connection: {e}")

    def _write_outputs(self, planner: OrganizationalUnitPlanner, generated_password: Optional[str]) -> None:
        output_dir = self.config['global'].get('output_directory')
        if not output_dir:
            return

        writer = DataWriter(Path(output_dir))
        writer.setup_output_dir()
        writer.write_created_accounts(self.summary.created, planner)

        report = {
            'generated_at': datetime.now().isoformat(),
            'seed': self.config['global'].get('seed'),
            'org_short_name': self.config['organization']['org_short_name'],
            'dry_run': bool(self.config['directory'].get('dry_run')),
            'accounts_disabled': self.client.accounts_disabled,
            'locations': [loc.source_index for loc in self.locations],
            'ou_provisioning': asdict(self.provision_report) if self.provision_report else None,
            **self.summary.to_dict(),
        }
        if generated_password:
            report['initial_password'] = generated_password
        writer.write_run_summary(report)


# =============================================================================
# CLI Entry Point
# =============================================================================

def setup_logging(level: str = 'INFO') -> None:
    """Configure logging."""
    log_format = "%(asctime)s - %(name)-25s - %(levelname)-8s - %(message)s"
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=log_format
    )
    logging.getLogger("ldap3").setLevel(logging.WARNING)
    logging.getLogger("faker").setLevel(logging.WARNING)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Synthetic Active Directory data generator",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument("--config", type=Path, help="Path to configuration JSON file")

    org = parser.add_argument_group("organization")
    org.add_argument("--base-path", help="Distinguished name the main OU lives under, e.g. DC=corp,DC=example,DC=com")
    org.add_argument("--ou", dest="main_ou", help="Name of the main organizational unit")
    org.add_argument("--initial-password", help="Initial password for every created account")
    org.add_argument("--org-short-name", help="Account id prefix, e.g. COM -> COM1, COM2, ...")
    org.add_argument("--dns-domain", help="Domain used for email and user principal names")
    org.add_argument("--company", help="Company attribute for created accounts")
    org.add_argument("--department-ous", action="store_true", default=None,
                     help="Create one OU per department under the main OU")

    gen = parser.add_argument_group("generation")
    gen.add_argument("--user-count", type=int, help="Number of accounts to create")
    gen.add_argument("--location-count", type=int, help="Office locations to sample (one more is used)")
    gen.add_argument("--max-retries", type=int, help="Re-sampling attempts per account on duplicate entries")
    gen.add_argument("--precheck-existing", action="store_true", default=None,
                     help="Look up each account id before creating it")
    gen.add_argument("--seed", type=int, help="Random seed for reproducible runs")

    files = parser.add_argument_group("input files")
    files.add_argument("--firstnames", help="CSV with a Firstname column")
    files.add_argument("--lastnames", help="CSV with a Lastname column")
    files.add_argument("--addresses", help="CSV with City, Street, State, PostalCode, Country, PhoneNumber")

    directory = parser.add_argument_group("directory")
    directory.add_argument("--server", help="LDAP server hostname")
    directory.add_argument("--port", type=int, help="LDAP server port")
    directory.add_argument("--use-ssl", action=argparse.BooleanOptionalAction, default=None,
                           help="Use LDAPS (--no-use-ssl for plain LDAP)")
    directory.add_argument("--ssl-no-verify", action=argparse.BooleanOptionalAction, default=None,
                           help="Skip server certificate verification (testing only)")
    directory.add_argument("--bind-dn", help="Bind DN (or DOMAIN\\user)")
    directory.add_argument("--bind-password", help="Bind password")
    directory.add_argument("--timeout", dest="timeout_seconds", type=float, help="Connect/receive timeout in seconds")
    directory.add_argument("--dry-run", action="store_true", default=None,
                           help="Synthesize and report without writing to the directory")

    parser.add_argument("--output-dir", help="Directory for created_accounts.csv and run_summary.json")
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging"
    )

    return parser.parse_args(argv)


def overrides_from_args(args: argparse.Namespace) -> Dict[str, Dict[str, Any]]:
    """Map CLI arguments onto config sections. Unset arguments are None and ignored."""
    return {
        "global": {
            "seed": args.seed,
            "output_directory": args.output_dir,
        },
        "directory": {
            "server": args.server,
            "port": args.port,
            "use_ssl": args.use_ssl,
            "ssl_no_verify": args.ssl_no_verify,
            "bind_dn": args.bind_dn,
            "bind_password": args.bind_password,
            "timeout_seconds": args.timeout_seconds,
            "dry_run": args.dry_run,
        },
        "organization": {
            "base_path": args.base_path,
            "main_ou": args.main_ou,
            "org_short_name": args.org_short_name,
            "dns_domain": args.dns_domain,
            "company": args.company,
            "initial_password": args.initial_password,
            "department_ous": args.department_ous,
        },
        "generation": {
            "user_count": args.user_count,
            "location_count": args.location_count,
            "max_retries": args.max_retries,
            "precheck_existing": args.precheck_existing,
        },
        "input_files": {
            "firstnames": args.firstnames,
            "lastnames": args.lastnames,
            "addresses": args.addresses,
        },
    }


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point. Returns the process exit code."""
    args = parse_args(argv)

    log_level = 'DEBUG' if args.verbose else 'INFO'
    setup_logging(log_level)

    try:
        config = ConfigLoader(args.config, overrides_from_args(args)).load()
        summary = SyntheticDirectoryPopulator(config).run()
    except (SourceUnavailable, MalformedRecord, InsufficientAddressPool) as e:
        logging.error(f"Input error: {e}")
        return EXIT_FATAL
    except ConfigError as e:
        logging.error(f"Configuration error: {e}")
        return EXIT_FATAL
    except LDAPException as e:
        logging.error(f"Directory connection failed: {e}")
        return EXIT_FATAL
    except Exception as e:
        logging.exception(f"Unexpected error: {e}")
        return EXIT_FATAL

    return EXIT_OK if summary.shortfall == 0 else EXIT_PARTIAL


if __name__ == "__main__":
    sys.exit(main())
