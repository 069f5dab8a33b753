#!/usr/bin/env python3
"""
directory_client.py

Directory-service capability interface used by the synthetic AD data generator.

Every write returns a tagged WriteResult instead of raising, so the generator
never depends on a specific provider's exception hierarchy:
- SUCCESS: the entry was created
- ALREADY_EXISTS: the directory rejected the entry as a duplicate
- OTHER_ERROR: anything else (permissions, connectivity, timeouts, bad payload)

Implementations:
- LdapDirectoryClient: ldap3 against Active Directory
- DryRunDirectoryClient: in-memory namespace, no network
"""

import logging
import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Set

import ldap3
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars
from ldap3.utils.dn import escape_rdn


# LDAP result code for entryAlreadyExists
RESULT_ENTRY_ALREADY_EXISTS = 68

# userAccountControl flags
UAC_NORMAL_ACCOUNT = 512
UAC_NORMAL_ACCOUNT_DISABLED = 514


class WriteStatus(Enum):
    SUCCESS = "success"
    ALREADY_EXISTS = "already_exists"
    OTHER_ERROR = "other_error"


@dataclass(frozen=True)
class WriteResult:
    """Outcome of a single directory write."""
    status: WriteStatus
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status is WriteStatus.SUCCESS


class DirectoryClient(ABC):
    """Capabilities the generator needs from a directory service."""

    # Set when accounts had to be created without a password and disabled
    accounts_disabled = False

    @abstractmethod
    def create_organizational_unit(self, name: str, parent_path: str) -> WriteResult:
        """Create OU=<name>,<parent_path>."""

    @abstractmethod
    def create_user_account(self, account_id: str, display_name: str, path: str,
                            credential: str, attributes: Dict[str, str]) -> WriteResult:
        """Create an enabled user account under path."""

    @abstractmethod
    def lookup_account(self, account_id: str) -> bool:
        """Return True if an account with this identifier exists."""

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def ou_dn(name: str, parent_path: str) -> str:
    return f"OU={escape_rdn(name)},{parent_path}"


def user_dn(display_name: str, path: str) -> str:
    return f"CN={escape_rdn(display_name)},{path}"


# =============================================================================
# LDAP (Active Directory)
# =============================================================================

# Payload keys produced by the generator -> AD attribute names
AD_ATTRIBUTE_MAP = {
    'givenName': 'givenName',
    'surname': 'sn',
    'displayName': 'displayName',
    'email': 'mail',
    'streetAddress': 'streetAddress',
    'city': 'l',
    'postalCode': 'postalCode',
    'state': 'st',
    'country': 'co',
    'principalName': 'userPrincipalName',
    'company': 'company',
    'department': 'department',
    'employeeNumber': 'employeeNumber',
    'title': 'title',
    'officePhone': 'telephoneNumber',
}


class LdapDirectoryClient(DirectoryClient):
    """
    Active Directory client backed by ldap3.

    The connection is opened lazily on first use. Both connect and receive
    timeouts are applied so that a hung directory call fails the current write
    instead of blocking the run.
    """

    def __init__(self, server: str, bind_dn: str, password: str,
                 port: Optional[int] = None, use_ssl: bool = False,
                 ssl_no_verify: bool = False, timeout_seconds: float = 30.0,
                 search_base: Optional[str] = None,
                 connection: Optional[ldap3.Connection] = None):
        self.server = server
        self.port = port or (636 if use_ssl else 389)
        self.use_ssl = use_ssl
        self.ssl_no_verify = ssl_no_verify
        self.bind_dn = bind_dn
        self.password = password
        self.timeout_seconds = timeout_seconds
        self.search_base = search_base
        self.connection = connection
        self.logger = logging.getLogger(self.__class__.__name__)

    def connect(self) -> ldap3.Connection:
        """Bind to the server. Bind errors propagate to the caller."""
        if self.connection is not None:
            return self.connection

        tls = None
        if self.use_ssl:
            validate = ssl.CERT_NONE if self.ssl_no_verify else ssl.CERT_REQUIRED
            tls = ldap3.Tls(validate=validate)

        self.logger.info(f"Connecting to {self.server}:{self.port} (ssl={self.use_ssl})")
        ldap_server = ldap3.Server(
            self.server,
            port=self.port,
            use_ssl=self.use_ssl,
            tls=tls,
            get_info=ldap3.NONE,
            connect_timeout=self.timeout_seconds
        )
        self.connection = ldap3.Connection(
            ldap_server,
            user=self.bind_dn,
            password=self.password,
            auto_bind=True,
            receive_timeout=self.timeout_seconds
        )
        return self.connection

    def close(self) -> None:
        if self.connection is not None:
            self.connection.unbind()
            self.connection = None

    def _add(self, dn: str, attributes: Dict) -> WriteResult:
        try:
            conn = self.connect()
            if conn.add(dn, attributes=attributes):
                return WriteResult(WriteStatus.SUCCESS)
            result = conn.result or {}
            description = result.get('description', 'Unknown error')
            message = result.get('message') or description
            if result.get('result') == RESULT_ENTRY_ALREADY_EXISTS or 'AlreadyExists' in description:
                return WriteResult(WriteStatus.ALREADY_EXISTS, message)
            return WriteResult(WriteStatus.OTHER_ERROR, message)
        except LDAPException as e:
            return WriteResult(WriteStatus.OTHER_ERROR, f"{type(e).__name__}: {e}")

    def create_organizational_unit(self, name: str, parent_path: str) -> WriteResult:
        return self._add(ou_dn(name, parent_path), {
            'objectClass': ['top', 'organizationalUnit'],
            'ou': name
        })

    def create_user_account(self, account_id: str, display_name: str, path: str,
                            credential: str, attributes: Dict[str, str]) -> WriteResult:
        entry = {
            'objectClass': ['top', 'person', 'organizationalPerson', 'user'],
            'cn': display_name,
            'sAMAccountName': account_id,
        }
        for key, value in attributes.items():
            if value == '' or value is None:
                continue
            entry[AD_ATTRIBUTE_MAP.get(key, key)] = value

        # AD only accepts unicodePwd over an encrypted connection
        if self.use_ssl and credential:
            entry['unicodePwd'] = encode_ad_password(credential)
            entry['userAccountControl'] = UAC_NORMAL_ACCOUNT
        else:
            if not self.accounts_disabled:
                self.logger.warning(
                    "Connection is not using SSL; accounts will be created disabled without a password"
                )
                self.accounts_disabled = True
            entry['userAccountControl'] = UAC_NORMAL_ACCOUNT_DISABLED

        return self._add(user_dn(display_name, path), entry)

    def lookup_account(self, account_id: str) -> bool:
        search_filter = f"(&(objectClass=user)(sAMAccountName={escape_filter_chars(account_id)}))"
        try:
            conn = self.connect()
            found = conn.search(
                search_base=self.search_base,
                search_filter=search_filter,
                search_scope=ldap3.SUBTREE,
                attributes=['sAMAccountName']
            )
            return bool(found and conn.entries)
        except LDAPException as e:
            self.logger.debug(f"Lookup of {account_id} failed: {e}")
            return False


def encode_ad_password(password: str) -> bytes:
    """AD expects the password wrapped in double quotes, UTF-16LE encoded."""
    return f'"{password}"'.encode('utf-16-le')


# =============================================================================
# Dry run
# =============================================================================

class DryRunDirectoryClient(DirectoryClient):
    """
    In-memory directory used for --dry-run and tests.

    Enforces the same uniqueness constraints AD does: one entry per DN and one
    account per sAMAccountName.
    """

    def __init__(self):
        self.entries: Dict[str, Dict[str, str]] = {}
        self.account_ids: Set[str] = set()
        self.logger = logging.getLogger(self.__class__.__name__)

    def create_organizational_unit(self, name: str, parent_path: str) -> WriteResult:
        dn = ou_dn(name, parent_path)
        if dn in self.entries:
            return WriteResult(WriteStatus.ALREADY_EXISTS, f"{dn} already exists")
        self.entries[dn] = {'ou': name}
        self.logger.debug(f"[DRY-RUN] Would create OU: {dn}")
        return WriteResult(WriteStatus.SUCCESS)

    def create_user_account(self, account_id: str, display_name: str, path: str,
                            credential: str, attributes: Dict[str, str]) -> WriteResult:
        dn = user_dn(display_name, path)
        if account_id in self.account_ids or dn in self.entries:
            return WriteResult(WriteStatus.ALREADY_EXISTS, f"{account_id} ({dn}) already exists")
        self.entries[dn] = dict(attributes, sAMAccountName=account_id)
        self.account_ids.add(account_id)
        self.logger.debug(f"[DRY-RUN] Would create user: {dn}")
        return WriteResult(WriteStatus.SUCCESS)

    def lookup_account(self, account_id: str) -> bool:
        return account_id in self.account_ids
