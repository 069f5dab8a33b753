import logging
from typing import Dict, List
from unittest.mock import MagicMock

import numpy as np
import pytest

from directory_client import (
    DirectoryClient,
    DryRunDirectoryClient,
    LdapDirectoryClient,
    WriteResult,
    WriteStatus,
)
from synthetic_ad_data_generator import (
    DEFAULT_DEPARTMENTS,
    FIRST_NAME,
    LAST_NAME,
    AddressRecord,
    Department,
    DirectoryWriteCoordinator,
    IdentitySynthesizer,
    LocationSampler,
    OrganizationalUnitPlanner,
    ReferenceData,
    ReferenceName,
)


BASE_PATH = "DC=corp,DC=example,DC=com"


class ScriptedClient(DirectoryClient):
    """Succeeds unless a status is queued for the account id."""

    def __init__(self, responses: Dict[str, List[WriteStatus]] = None, existing=()):
        self.responses = responses or {}
        self.existing = set(existing)
        self.calls = []
        self.lookups = []

    def create_organizational_unit(self, name, parent_path):
        return WriteResult(WriteStatus.SUCCESS)

    def create_user_account(self, account_id, display_name, path, credential, attributes):
        self.calls.append({
            "account_id": account_id,
            "display_name": display_name,
            "path": path,
            "credential": credential,
            "attributes": attributes,
        })
        queue = self.responses.get(account_id)
        if queue:
            return WriteResult(queue.pop(0), "scripted")
        return WriteResult(WriteStatus.SUCCESS)

    def lookup_account(self, account_id):
        self.lookups.append(account_id)
        return account_id in self.existing


def build_coordinator(client, user_count=3, max_retries=10, department_ous=False,
                      precheck_existing=False, seed=7, departments=DEFAULT_DEPARTMENTS):
    rng = np.random.default_rng(seed)
    reference = ReferenceData(
        first_names=[ReferenceName(n, FIRST_NAME) for n in ["Ann", "Bob", "Cy", "Di", "Ed"]],
        last_names=[ReferenceName(n, LAST_NAME) for n in ["Ames", "Bell", "Cole", "Dunn", "Eyre"]],
        addresses=[
            AddressRecord(f"{i} Main St", "Springfield", "IL", "62701", "United States", f"(217) 555-010{i}")
            for i in range(5)
        ],
    )
    locations = LocationSampler(rng).sample(reference.addresses, 1)
    synthesizer = IdentitySynthesizer(
        reference, locations, departments, "COM", "corp.example.com", user_count, rng
    )
    planner = OrganizationalUnitPlanner(BASE_PATH, "Company", department_ous)
    return DirectoryWriteCoordinator(
        client, synthesizer, planner,
        company="Example Corp",
        dns_domain="corp.example.com",
        initial_password="Initial#Pass1",
        max_retries=max_retries,
        precheck_existing=precheck_existing,
    )


def test_all_successes_create_every_account(caplog) -> None:
    client = ScriptedClient()

    with caplog.at_level(logging.INFO):
        summary = build_coordinator(client).run(3)

    assert summary.created_count == 3
    assert [c["account_id"] for c in client.calls] == ["COM1", "COM2", "COM3"]
    assert summary.duplicate_retries == 0
    assert "re-sampling" not in caplog.text


def test_duplicate_retries_same_sequence_number() -> None:
    client = ScriptedClient({"COM2": [WriteStatus.ALREADY_EXISTS]})

    summary = build_coordinator(client).run(3)

    assert summary.created_count == 3
    assert summary.duplicate_retries == 1
    assert [c["account_id"] for c in client.calls] == ["COM1", "COM2", "COM2", "COM3"]
    assert [i.account_id for i in summary.created] == ["COM1", "COM2", "COM3"]


def test_other_error_abandons_slot_and_continues(caplog) -> None:
    client = ScriptedClient({"COM2": [WriteStatus.OTHER_ERROR]})

    with caplog.at_level(logging.ERROR):
        summary = build_coordinator(client).run(3)

    assert summary.created_count == 2
    assert summary.failed_slots == [2]
    assert summary.shortfall == 1
    assert [c["account_id"] for c in client.calls] == ["COM1", "COM2", "COM3"]
    assert "Failed to create COM2" in caplog.text


def test_retry_cap_reports_exhausted_slot(caplog) -> None:
    client = ScriptedClient({"COM1": [WriteStatus.ALREADY_EXISTS] * 10})

    with caplog.at_level(logging.ERROR):
        summary = build_coordinator(client, user_count=2, max_retries=2).run(2)

    assert summary.exhausted_slots == [1]
    assert summary.created_count == 1
    assert [c["account_id"] for c in client.calls].count("COM1") == 3
    assert "after 3 attempts" in caplog.text


def test_zero_retries_means_single_attempt() -> None:
    client = ScriptedClient({"COM1": [WriteStatus.ALREADY_EXISTS]})

    summary = build_coordinator(client, user_count=1, max_retries=0).run(1)

    assert summary.exhausted_slots == [1]
    assert len(client.calls) == 1


def test_payload_contains_full_identity() -> None:
    client = ScriptedClient()

    summary = build_coordinator(client, department_ous=True).run(3)

    call = client.calls[0]
    identity = summary.created[0]
    attributes = call["attributes"]
    assert call["credential"] == "Initial#Pass1"
    assert call["display_name"] == identity.display_name
    assert call["path"] == f"OU={identity.department},OU=Company,{BASE_PATH}"
    assert attributes["principalName"] == "COM1@corp.example.com"
    assert attributes["employeeNumber"] == "1"
    assert attributes["company"] == "Example Corp"
    assert attributes["email"] == identity.email
    assert attributes["officePhone"] == identity.office_phone
    assert attributes["streetAddress"] == identity.location.address.street
    assert attributes["postalCode"] == "62701"


def test_flat_mode_uses_main_ou() -> None:
    client = ScriptedClient()

    build_coordinator(client).run(3)

    assert {c["path"] for c in client.calls} == {f"OU=Company,{BASE_PATH}"}


def test_precheck_skips_existing_accounts(caplog) -> None:
    client = ScriptedClient(existing={"COM1"})

    with caplog.at_level(logging.WARNING):
        summary = build_coordinator(client, precheck_existing=True).run(3)

    assert summary.existing_slots == [1]
    assert [c["account_id"] for c in client.calls] == ["COM2", "COM3"]
    assert client.lookups == ["COM1", "COM2", "COM3"]
    assert "COM1 already exists" in caplog.text


@pytest.mark.parametrize("user_count", [1, 25, 60])
def test_dry_run_client_reaches_requested_count(user_count: int) -> None:
    client = DryRunDirectoryClient()

    summary = build_coordinator(client, user_count=user_count, department_ous=True).run(user_count)

    account_ids = [i.account_id for i in summary.created]
    assert summary.created_count == user_count
    assert len(set(account_ids)) == user_count
    assert set(account_ids) == {f"COM{n}" for n in range(1, user_count + 1)}


def test_provision_is_idempotent(caplog) -> None:
    client = DryRunDirectoryClient()
    planner = OrganizationalUnitPlanner(BASE_PATH, "Company", True)

    first = planner.provision(client, DEFAULT_DEPARTMENTS)
    with caplog.at_level(logging.WARNING):
        second = planner.provision(client, DEFAULT_DEPARTMENTS)

    assert len(first.created) == 11
    assert second.created == []
    assert second.failed == []
    assert len(second.existing) == 11
    assert len(client.entries) == 11
    assert "OU already exists" in caplog.text


def test_provision_failure_skips_container_only() -> None:
    class FailingSalesClient(ScriptedClient):
        def create_organizational_unit(self, name, parent_path):
            if name == "Sales":
                return WriteResult(WriteStatus.OTHER_ERROR, "insufficientAccessRights")
            return WriteResult(WriteStatus.SUCCESS)

    planner = OrganizationalUnitPlanner(BASE_PATH, "Company", True)
    report = planner.provision(FailingSalesClient(), DEFAULT_DEPARTMENTS)

    assert report.failed == [f"OU=Sales,OU=Company,{BASE_PATH}"]
    assert len(report.created) == 10


def test_provision_disabled_does_nothing() -> None:
    client = DryRunDirectoryClient()

    report = OrganizationalUnitPlanner(BASE_PATH, "Company", False).provision(client, DEFAULT_DEPARTMENTS)

    assert report.created == [] and report.existing == [] and report.failed == []
    assert client.entries == {}


def test_department_with_comma_is_escaped_consistently() -> None:
    connection = MagicMock()
    connection.add.return_value = True
    client = LdapDirectoryClient("dc01.corp.example.com", "CORP\\svc", "secret",
                                 use_ssl=True, connection=connection)
    planner = OrganizationalUnitPlanner(BASE_PATH, "Company", True)
    departments = (Department("Research, Development", ("Lead",)),)

    report = planner.provision(client, departments)

    expected = f"OU=Research\\, Development,OU=Company,{BASE_PATH}"
    added = [c.args[0] for c in connection.add.call_args_list]
    assert planner.plan_path("Research, Development") == expected
    assert added == [f"OU=Company,{BASE_PATH}", expected]
    assert report.created == added


def test_users_land_in_escaped_department_ou() -> None:
    client = DryRunDirectoryClient()
    departments = (Department("Research, Development", ("Lead",)),)
    coordinator = build_coordinator(client, department_ous=True, departments=departments)

    coordinator.planner.provision(client, departments)
    summary = coordinator.run(3)

    expected = f"OU=Research\\, Development,OU=Company,{BASE_PATH}"
    assert summary.created_count == 3
    assert expected in client.entries
    user_dns = [dn for dn in client.entries if dn.startswith("CN=")]
    assert len(user_dns) == 3
    assert all(dn.endswith("," + expected) for dn in user_dns)
