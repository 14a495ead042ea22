"""Tests for recipient resolution."""

import logging
from uuid import uuid4

from cargo_relay.domain.roster import ManagerScope, RecipientPolicy, Role
from cargo_relay.services.access import AccessService
from cargo_relay.services.recipients import RecipientResolver
from tests.conftest import InMemoryRosterRepository


def _roster() -> tuple[InMemoryRosterRepository, object, object]:
    client_id = uuid4()
    other_client_id = uuid4()
    roster = InMemoryRosterRepository()
    roster.add(1, Role.ADMIN)
    roster.add(2, Role.MANAGER, manages=client_id)
    roster.add(3, Role.MANAGER, verified=False, manages=client_id)
    roster.add(4, Role.MANAGER, manages=other_client_id)
    roster.add(10, client_id=client_id)
    roster.add(11, verified=False, client_id=client_id)
    roster.add(12, Role.BLOCKED, client_id=client_id)
    roster.add(13, client_id=other_client_id)
    return roster, client_id, other_client_id


def test_default_policy_reaches_client_and_all_managers() -> None:
    roster, client_id, _ = _roster()

    recipients = RecipientResolver(roster).resolve(client_id, RecipientPolicy())

    assert recipients == frozenset({1, 2, 4, 10})


def test_by_client_scope_limits_managers() -> None:
    roster, client_id, _ = _roster()
    policy = RecipientPolicy(managers=ManagerScope.BY_CLIENT)

    assert RecipientResolver(roster).resolve(client_id, policy) == frozenset({2, 10})


def test_managers_only_and_exclusions() -> None:
    roster, client_id, _ = _roster()
    policy = RecipientPolicy(include_client=False).without(2, None)

    assert RecipientResolver(roster).resolve(client_id, policy) == frozenset({1, 4})


def test_nobody_when_everything_is_off() -> None:
    roster, client_id, _ = _roster()
    policy = RecipientPolicy(managers=ManagerScope.NONE, include_client=False)

    assert RecipientResolver(roster).resolve(client_id, policy) == frozenset()


def test_failing_side_contributes_nothing(caplog, monkeypatch) -> None:
    monkeypatch.setattr(logging.getLogger("cargo_relay"), "propagate", True)
    roster, client_id, _ = _roster()
    roster.failing.add("managers")

    with caplog.at_level("WARNING"):
        recipients = RecipientResolver(roster).resolve(client_id, RecipientPolicy())

    assert recipients == frozenset({10})
    assert "Roster lookup failed" in caplog.text


def test_access_service_requires_verified_elevated_role() -> None:
    roster, _, _ = _roster()
    access = AccessService(roster)

    assert access.can_manage(1) is True
    assert access.can_manage(2) is True
    assert access.can_manage(3) is False
    assert access.can_manage(10) is False
    assert access.can_manage(999) is False


def test_excluding_the_only_client_user_leaves_nobody() -> None:
    client_id = uuid4()
    roster = InMemoryRosterRepository()
    roster.add(1, Role.ADMIN)
    roster.add(42, client_id=client_id)
    roster.add(43, verified=False, client_id=client_id)
    policy = RecipientPolicy(
        managers=ManagerScope.NONE, include_client=True, excluding=frozenset({42})
    )

    assert RecipientResolver(roster).resolve(client_id, policy) == frozenset()
