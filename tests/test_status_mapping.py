import pytest
from hotwallet_refill.models.refill_transaction import RefillStatus, can_transition, is_terminal
from hotwallet_refill.services.status_mapping import map_provider_status


@pytest.mark.parametrize("raw,expected", [
    ("SUBMITTED", RefillStatus.PROCESSING),
    ("PENDING_AUTHORIZATION", RefillStatus.PROCESSING),
    ("BROADCASTING", RefillStatus.PROCESSING),
    ("CANCELLING", RefillStatus.PROCESSING),
    ("COMPLETED", RefillStatus.COMPLETED),
    ("CANCELLED", RefillStatus.CANCELLED),
    ("BLOCKED", RefillStatus.FAILED),
    ("REJECTED", RefillStatus.FAILED),
    ("FAILED", RefillStatus.FAILED),
])
def test_fireblocks_statuses(raw, expected):
    assert map_provider_status("fireblocks", raw) == expected


@pytest.mark.parametrize("raw,expected", [
    (1, RefillStatus.PROCESSING),
    ("2", RefillStatus.PROCESSING),
    (4, RefillStatus.COMPLETED),
    ("5", RefillStatus.FAILED),
])
def test_liminal_statuses(raw, expected):
    assert map_provider_status("liminal", raw) == expected


def test_unknown_status_or_provider_stays_in_flight():
    assert map_provider_status("fireblocks", "SOMETHING_NEW") == RefillStatus.PROCESSING
    assert map_provider_status("liminal", 3) == RefillStatus.PROCESSING
    assert map_provider_status("liminal", 6) == RefillStatus.PROCESSING
    assert map_provider_status("custodian-x", "COMPLETED") == RefillStatus.PROCESSING
    assert map_provider_status("fireblocks", None) == RefillStatus.PROCESSING


def test_transitions_only_move_forward():
    assert can_transition("PENDING", "PROCESSING")
    assert can_transition("PENDING", "FAILED")
    assert can_transition("PROCESSING", "COMPLETED")
    assert not can_transition("PROCESSING", "PENDING")
    assert not can_transition("COMPLETED", "FAILED")
    assert not can_transition("CANCELLED", "PROCESSING")
    assert is_terminal("CANCELLED")
    assert not is_terminal("PROCESSING")
