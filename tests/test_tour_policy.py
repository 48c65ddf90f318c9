from datetime import date

import pytest

from database.models import TimeSlot
from factories import FUTURE, make_boat, make_custom_tour, make_reservation, make_schedule
from utils.errors import ConfigurationAbsentError
from utils.tour_policy import (
    BAIT_CONFIRMATION, OVERNIGHT_CONFIRMATION, available_tour_types, can_select_date,
    can_select_slot, is_exclusive, next_confirmation, required_confirmations,
    required_party_size, requires_overnight_confirmation, resolve_tour_type
)

TODAY = date(2099, 5, 1)


@pytest.fixture
def normal():
    return resolve_tour_type('normal', [])


@pytest.fixture
def private():
    return resolve_tour_type('private', [])


def test_exclusive_classification():
    registry = [make_custom_tour('sunset')]

    assert not is_exclusive('normal', registry)
    assert is_exclusive('private', registry)
    assert is_exclusive('fishing-swimming', registry)
    assert is_exclusive('sunset', registry)
    assert not is_exclusive('unknown', registry)


def test_resolve_custom_tour():
    tour = resolve_tour_type('sunset', [make_custom_tour('sunset', capacity=8, price=9000)])

    assert tour.exclusive
    assert tour.custom
    assert tour.capacity == 8
    assert tour.price == 9000
    assert tour.party_size(12) == 8


def test_unknown_or_inactive_custom_tour_is_absent():
    with pytest.raises(ConfigurationAbsentError):
        resolve_tour_type('unknown', [])
    with pytest.raises(ConfigurationAbsentError):
        resolve_tour_type('sunset', [make_custom_tour('sunset', is_active=False)])


def test_required_party_size():
    registry = [make_custom_tour('sunset', capacity=8)]

    assert required_party_size('normal', registry, adults=2, children=1) == 3
    assert required_party_size('private', registry) == 12
    assert required_party_size('fishing-swimming', registry, default_capacity=10) == 10
    assert required_party_size('sunset', registry) == 8


def test_past_date_is_rejected(normal):
    boat = make_boat()

    assert not can_select_date('2099-04-30', boat, [], normal, today=TODAY)
    assert can_select_date('2099-05-01', boat, [], normal, today=TODAY)


def test_date_outside_boat_season_is_rejected(normal):
    boat = make_boat(start_date='2099-05-10', end_date='2099-09-30')

    assert not can_select_date('2099-05-09', boat, [], normal, today=TODAY)
    assert can_select_date('2099-05-10', boat, [], normal, today=TODAY)
    assert can_select_date('2099-09-30', boat, [], normal, today=TODAY)
    assert not can_select_date('2099-10-01', boat, [], normal, today=TODAY)


def test_exclusive_tour_needs_an_empty_day(private):
    boat = make_boat()
    other_slot = [make_reservation([1], slot_id='1')]

    assert not can_select_date(FUTURE, boat, other_slot, private, today=TODAY)


def test_cancelled_reservations_do_not_block_exclusive_day(private):
    boat = make_boat()
    cancelled = [make_reservation([1, 2], status='cancelled')]

    assert can_select_date(FUTURE, boat, cancelled, private, today=TODAY)


def test_normal_tour_blocked_only_when_every_slot_is_full(normal):
    boat = make_boat()
    one_full = [make_reservation([], tour_type='private', slot_id='0')]
    all_full = one_full + [make_reservation(range(1, 13), slot_id='1')]

    assert can_select_date(FUTURE, boat, one_full, normal, today=TODAY)
    assert not can_select_date(FUTURE, boat, all_full, normal, today=TODAY)


def test_day_without_slots_is_not_selectable(normal):
    boat = make_boat(scheduled=[make_schedule('2099-06-01', [])])

    assert not can_select_date(FUTURE, boat, [], normal, today=TODAY)


def test_private_tour_rejected_on_partially_booked_slot(private):
    fullness = 3 / 12

    assert not can_select_slot(private, fullness)
    assert can_select_slot(private, 0)


def test_normal_tour_rejected_on_slot_taken_by_private(normal):
    assert not can_select_slot(normal, 1.0)


def test_near_full_threshold(normal):
    assert can_select_slot(normal, 10 / 12)
    assert not can_select_slot(normal, 11 / 12)
    assert not can_select_slot(normal, 0.9)
    assert can_select_slot(normal, 0.95, threshold=1.0)


def test_overnight_confirmation():
    assert requires_overnight_confirmation('19:00', '01:00')
    assert requires_overnight_confirmation('02:00', '06:00')
    assert requires_overnight_confirmation('01:00', '05:00')
    assert not requires_overnight_confirmation('09:00', '13:00')
    assert not requires_overnight_confirmation('07:00', '13:00')


def test_confirmations_are_ordered_bait_first():
    slot = TimeSlot('02:00', '06:00', bait_warning=True)

    assert required_confirmations(slot) == [BAIT_CONFIRMATION, OVERNIGHT_CONFIRMATION]
    assert next_confirmation(slot, []) == BAIT_CONFIRMATION
    assert next_confirmation(slot, [BAIT_CONFIRMATION]) == OVERNIGHT_CONFIRMATION
    assert next_confirmation(slot, [BAIT_CONFIRMATION, OVERNIGHT_CONFIRMATION]) is None


def test_plain_slot_needs_no_confirmation():
    assert required_confirmations(TimeSlot('09:00', '13:00')) == []


def test_available_tour_types_include_active_custom_tours():
    registry = [make_custom_tour('sunset'), make_custom_tour('moon', is_active=False)]

    ids = [tour.id for tour in available_tour_types(registry)]

    assert ids == ['normal', 'private', 'fishing-swimming', 'sunset']
