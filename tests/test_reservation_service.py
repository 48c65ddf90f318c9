import re
from datetime import date, datetime

import pytest

from database.repository import BlacklistRepository, BoatRepository, ReservationRepository
from factories import (
    FUTURE, FUTURE_NEXT, exclusive_flow_at_contact, flow_at_contact, make_boat, make_custom_tour,
    make_reservation
)
from states.booking_flow import DATE, SEATS, SUBMITTED
from utils.errors import (
    CapacityConflictError, ConfigurationAbsentError, ValidationError
)
from utils.reservation_service import (
    bulk_update_status, calculate_total_price, change_status, complete_past_reservations,
    delete_reservation, generate_reservation_number, recheck, submit_reservation,
    update_people, update_phone, update_seats
)
from utils.tour_policy import resolve_tour_type

NOW = datetime(2099, 5, 20, 10, 30)


@pytest.fixture
def boat(db):
    return BoatRepository.get_boat_by_id(1)


def _store(seats, number, **kwargs):
    return ReservationRepository.create_reservation(make_reservation(seats, number=number, **kwargs))


def test_reservation_number_format():
    number = generate_reservation_number(date(2099, 6, 1))

    assert re.fullmatch(r'RV-20990601-\d{4}', number)


def test_prices():
    normal = resolve_tour_type('normal', [])

    assert calculate_total_price(normal, 2, 1) == 3750
    assert calculate_total_price(normal, 1, 0) == 1500
    assert calculate_total_price(resolve_tour_type('private', []), 12, 0) == 15000
    assert calculate_total_price(resolve_tour_type('fishing-swimming', []), 12, 0) == 18000

    custom = resolve_tour_type('sunset', [make_custom_tour('sunset', price=9000)])
    assert calculate_total_price(custom, 8, 0) == 9000


def test_recheck_passes_on_free_seats():
    flow = flow_at_contact(make_boat(), [1, 2])

    recheck(flow, [make_reservation([3, 4]), make_reservation([1, 2], slot_id='1')])


def test_recheck_reports_conflicting_seats():
    flow = flow_at_contact(make_boat(), [1, 2])

    with pytest.raises(CapacityConflictError) as error:
        recheck(flow, [make_reservation([2, 3])])

    assert error.value.conflicting_seats == [2]


def test_recheck_ignores_cancelled_reservations():
    flow = flow_at_contact(make_boat(), [1, 2])

    recheck(flow, [make_reservation([1, 2], status='cancelled')])


def test_recheck_blocks_normal_booking_on_exclusive_slot():
    flow = flow_at_contact(make_boat(), [1])

    with pytest.raises(CapacityConflictError):
        recheck(flow, [make_reservation([], tour_type='private')])


def test_exclusive_recheck_is_date_wide():
    boat = make_boat()
    flow = exclusive_flow_at_contact(boat, resolve_tour_type('private', []))

    with pytest.raises(CapacityConflictError):
        recheck(flow, [make_reservation([7], slot_id='1')])


def test_submit_normal_reservation(boat):
    flow = flow_at_contact(boat, [1, 2, 3], children=1)

    reservation = submit_reservation(flow, [], user_id=42, now=NOW)

    assert flow.step == SUBMITTED
    assert flow.draft.reservation_number == reservation.reservation_number
    assert re.fullmatch(r'RV-20990520-\d{4}', reservation.reservation_number)

    stored = ReservationRepository.get_reservation_by_id(reservation.id)
    assert stored.selected_seats == [1, 2, 3]
    assert stored.status == 'pending'
    assert stored.payment_status == 'waiting'
    assert stored.total_price == 3750
    assert stored.time_slot_display == '07:00 - 13:00'
    assert stored.user_surname == 'Yılmaz'
    assert not stored.is_private_tour


def test_submit_exclusive_reservation_holds_whole_boat(boat):
    flow = exclusive_flow_at_contact(boat, resolve_tour_type('fishing-swimming', []))

    reservation = submit_reservation(flow, [], user_id=42, now=NOW)

    stored = ReservationRepository.get_reservation_by_id(reservation.id)
    assert stored.selected_seats == list(range(1, 13))
    assert stored.is_private_tour
    assert stored.total_price == 18000
    assert stored.total_people == 12


def test_conflict_returns_to_seats_without_writing(boat):
    flow = flow_at_contact(boat, [1, 2])
    _store([2], 'RV-20990601-1111')

    with pytest.raises(CapacityConflictError) as error:
        submit_reservation(flow, [], user_id=42, now=NOW)

    assert error.value.conflicting_seats == [2]
    assert flow.step == SEATS
    assert flow.draft.seats == [1]
    assert 2 in flow.draft.occupied
    assert len(ReservationRepository.get_active_by_slot(boat.id, FUTURE, '0')) == 1


def test_exclusive_conflict_returns_to_date(boat):
    flow = exclusive_flow_at_contact(boat, resolve_tour_type('private', []))
    _store([1], 'RV-20990601-1111', slot_id='1')

    with pytest.raises(CapacityConflictError):
        submit_reservation(flow, [], user_id=42, now=NOW)

    assert flow.step == DATE
    assert len(ReservationRepository.get_active_by_date(boat.id, FUTURE)) == 1

    fresh = ReservationRepository.get_active_by_date(boat.id, FUTURE)
    with pytest.raises(ValidationError):
        flow.select_date(FUTURE, fresh)
    flow.select_date(FUTURE_NEXT, ReservationRepository.get_active_by_date(boat.id, FUTURE_NEXT))
    flow.select_slot('0', [])
    flow.set_contact('Mehmet', 'Demir', '0532 765 43 21')

    assert submit_reservation(flow, [], user_id=42, now=NOW).date == FUTURE_NEXT


def test_blacklisted_phone_is_rejected(boat):
    BlacklistRepository.add('5551234567')
    flow = flow_at_contact(boat, [1])

    with pytest.raises(ValidationError):
        submit_reservation(flow, [], user_id=42, now=NOW)

    assert ReservationRepository.get_active_by_date(boat.id, FUTURE) == []


def test_deactivated_custom_tour_cannot_be_submitted(boat):
    tour = resolve_tour_type('sunset', [make_custom_tour('sunset')])
    flow = exclusive_flow_at_contact(boat, tour)

    with pytest.raises(ConfigurationAbsentError):
        submit_reservation(flow, [make_custom_tour('sunset', is_active=False)], user_id=42, now=NOW)


def test_incomplete_draft_cannot_be_submitted(boat):
    flow = flow_at_contact(boat, [1])
    flow.go_back(SEATS)

    with pytest.raises(ValidationError):
        submit_reservation(flow, [], user_id=42, now=NOW)


def test_change_status(db):
    reservation_id = _store([1], 'RV-20990601-1111')

    assert change_status(reservation_id, 'confirmed').status == 'confirmed'
    with pytest.raises(ValidationError):
        change_status(reservation_id, 'archived')
    with pytest.raises(ValidationError):
        change_status(999, 'confirmed')


def test_reactivation_rejected_when_seats_were_rebooked(db):
    cancelled = _store([1, 2], 'RV-20990601-1111', status='cancelled')
    _store([2, 3], 'RV-20990601-2222')

    with pytest.raises(CapacityConflictError) as error:
        change_status(cancelled, 'confirmed')

    assert error.value.conflicting_seats == [2]
    assert ReservationRepository.get_reservation_by_id(cancelled).status == 'cancelled'


def test_reactivation_of_exclusive_needs_free_day(db):
    cancelled = _store(range(1, 13), 'RV-20990601-1111', status='cancelled', tour_type='private')
    _store([5], 'RV-20990601-2222', slot_id='1')

    with pytest.raises(CapacityConflictError):
        change_status(cancelled, 'pending')


def test_reactivation_with_free_seats(db):
    cancelled = _store([1, 2], 'RV-20990601-1111', status='cancelled')
    _store([3], 'RV-20990601-2222')

    assert change_status(cancelled, 'confirmed').status == 'confirmed'


def test_bulk_update_reports_n_of_m(db):
    first = _store([1], 'RV-20990601-1111')
    second = _store([2], 'RV-20990601-2222')

    assert bulk_update_status([first, second, 999], 'confirmed') == (2, 3)
    assert ReservationRepository.get_reservation_by_id(second).status == 'confirmed'


def test_update_seats_accepts_codes(db):
    reservation_id = _store([1, 2], 'RV-20990601-1111')

    updated = update_seats(reservation_id, ['T1_IS1', 'T1_SA1'])

    assert updated.selected_seats == [1, 7]


def test_update_seats_rejects_taken_or_invalid_seats(db):
    reservation_id = _store([1], 'RV-20990601-1111')
    _store([5], 'RV-20990601-2222')

    with pytest.raises(CapacityConflictError):
        update_seats(reservation_id, ['5'])
    with pytest.raises(ValidationError):
        update_seats(reservation_id, ['13'])
    with pytest.raises(ValidationError):
        update_seats(reservation_id, ['2', '2'])
    with pytest.raises(ValidationError):
        update_seats(reservation_id, [])

    assert ReservationRepository.get_reservation_by_id(reservation_id).selected_seats == [1]


def test_update_phone_and_people(db):
    reservation_id = _store([1], 'RV-20990601-1111')

    assert update_phone(reservation_id, '0532 111 22 33').user_phone == '0532 111 22 33'
    assert update_people(reservation_id, 3).total_people == 3
    with pytest.raises(ValidationError):
        update_phone(reservation_id, '123')
    with pytest.raises(ValidationError):
        update_people(reservation_id, 0)


def test_delete_reservation(db):
    reservation_id = _store([1], 'RV-20990601-1111')

    assert delete_reservation(reservation_id).reservation_number == 'RV-20990601-1111'
    assert ReservationRepository.get_reservation_by_id(reservation_id) is None
    with pytest.raises(ValidationError):
        delete_reservation(reservation_id)


def test_complete_past_reservations(db):
    _store([1], 'RV-20990601-1111', status='confirmed')

    assert complete_past_reservations(today=date(2099, 6, 2)) == 1
    assert complete_past_reservations(today=date(2099, 6, 2)) == 0
