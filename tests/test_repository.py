from datetime import datetime

import pytest

from database.database import get_db
from database.repository import (
    BlacklistRepository, BoatRepository, CustomTourRepository, ReservationRepository, phone_variants
)
from factories import FUTURE, FUTURE_NEXT, make_reservation
from utils.errors import CapacityConflictError


def _create(seats, number, **kwargs):
    return ReservationRepository.create_reservation(make_reservation(seats, number=number, **kwargs))


def test_default_boats_are_seeded(db):
    boats = BoatRepository.get_active_boats()

    assert [boat.code for boat in boats] == ['T1', 'T2']
    assert boats[1].seat_layout == 'double'
    slots = boats[0].time_slots
    assert len(slots) == 3
    assert slots[1].bait_warning
    assert (slots[2].start, slots[2].end) == ('02:00', '06:00')


def test_create_and_read_reservation(db):
    reservation_id = _create([3, 1, 2], 'RV-20990601-1111')

    stored = ReservationRepository.get_reservation_by_id(reservation_id)

    assert stored.selected_seats == [1, 2, 3]
    assert stored.status == 'pending'
    assert stored.payment_status == 'waiting'
    assert stored.created_at == datetime(2099, 1, 1, 12, 0)
    assert stored.updated_at is None


def test_active_reads_exclude_cancelled(db):
    _create([1], 'RV-20990601-1111')
    _create([2], 'RV-20990601-2222', status='cancelled')
    _create([3], 'RV-20990601-3333', slot_id='1')
    _create([4], 'RV-20990601-4444', date=FUTURE_NEXT, status='confirmed')

    assert [r.selected_seats for r in ReservationRepository.get_active_by_slot(1, FUTURE, '0')] == [[1]]
    assert len(ReservationRepository.get_active_by_date(1, FUTURE)) == 2
    assert len(ReservationRepository.get_by_date_range(1, FUTURE, FUTURE_NEXT)) == 3
    assert len(ReservationRepository.get_by_date(FUTURE)) == 3


def test_lookup_by_number(db):
    _create([1], 'RV-20990601-1111')

    assert ReservationRepository.get_by_number(' rv-20990601-1111 ').selected_seats == [1]
    assert ReservationRepository.get_by_number('RV-00000000-0000') is None


def test_user_reservations_are_upcoming_and_active(db):
    _create([1], 'RV-20990601-1111')
    _create([2], 'RV-20990601-2222', status='cancelled')
    _create([3], 'RV-20990601-3333', date='2099-05-01')

    reservations = ReservationRepository.get_user_reservations(42, '2099-05-15')

    assert [r.selected_seats for r in reservations] == [[1]]


def test_validate_sees_fresh_rows_and_can_abort_write(db):
    _create([1, 2], 'RV-20990601-1111')
    seen = []

    def validate(fresh):
        seen.extend(fresh)
        raise CapacityConflictError("занято", [2])

    with pytest.raises(CapacityConflictError):
        ReservationRepository.create_reservation(
            make_reservation([2, 3], number='RV-20990601-2222'), validate=validate
        )

    assert [r.selected_seats for r in seen] == [[1, 2]]
    assert len(ReservationRepository.get_active_by_date(1, FUTURE)) == 1


def test_validate_passing_writes(db):
    reservation_id = ReservationRepository.create_reservation(
        make_reservation([5], number='RV-20990601-1111'), validate=lambda fresh: None
    )

    assert ReservationRepository.get_reservation_by_id(reservation_id) is not None


def test_update_status_sets_timestamps(db):
    reservation_id = _create([1], 'RV-20990601-1111')

    assert ReservationRepository.update_status(reservation_id, 'completed')

    stored = ReservationRepository.get_reservation_by_id(reservation_id)
    assert stored.status == 'completed'
    assert stored.completed_at is not None
    assert stored.updated_at is not None


def test_update_status_of_missing_reservation(db):
    assert not ReservationRepository.update_status(999, 'confirmed')


def test_update_fields(db):
    reservation_id = _create([1], 'RV-20990601-1111')

    ReservationRepository.update_fields(reservation_id, selected_seats=[4, 3], user_phone='05320000000')
    ReservationRepository.mark_payment_received(reservation_id)

    stored = ReservationRepository.get_reservation_by_id(reservation_id)
    assert stored.selected_seats == [3, 4]
    assert stored.user_phone == '05320000000'
    assert stored.payment_status == 'received'


def test_update_fields_rejects_unknown_columns(db):
    reservation_id = _create([1], 'RV-20990601-1111')

    with pytest.raises(ValueError):
        ReservationRepository.update_fields(reservation_id, boat_id=2)


def test_delete_is_permanent(db):
    reservation_id = _create([1], 'RV-20990601-1111')

    assert ReservationRepository.delete_reservation(reservation_id)
    assert ReservationRepository.get_reservation_by_id(reservation_id) is None
    assert not ReservationRepository.delete_reservation(reservation_id)


def test_complete_past_only_touches_confirmed(db):
    past_confirmed = _create([1], 'RV-20990601-1111', date='2099-05-01', status='confirmed')
    past_pending = _create([2], 'RV-20990601-2222', date='2099-05-01')
    future_confirmed = _create([3], 'RV-20990601-3333', status='confirmed')

    assert ReservationRepository.complete_past('2099-05-15') == 1

    assert ReservationRepository.get_reservation_by_id(past_confirmed).status == 'completed'
    assert ReservationRepository.get_reservation_by_id(past_pending).status == 'pending'
    assert ReservationRepository.get_reservation_by_id(future_confirmed).status == 'confirmed'


def test_custom_tours(db):
    with get_db() as conn:
        conn.executemany(
            "INSERT INTO custom_tours (id, name, price, capacity, is_active) VALUES (?, ?, ?, ?, ?)",
            [('sunset', 'Закат', 9000, 8, 1), ('moon', 'Луна', 7000, 6, 0)]
        )

    assert [tour.id for tour in CustomTourRepository.get_active_tours()] == ['sunset']
    assert CustomTourRepository.get_tour_by_id('moon').is_active is False
    assert CustomTourRepository.get_tour_by_id('missing') is None


def test_phone_variants():
    assert phone_variants('0555 123 45 67') == ['05551234567', '5551234567']
    assert phone_variants('555-123-45-67') == ['05551234567', '5551234567']
    assert phone_variants('12345') == []


def test_blacklist_matches_with_and_without_leading_zero(db):
    assert BlacklistRepository.add('0555 123 45 67', reason='не пришёл')

    assert BlacklistRepository.is_blacklisted('5551234567')
    assert BlacklistRepository.is_blacklisted('(0555) 123-45-67')
    assert BlacklistRepository.get_entry('05551234567').reason == 'не пришёл'
    assert not BlacklistRepository.is_blacklisted('05559999999')
    assert not BlacklistRepository.add('5551234567')


def test_short_numbers_are_never_blacklisted(db):
    assert not BlacklistRepository.add('12345')
    assert not BlacklistRepository.is_blacklisted('12345')


def test_blacklist_remove(db):
    BlacklistRepository.add('05551234567')

    assert BlacklistRepository.remove('555 123 45 67')
    assert not BlacklistRepository.is_blacklisted('05551234567')
    assert not BlacklistRepository.remove('05551234567')
