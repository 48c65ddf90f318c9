import pytest

from database.models import TimeSlot
from factories import (
    FUTURE, FUTURE_NEXT, flow_at_contact, flow_at_seats, make_boat, make_custom_tour,
    make_reservation, make_schedule
)
from states.booking_flow import (
    CONTACT, DATE, PARTY_SIZE, SEATS, SLOT, SUBMITTED, TOUR_TYPE, BookingDraft, BookingFlow
)
from utils.errors import ConfigurationAbsentError, ConfirmationRequiredError, ValidationError
from utils.tour_policy import BAIT_CONFIRMATION, OVERNIGHT_CONFIRMATION, resolve_tour_type


@pytest.fixture
def boat():
    return make_boat()


def test_new_flow_starts_at_tour_type(boat):
    flow = BookingFlow.start(boat)

    assert flow.step == TOUR_TYPE
    assert flow.draft.tour_type is None


def test_draft_of_other_boat_is_rejected(boat):
    with pytest.raises(ValueError):
        BookingFlow(BookingDraft(boat_id=99), boat)


def test_normal_tour_goes_through_party_size(boat):
    flow = BookingFlow.start(boat)
    flow.choose_tour_type(resolve_tour_type('normal', []))
    assert flow.step == PARTY_SIZE

    flow.set_party_size(2, 1, 1)

    assert flow.step == DATE
    assert flow.required_seats == 3
    assert flow.party_size == 4


def test_exclusive_tour_skips_party_size(boat):
    flow = BookingFlow.start(boat)
    flow.choose_tour_type(resolve_tour_type('private', []))

    assert flow.step == DATE
    assert flow.draft.adults == 12
    assert flow.required_seats == 12


def test_invalid_party_size_keeps_step(boat):
    flow = BookingFlow.start(boat)
    flow.choose_tour_type(resolve_tour_type('normal', []))

    with pytest.raises(ValidationError):
        flow.set_party_size(0, 0, 2)
    with pytest.raises(ValidationError):
        flow.set_party_size(10, 3)

    assert flow.step == PARTY_SIZE


def test_steps_cannot_be_skipped(boat):
    flow = BookingFlow.start(boat)

    with pytest.raises(ValidationError):
        flow.select_date(FUTURE, [])


def test_normal_slot_leads_to_seat_selection(boat):
    flow = flow_at_seats(boat)

    assert flow.step == SEATS
    assert flow.draft.slot_id == '0'
    assert flow.draft.slot_display == '07:00 - 13:00'
    assert flow.draft.seats == []


def test_exclusive_slot_selects_every_seat(boat):
    flow = BookingFlow.start(boat)
    flow.choose_tour_type(resolve_tour_type('private', []))
    flow.select_date(FUTURE, [])
    flow.select_slot('0', [])

    assert flow.step == CONTACT
    assert flow.draft.seats == list(range(1, 13))


def test_custom_tour_takes_its_own_capacity(boat):
    flow = BookingFlow.start(boat)
    tour = resolve_tour_type('sunset', [make_custom_tour('sunset', capacity=8)])
    flow.choose_tour_type(tour)
    flow.select_date(FUTURE, [])
    flow.select_slot('0', [])

    assert flow.party_size == 8
    assert flow.draft.seats == list(range(1, 13))


def test_exclusive_tour_cannot_pick_a_day_with_bookings(boat):
    flow = BookingFlow.start(boat)
    flow.choose_tour_type(resolve_tour_type('private', []))

    with pytest.raises(ValidationError):
        flow.select_date(FUTURE, [make_reservation([1, 2, 3])])
    assert flow.step == DATE
    assert flow.draft.date is None


def test_private_tour_rejected_on_occupied_slot(boat):
    flow = BookingFlow.start(boat)
    flow.choose_tour_type(resolve_tour_type('private', []))
    flow.select_date(FUTURE, [])

    with pytest.raises(ValidationError):
        flow.select_slot('0', [make_reservation([1, 2, 3])])
    assert flow.step == SLOT


def test_private_tour_rejected_when_another_slot_of_the_day_is_booked(boat):
    flow = BookingFlow.start(boat)
    flow.choose_tour_type(resolve_tour_type('private', []))
    flow.select_date(FUTURE, [])
    reservations = [make_reservation([1], slot_id='1')]

    with pytest.raises(ValidationError):
        flow.select_slot('0', reservations)
    assert flow.step == SLOT
    assert flow.selectable_slots(reservations) == []


def test_normal_tour_needs_enough_free_seats_in_slot(boat):
    reservations = [make_reservation(range(1, 9))]
    flow = BookingFlow.start(boat)
    flow.choose_tour_type(resolve_tour_type('normal', []))
    flow.set_party_size(5)
    flow.select_date(FUTURE, reservations)

    with pytest.raises(ValidationError):
        flow.select_slot('0', reservations)
    assert flow.step == SLOT
    assert flow.selectable_slots(reservations) == ['1']

    flow.go_back(PARTY_SIZE)
    flow.set_party_size(4)
    flow.select_date(FUTURE, reservations)
    flow.select_slot('0', reservations)
    for seat in (9, 10, 11, 12):
        flow.toggle_seat(seat)
    flow.confirm_seats()
    assert flow.step == CONTACT


def test_slot_occupancy_ignores_other_slots_of_the_day(boat):
    reservations = [make_reservation([1, 2], slot_id='1'), make_reservation([3])]
    flow = flow_at_seats(boat, reservations=reservations)

    assert flow.draft.occupied == [3]


def test_date_without_slots_is_configuration_error():
    boat = make_boat(scheduled=[make_schedule(FUTURE, [])])
    flow = BookingFlow.start(boat)
    flow.choose_tour_type(resolve_tour_type('normal', []))
    flow.set_party_size(1)

    with pytest.raises(ConfigurationAbsentError):
        flow.select_date(FUTURE, [])


def test_unknown_slot_is_rejected(boat):
    flow = BookingFlow.start(boat)
    flow.choose_tour_type(resolve_tour_type('normal', []))
    flow.set_party_size(1)
    flow.select_date(FUTURE, [])

    with pytest.raises(ValidationError):
        flow.select_slot('5', [])


def test_slot_confirmations_are_requested_in_order():
    boat = make_boat(slots=[TimeSlot('02:00', '06:00', bait_warning=True)])
    flow = BookingFlow.start(boat)
    flow.choose_tour_type(resolve_tour_type('normal', []))
    flow.set_party_size(1)
    flow.select_date(FUTURE, [])

    with pytest.raises(ConfirmationRequiredError) as error:
        flow.select_slot('0', [])
    assert error.value.kinds == [BAIT_CONFIRMATION, OVERNIGHT_CONFIRMATION]

    with pytest.raises(ConfirmationRequiredError) as error:
        flow.select_slot('0', [], confirmed=[BAIT_CONFIRMATION])
    assert error.value.kinds == [OVERNIGHT_CONFIRMATION]
    assert flow.step == SLOT

    flow.select_slot('0', [], confirmed=[BAIT_CONFIRMATION, OVERNIGHT_CONFIRMATION])
    assert flow.step == SEATS


def test_occupied_seat_cannot_be_selected(boat):
    flow = flow_at_seats(boat, reservations=[make_reservation([5])])

    assert flow.toggle_seat(5) is False
    assert 5 not in flow.draft.seats


def test_cancelled_seat_can_be_selected(boat):
    flow = flow_at_seats(boat, reservations=[make_reservation([5], status='cancelled')])

    assert flow.toggle_seat(5) is True
    assert flow.draft.seats == [5]


def test_seat_selection_limits(boat):
    flow = flow_at_seats(boat, adults=2)

    assert flow.toggle_seat(13) is False
    assert flow.toggle_seat(3)
    assert flow.toggle_seat(1)
    assert flow.toggle_seat(2) is False
    assert flow.draft.seats == [1, 3]

    assert flow.toggle_seat(3)
    assert flow.draft.seats == [1]


def test_confirm_seats_requires_exact_count(boat):
    flow = flow_at_seats(boat, adults=2)
    flow.toggle_seat(1)

    with pytest.raises(ValidationError):
        flow.confirm_seats()
    assert flow.step == SEATS

    flow.toggle_seat(2)
    flow.confirm_seats()
    assert flow.step == CONTACT


def test_contact_requires_name_surname_and_phone(boat):
    flow = flow_at_seats(boat, adults=1)
    flow.toggle_seat(1)
    flow.confirm_seats()

    with pytest.raises(ValidationError):
        flow.set_contact('Ayşe', '', '05551234567')
    with pytest.raises(ValidationError):
        flow.set_contact('Ayşe', 'Yılmaz', '12345')
    with pytest.raises(ValidationError):
        flow.ensure_ready()

    flow.set_contact('Ayşe', 'Yılmaz', '0555 123 45 67')
    flow.ensure_ready()
    assert flow.draft.email == ''


def test_changing_date_after_backtrack_clears_slot_and_seats(boat):
    flow = flow_at_seats(boat, adults=2)
    flow.toggle_seat(1)
    flow.toggle_seat(2)

    flow.go_back(DATE)
    flow.select_date(FUTURE_NEXT, [])

    assert flow.step == SLOT
    assert flow.draft.date == FUTURE_NEXT
    assert flow.draft.slot_id is None
    assert flow.draft.seats == []


def test_go_back_to_tour_type_clears_everything(boat):
    flow = flow_at_contact(boat, [1, 2])

    flow.go_back(TOUR_TYPE)

    assert flow.step == TOUR_TYPE
    assert flow.draft.adults == 0
    assert flow.draft.date is None
    assert flow.draft.seats == []
    assert flow.draft.phone == ''


def test_go_back_only_moves_backwards(boat):
    flow = flow_at_seats(boat)

    with pytest.raises(ValidationError):
        flow.go_back(CONTACT)


def test_previous_step(boat):
    assert flow_at_contact(boat, [1]).previous_step() == SEATS

    flow = BookingFlow.start(boat)
    flow.choose_tour_type(resolve_tour_type('private', []))
    assert flow.previous_step() == TOUR_TYPE
    flow.select_date(FUTURE, [])
    flow.select_slot('0', [])
    assert flow.previous_step() == SLOT


def test_every_transition_bumps_revision(boat):
    flow = BookingFlow.start(boat)
    revisions = [flow.draft.revision]

    flow.choose_tour_type(resolve_tour_type('normal', []))
    revisions.append(flow.draft.revision)
    flow.set_party_size(1)
    revisions.append(flow.draft.revision)
    flow.select_date(FUTURE, [])
    revisions.append(flow.draft.revision)

    assert revisions == sorted(set(revisions))


def test_stale_occupancy_is_discarded(boat):
    flow = flow_at_seats(boat, adults=2)
    flow.toggle_seat(1)
    old_revision = flow.draft.revision

    flow.go_back(SLOT)
    flow.select_slot('1', [])
    applied = flow.apply_occupancy(FUTURE, '0', [make_reservation([2, 3])], revision=old_revision)

    assert applied is False
    assert flow.draft.occupied == []


def test_response_for_other_date_is_discarded(boat):
    flow = flow_at_seats(boat)

    assert flow.apply_occupancy(FUTURE_NEXT, '0', [make_reservation([1], date=FUTURE_NEXT)]) is False
    assert flow.draft.occupied == []


def test_fresh_occupancy_drops_taken_seats(boat):
    flow = flow_at_seats(boat, adults=2)
    flow.toggle_seat(1)
    flow.toggle_seat(2)

    applied = flow.apply_occupancy(
        FUTURE, '0', [make_reservation([2, 3])], revision=flow.draft.revision
    )

    assert applied
    assert flow.draft.occupied == [2, 3]
    assert flow.draft.seats == [1]


def test_conflict_returns_normal_tour_to_seats(boat):
    flow = flow_at_contact(boat, [1, 2])

    flow.handle_conflict([make_reservation([2])])

    assert flow.step == SEATS
    assert flow.draft.seats == [1]
    assert flow.draft.occupied == [2]
    assert flow.draft.phone == ''


def test_conflict_returns_exclusive_tour_to_date(boat):
    flow = BookingFlow.start(boat)
    flow.choose_tour_type(resolve_tour_type('private', []))
    flow.select_date(FUTURE, [])
    flow.select_slot('0', [])

    flow.handle_conflict([make_reservation([1], slot_id='1')])

    assert flow.step == DATE
    assert flow.draft.seats == []
    assert flow.draft.slot_id is None


def test_draft_survives_serialization(boat):
    flow = flow_at_contact(boat, [4, 5])

    data = flow.draft.to_dict()
    data['unknown_key'] = 'ignored'
    restored = BookingFlow(BookingDraft.from_dict(data), boat)

    assert restored.draft == flow.draft
    assert restored.step == CONTACT


def test_submitted_flow_can_be_reset(boat):
    flow = flow_at_contact(boat, [1])
    flow.mark_submitted(make_reservation([1], reservation_id=7, number='RV-20990601-1234'))
    assert flow.step == SUBMITTED
    assert flow.summary()['reservation_number'] == 'RV-20990601-1234'

    with pytest.raises(ValidationError):
        flow.choose_tour_type(resolve_tour_type('normal', []))

    revision = flow.draft.revision
    flow.reset()

    assert flow.step == TOUR_TYPE
    assert flow.draft.seats == []
    assert flow.draft.revision == revision + 1
