from datetime import timedelta
from decimal import Decimal

import pytest
from sqlmodel import Session, select

from barbershop.errors import BusinessRuleError, ConflictError, NotFoundError
from barbershop.models import Appointment, AppointmentStatus, NotificationStatus, NotificationType, TimeBlock
from barbershop.notifications import NotificationService
from barbershop.schemas import AdminAppointmentCreate, AppointmentUpdate
from barbershop.scheduling.lifecycle import AppointmentLifecycle
from barbershop.store import CalendarStore

from conftest import NOW, SUNDAY, TUESDAY, FailingSender, at, booking_request

ADMIN = "admin@example.com"


def all_appointments(session):
    return session.exec(select(Appointment)).all()


# public booking

def test_booking_derives_end_from_service(lifecycle, seed):
    appointment = lifecycle.create_public(booking_request(seed["beard"], at(TUESDAY, 10), seed["bruno"]))

    assert appointment.id is not None
    assert appointment.end_time == at(TUESDAY, 10) + timedelta(minutes=20 + 10)
    assert appointment.status == AppointmentStatus.CONFIRMED
    assert appointment.price_at_booking == Decimal("15.00")
    assert appointment.cancellation_token
    assert not appointment.created_by_admin


def test_overlapping_booking_is_a_conflict(lifecycle, session, seed, make_appointment):
    make_appointment(seed["bruno"], seed["haircut"], at(TUESDAY, 10))

    with pytest.raises(ConflictError):
        lifecycle.create_public(booking_request(seed["haircut"], at(TUESDAY, 10, 15), seed["bruno"]))
    assert len(all_appointments(session)) == 1

    booked = lifecycle.create_public(booking_request(seed["haircut"], at(TUESDAY, 10, 30), seed["bruno"]))
    assert booked.start_time == at(TUESDAY, 10, 30)
    assert len(all_appointments(session)) == 2


def test_booking_over_a_block_is_a_conflict(lifecycle, session, seed):
    session.add(TimeBlock(
        barber_id=seed["bruno"].id, start_time=at(TUESDAY, 12), end_time=at(TUESDAY, 13), reason="Lunch",
    ))
    session.commit()
    with pytest.raises(ConflictError):
        lifecycle.create_public(booking_request(seed["haircut"], at(TUESDAY, 12, 30), seed["bruno"]))


def test_booking_rules_are_enforced(lifecycle, seed):
    with pytest.raises(BusinessRuleError) as exc:
        lifecycle.create_public(booking_request(seed["haircut"], NOW + timedelta(minutes=30), seed["bruno"]))
    assert exc.value.code == "MIN_ADVANCE_TIME"

    with pytest.raises(BusinessRuleError) as exc:
        lifecycle.create_public(booking_request(seed["haircut"], at(SUNDAY, 10), seed["bruno"]))
    assert exc.value.code == "NOT_WORKING_DAY"


def test_inactive_service_cannot_be_booked(lifecycle, seed):
    with pytest.raises(BusinessRuleError) as exc:
        lifecycle.create_public(booking_request(seed["retired"], at(TUESDAY, 10), seed["bruno"]))
    assert exc.value.code == "SERVICE_INACTIVE"


def test_unknown_service_or_barber(lifecycle, seed):
    request = booking_request(seed["haircut"], at(TUESDAY, 10), seed["bruno"], service_id=9999)
    with pytest.raises(NotFoundError):
        lifecycle.create_public(request)

    request = booking_request(seed["haircut"], at(TUESDAY, 10), barber_id=9999)
    with pytest.raises(NotFoundError):
        lifecycle.create_public(request)


def test_find_by_token_returns_the_booking(lifecycle, seed):
    created = lifecycle.create_public(booking_request(seed["haircut"], at(TUESDAY, 10), seed["bruno"]))

    found = lifecycle.find_by_token(created.cancellation_token)
    assert found.id == created.id

    view = lifecycle.public_view(found)
    assert view.id == created.id
    assert view.barber_name == "Bruno"
    assert view.service_name == "Haircut"
    assert view.start_time == created.start_time
    assert view.end_time == created.end_time
    assert view.cancellation_token == created.cancellation_token
    assert view.can_cancel and view.can_reschedule


def test_unknown_token(lifecycle, seed):
    with pytest.raises(NotFoundError):
        lifecycle.find_by_token("no-such-token")


def test_price_is_kept_when_service_changes(lifecycle, session, seed):
    appointment = lifecycle.create_public(booking_request(seed["haircut"], at(TUESDAY, 10), seed["bruno"]))
    haircut = seed["haircut"]
    haircut.price = Decimal("40.00")
    session.add(haircut)
    session.commit()

    session.refresh(appointment)
    assert appointment.price_at_booking == Decimal("25.00")


# auto-assignment

def test_first_free_barber_is_assigned(lifecycle, seed):
    appointment = lifecycle.create_public(booking_request(seed["haircut"], at(TUESDAY, 10)))
    assert appointment.barber_id == seed["bruno"].id


def test_busy_barber_is_skipped(lifecycle, seed, make_appointment):
    make_appointment(seed["bruno"], seed["haircut"], at(TUESDAY, 10))
    appointment = lifecycle.create_public(booking_request(seed["haircut"], at(TUESDAY, 10)))
    assert appointment.barber_id == seed["carla"].id


def test_no_free_barber(lifecycle, seed, make_appointment):
    make_appointment(seed["bruno"], seed["haircut"], at(TUESDAY, 10))
    make_appointment(seed["carla"], seed["haircut"], at(TUESDAY, 10))
    with pytest.raises(BusinessRuleError) as exc:
        lifecycle.create_public(booking_request(seed["haircut"], at(TUESDAY, 10)))
    assert exc.value.code == "NO_AVAILABILITY"


def test_no_barber_works_on_sunday(lifecycle, seed):
    with pytest.raises(BusinessRuleError) as exc:
        lifecycle.create_public(booking_request(seed["haircut"], at(SUNDAY, 10)))
    assert exc.value.code == "NO_AVAILABILITY"


def test_no_active_barbers(lifecycle, session, seed):
    for barber in (seed["bruno"], seed["carla"]):
        barber.active = False
        session.add(barber)
    session.commit()
    with pytest.raises(BusinessRuleError) as exc:
        lifecycle.create_public(booking_request(seed["haircut"], at(TUESDAY, 10)))
    assert exc.value.code == "NO_BARBER"


def test_eligibility_is_a_plain_check(lifecycle, seed, make_appointment):
    make_appointment(seed["bruno"], seed["haircut"], at(TUESDAY, 10))
    assigner = lifecycle.assigner
    assert not assigner.is_eligible(seed["bruno"].id, at(TUESDAY, 10), seed["haircut"])
    assert not assigner.is_eligible(seed["carla"].id, at(SUNDAY, 10), seed["haircut"])
    assert assigner.is_eligible(seed["carla"].id, at(TUESDAY, 10), seed["haircut"])


# admin booking

def test_admin_booking_skips_timing_rules(lifecycle, seed):
    request = AdminAppointmentCreate(
        service_id=seed["haircut"].id, barber_id=seed["bruno"].id, start_time=at(SUNDAY, 10),
        client_name="Walk-in", client_phone="555",
    )
    appointment = lifecycle.create_admin(request, ADMIN)
    assert appointment.created_by_admin
    assert appointment.end_time == at(SUNDAY, 10, 30)

    audits = lifecycle.store.audits_for(appointment.id)
    assert [a.performed_by for a in audits] == [ADMIN]


def test_admin_booking_checks_conflicts(lifecycle, seed, make_appointment):
    make_appointment(seed["bruno"], seed["haircut"], at(TUESDAY, 10))
    request = AdminAppointmentCreate(
        service_id=seed["haircut"].id, barber_id=seed["bruno"].id, start_time=at(TUESDAY, 10),
        client_name="Walk-in", client_phone="555",
    )
    with pytest.raises(ConflictError):
        lifecycle.create_admin(request, ADMIN)


def test_admin_booking_with_status(lifecycle, seed):
    request = AdminAppointmentCreate(
        service_id=seed["haircut"].id, barber_id=seed["bruno"].id, start_time=at(TUESDAY, 10),
        client_name="Walk-in", client_phone="555", status=AppointmentStatus.SCHEDULED,
    )
    assert lifecycle.create_admin(request, ADMIN).status == AppointmentStatus.SCHEDULED


# client cancellation

def test_cancel_inside_deadline_is_rejected(lifecycle, seed, make_appointment):
    appointment = make_appointment(seed["bruno"], seed["haircut"], NOW + timedelta(hours=3, minutes=50))
    with pytest.raises(BusinessRuleError) as exc:
        lifecycle.cancel_by_client(appointment.cancellation_token)
    assert exc.value.code == "CANCELLATION_DEADLINE"
    assert lifecycle.find_by_id(appointment.id).status == AppointmentStatus.CONFIRMED


def test_cancel_before_deadline(lifecycle, seed, make_appointment):
    appointment = make_appointment(seed["bruno"], seed["haircut"], NOW + timedelta(hours=4, minutes=10))
    cancelled = lifecycle.cancel_by_client(appointment.cancellation_token)
    assert cancelled.status == AppointmentStatus.CANCELLED_BY_CLIENT


def test_cancelling_twice_is_always_rejected(lifecycle, seed, make_appointment):
    appointment = make_appointment(seed["bruno"], seed["haircut"], at(TUESDAY, 10))
    lifecycle.cancel_by_client(appointment.cancellation_token)

    for _ in range(3):
        with pytest.raises(BusinessRuleError) as exc:
            lifecycle.cancel_by_client(appointment.cancellation_token)
        assert exc.value.code == "ALREADY_CANCELLED"
    assert len(lifecycle.store.audits_for(appointment.id)) == 1


def test_cancelled_time_can_be_booked_again(lifecycle, seed, make_appointment):
    appointment = make_appointment(seed["bruno"], seed["haircut"], at(TUESDAY, 10))
    lifecycle.cancel_by_client(appointment.cancellation_token)
    rebooked = lifecycle.create_public(booking_request(seed["haircut"], at(TUESDAY, 10), seed["bruno"]))
    assert rebooked.barber_id == seed["bruno"].id


def test_public_view_inside_deadline(lifecycle, seed, make_appointment):
    appointment = make_appointment(seed["bruno"], seed["haircut"], NOW + timedelta(hours=3))
    view = lifecycle.public_view(appointment)
    assert not view.can_cancel
    assert not view.can_reschedule


# admin changes

def test_admin_cancel_has_no_deadline(lifecycle, seed, make_appointment):
    appointment = make_appointment(seed["bruno"], seed["haircut"], NOW + timedelta(hours=1))
    cancelled = lifecycle.cancel_by_admin(appointment.id, ADMIN)
    assert cancelled.status == AppointmentStatus.CANCELLED_BY_ADMIN

    with pytest.raises(BusinessRuleError) as exc:
        lifecycle.cancel_by_admin(appointment.id, ADMIN)
    assert exc.value.code == "ALREADY_CANCELLED"


def test_mark_completed_and_no_show(lifecycle, seed, make_appointment):
    first = make_appointment(seed["bruno"], seed["haircut"], at(TUESDAY, 10))
    second = make_appointment(seed["bruno"], seed["haircut"], at(TUESDAY, 11))

    assert lifecycle.mark_completed(first.id, ADMIN).status == AppointmentStatus.COMPLETED
    assert lifecycle.mark_no_show(second.id, ADMIN).status == AppointmentStatus.NO_SHOW
    assert lifecycle.store.audits_for(first.id)[-1].action == "STATUS_CHANGED_TO_COMPLETED"


@pytest.mark.parametrize("status", [
    AppointmentStatus.CANCELLED_BY_CLIENT,
    AppointmentStatus.COMPLETED,
])
def test_terminal_appointment_cannot_change_status(lifecycle, seed, make_appointment, status):
    appointment = make_appointment(seed["bruno"], seed["haircut"], at(TUESDAY, 10), status=status)
    with pytest.raises(BusinessRuleError) as exc:
        lifecycle.mark_no_show(appointment.id, ADMIN)
    assert exc.value.code == "INVALID_STATUS"
    assert lifecycle.store.audits_for(appointment.id) == []


def test_update_moves_appointment(lifecycle, seed, make_appointment):
    appointment = make_appointment(seed["bruno"], seed["beard"], at(TUESDAY, 10))
    updated = lifecycle.update(
        appointment.id, AppointmentUpdate(start_time=at(TUESDAY, 14), notes="Moved by phone"), ADMIN
    )

    assert updated.start_time == at(TUESDAY, 14)
    assert updated.end_time == at(TUESDAY, 14, 30)
    assert updated.notes == "Moved by phone"

    audit = lifecycle.store.audits_for(appointment.id)[-1]
    assert audit.action == "UPDATED"
    assert audit.before_state["start_time"] == at(TUESDAY, 10).isoformat()
    assert audit.after_state["start_time"] == at(TUESDAY, 14).isoformat()


def test_update_into_conflict_is_rejected(lifecycle, seed, make_appointment):
    make_appointment(seed["carla"], seed["haircut"], at(TUESDAY, 14))
    appointment = make_appointment(seed["bruno"], seed["haircut"], at(TUESDAY, 10))

    with pytest.raises(ConflictError):
        lifecycle.update(appointment.id, AppointmentUpdate(barber_id=seed["carla"].id, start_time=at(TUESDAY, 14)), ADMIN)

    unchanged = lifecycle.find_by_id(appointment.id)
    assert unchanged.barber_id == seed["bruno"].id
    assert unchanged.start_time == at(TUESDAY, 10)
    assert lifecycle.store.audits_for(appointment.id) == []


# reschedule

def test_reschedule_moves_in_place(lifecycle, seed):
    created = lifecycle.create_public(booking_request(seed["haircut"], at(TUESDAY, 10), seed["bruno"]))

    # overlaps its own old interval, which must not count as a conflict
    moved = lifecycle.reschedule(created.cancellation_token, at(TUESDAY, 10, 15))

    assert moved.id == created.id
    assert moved.start_time == at(TUESDAY, 10, 15)
    assert moved.end_time == at(TUESDAY, 10, 45)
    audit = lifecycle.store.audits_for(created.id)[-1]
    assert audit.action == "RESCHEDULED"
    assert audit.performed_by == "client"
    assert audit.before_state["start_time"] == at(TUESDAY, 10).isoformat()


def test_reschedule_to_other_barber(lifecycle, seed):
    created = lifecycle.create_public(booking_request(seed["haircut"], at(TUESDAY, 10), seed["bruno"]))
    moved = lifecycle.reschedule(created.cancellation_token, at(TUESDAY, 11), seed["carla"].id)
    assert moved.barber_id == seed["carla"].id


def test_reschedule_checks_rules_and_conflicts(lifecycle, seed, make_appointment):
    make_appointment(seed["bruno"], seed["haircut"], at(TUESDAY, 11))
    created = lifecycle.create_public(booking_request(seed["haircut"], at(TUESDAY, 10), seed["bruno"]))

    with pytest.raises(ConflictError):
        lifecycle.reschedule(created.cancellation_token, at(TUESDAY, 11))
    with pytest.raises(BusinessRuleError) as exc:
        lifecycle.reschedule(created.cancellation_token, at(SUNDAY, 11))
    assert exc.value.code == "NOT_WORKING_DAY"

    assert lifecycle.find_by_id(created.id).start_time == at(TUESDAY, 10)


def test_reschedule_inside_deadline(lifecycle, seed, make_appointment):
    appointment = make_appointment(seed["bruno"], seed["haircut"], NOW + timedelta(hours=3))
    with pytest.raises(BusinessRuleError) as exc:
        lifecycle.reschedule(appointment.cancellation_token, at(TUESDAY, 10))
    assert exc.value.code == "RESCHEDULE_DEADLINE"


def test_cancelled_appointment_cannot_be_rescheduled(lifecycle, seed, make_appointment):
    appointment = make_appointment(
        seed["bruno"], seed["haircut"], at(TUESDAY, 10), status=AppointmentStatus.CANCELLED_BY_CLIENT
    )
    with pytest.raises(BusinessRuleError) as exc:
        lifecycle.reschedule(appointment.cancellation_token, at(TUESDAY, 11))
    assert exc.value.code == "INVALID_STATUS"


# audit trail

def test_every_change_is_audited(lifecycle, seed):
    created = lifecycle.create_public(booking_request(seed["haircut"], at(TUESDAY, 10), seed["bruno"]))
    lifecycle.reschedule(created.cancellation_token, at(TUESDAY, 11))
    lifecycle.cancel_by_admin(created.id, ADMIN)

    audits = lifecycle.store.audits_for(created.id)
    assert [a.action for a in audits] == ["CREATED", "RESCHEDULED", "CANCELLED_BY_ADMIN"]

    created_audit, _, cancel_audit = audits
    assert created_audit.before_state is None
    assert created_audit.after_state["status"] == "CONFIRMED"
    assert created_audit.performed_at == NOW
    assert cancel_audit.before_state["status"] == "CONFIRMED"
    assert cancel_audit.after_state["status"] == "CANCELLED_BY_ADMIN"
    assert cancel_audit.performed_by == ADMIN


# notifications from the lifecycle

def test_confirmation_is_sent_after_booking(lifecycle, sender, seed):
    created = lifecycle.create_public(booking_request(seed["haircut"], at(TUESDAY, 10), seed["bruno"]))

    assert len(sender.sent) == 1
    recipient, subject, body = sender.sent[0]
    assert recipient == "dana@example.com"
    assert subject == "Fade Factory - Appointment confirmed"
    assert "Hello Dana" in body

    [log] = lifecycle.store.notifications_for(created.id)
    assert log.type == NotificationType.CONFIRMATION
    assert log.status == NotificationStatus.SENT


def test_failed_email_does_not_undo_booking(store, settings, clock, seed):
    notifier = NotificationService(store, settings, FailingSender(), clock)
    lifecycle = AppointmentLifecycle(store, settings, notifier, clock)

    created = lifecycle.create_public(booking_request(seed["haircut"], at(TUESDAY, 10), seed["bruno"]))

    assert lifecycle.find_by_id(created.id).status == AppointmentStatus.CONFIRMED
    [log] = store.notifications_for(created.id)
    assert log.status == NotificationStatus.FAILED
    assert log.retry_count == 1


def test_unexpected_notifier_error_does_not_undo_cancel(store, settings, clock, seed, make_appointment):
    class BrokenNotifier:
        def send(self, appointment, type):
            raise RuntimeError("template exploded")

    lifecycle = AppointmentLifecycle(store, settings, BrokenNotifier(), clock)
    appointment = make_appointment(seed["bruno"], seed["haircut"], at(TUESDAY, 10))

    cancelled = lifecycle.cancel_by_client(appointment.cancellation_token)
    assert cancelled.status == AppointmentStatus.CANCELLED_BY_CLIENT


def test_no_email_means_no_notification(lifecycle, sender, seed):
    created = lifecycle.create_public(
        booking_request(seed["haircut"], at(TUESDAY, 10), seed["bruno"], client_email=None)
    )
    assert sender.sent == []
    assert lifecycle.store.notifications_for(created.id) == []


# read paths

def test_calendar_events(lifecycle, seed, make_appointment):
    make_appointment(seed["bruno"], seed["haircut"], at(TUESDAY, 10))
    make_appointment(seed["carla"], seed["beard"], at(TUESDAY, 9))
    make_appointment(seed["carla"], seed["beard"], at(TUESDAY, 9) + timedelta(days=1))

    events = lifecycle.calendar_events(TUESDAY, TUESDAY)
    assert [e.title for e in events] == ["Dana - Beard trim", "Dana - Haircut"]
    assert [e.barber_name for e in events] == ["Carla", "Bruno"]

    only_bruno = lifecycle.calendar_events(TUESDAY, TUESDAY + timedelta(days=1), seed["bruno"].id)
    assert len(only_bruno) == 1


def test_upcoming_lists_active_future_appointments(lifecycle, seed, make_appointment):
    bruno, haircut = seed["bruno"], seed["haircut"]
    later = make_appointment(bruno, haircut, at(TUESDAY, 11))
    sooner = make_appointment(bruno, haircut, at(TUESDAY, 10))
    make_appointment(bruno, haircut, at(TUESDAY, 12), status=AppointmentStatus.CANCELLED_BY_ADMIN)
    make_appointment(bruno, haircut, NOW - timedelta(hours=1))

    assert [a.id for a in lifecycle.upcoming(bruno.id)] == [sooner.id, later.id]


# reactivation and stale reads

def test_reactivating_into_a_taken_slot_is_a_conflict(lifecycle, seed, make_appointment):
    old = make_appointment(
        seed["bruno"], seed["haircut"], at(TUESDAY, 10), status=AppointmentStatus.CANCELLED_BY_CLIENT
    )
    lifecycle.create_public(booking_request(seed["haircut"], at(TUESDAY, 10), seed["bruno"]))

    with pytest.raises(ConflictError):
        lifecycle.update(old.id, AppointmentUpdate(status=AppointmentStatus.CONFIRMED), ADMIN)

    assert lifecycle.find_by_id(old.id).status == AppointmentStatus.CANCELLED_BY_CLIENT
    active = lifecycle.store.overlapping_appointments(seed["bruno"].id, at(TUESDAY, 10), at(TUESDAY, 10, 30))
    assert len(active) == 1


def test_reactivating_into_a_free_slot(lifecycle, seed, make_appointment):
    old = make_appointment(
        seed["bruno"], seed["haircut"], at(TUESDAY, 10), status=AppointmentStatus.CANCELLED_BY_ADMIN
    )
    restored = lifecycle.update(old.id, AppointmentUpdate(status=AppointmentStatus.CONFIRMED), ADMIN)
    assert restored.status == AppointmentStatus.CONFIRMED


def test_moving_an_inactive_appointment_skips_conflicts(lifecycle, seed, make_appointment):
    make_appointment(seed["bruno"], seed["haircut"], at(TUESDAY, 14))
    old = make_appointment(seed["bruno"], seed["haircut"], at(TUESDAY, 10), status=AppointmentStatus.NO_SHOW)

    moved = lifecycle.update(old.id, AppointmentUpdate(start_time=at(TUESDAY, 14)), ADMIN)
    assert moved.start_time == at(TUESDAY, 14)
    assert moved.status == AppointmentStatus.NO_SHOW


def test_cancel_sees_a_cancel_committed_by_another_session(engine, settings, clock, seed, make_appointment):
    appointment = make_appointment(seed["bruno"], seed["haircut"], at(TUESDAY, 10))
    token = appointment.cancellation_token

    with Session(engine) as first, Session(engine) as second:
        first_store, second_store = CalendarStore(first), CalendarStore(second)
        # loaded before the other cancel commits
        assert second_store.find_by_token(token).status == AppointmentStatus.CONFIRMED

        AppointmentLifecycle(first_store, settings, None, clock).cancel_by_client(token)

        with pytest.raises(BusinessRuleError) as exc:
            AppointmentLifecycle(second_store, settings, None, clock).cancel_by_client(token)
        assert exc.value.code == "ALREADY_CANCELLED"
        assert [a.action for a in second_store.audits_for(appointment.id)] == ["CANCELLED_BY_CLIENT"]


def test_status_change_sees_a_cancel_committed_by_another_session(engine, settings, clock, seed, make_appointment):
    appointment = make_appointment(seed["bruno"], seed["haircut"], at(TUESDAY, 10))

    with Session(engine) as first, Session(engine) as second:
        first_store, second_store = CalendarStore(first), CalendarStore(second)
        assert second_store.get_appointment(appointment.id).is_active()

        AppointmentLifecycle(first_store, settings, None, clock).cancel_by_admin(appointment.id, ADMIN)

        with pytest.raises(BusinessRuleError) as exc:
            AppointmentLifecycle(second_store, settings, None, clock).mark_completed(appointment.id, ADMIN)
        assert exc.value.code == "INVALID_STATUS"


# audit failures

def test_failed_audit_rolls_back_cancel(lifecycle, sender, monkeypatch, seed, make_appointment):
    appointment = make_appointment(seed["bruno"], seed["haircut"], at(TUESDAY, 10))

    def broken_audit(audit):
        raise RuntimeError("audit table unavailable")

    monkeypatch.setattr(lifecycle.store, "save_audit", broken_audit)

    with pytest.raises(RuntimeError):
        lifecycle.cancel_by_client(appointment.cancellation_token)

    assert lifecycle.find_by_id(appointment.id).status == AppointmentStatus.CONFIRMED
    assert sender.sent == []


def test_failed_audit_rolls_back_booking(lifecycle, session, sender, monkeypatch, seed):
    def broken_audit(audit):
        raise RuntimeError("audit table unavailable")

    monkeypatch.setattr(lifecycle.store, "save_audit", broken_audit)

    with pytest.raises(RuntimeError):
        lifecycle.create_public(booking_request(seed["haircut"], at(TUESDAY, 10), seed["bruno"]))

    assert all_appointments(session) == []
    assert sender.sent == []
