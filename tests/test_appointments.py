from datetime import datetime, timedelta, timezone

import pytest
from conftest import wrong_code

from floorops.domain.appointments.schemas import AppointmentCreate, AppointmentUpdate
from floorops.domain.appointments.service import AppointmentService
from floorops.models import Appointment, AppointmentStatus
from floorops.shared.errors import (
    AlreadyVerified,
    AttemptsExceeded,
    Conflict,
    Expired,
    InvalidCode,
    InvalidState,
    NotFound,
    PermissionDenied,
    RateLimited,
    ValidationFailed,
)

VISIT_DATE = datetime(2025, 6, 1, 9, 0)


@pytest.fixture
def service(db, dispatcher, clock):
    return AppointmentService(db, dispatcher, clock=clock)


@pytest.fixture
def appointment(service, seed):
    return service.schedule(
        AppointmentCreate(
            clientId=seed["client"].id,
            engineerId=seed["engineer"].id,
            visitDate=VISIT_DATE,
            purpose="Measure living room",
        )
    )


def assert_otp_fields_consistent(appt: Appointment):
    fields = (appt.otp, appt.otp_sent_at, appt.otp_expires_at)
    assert all(f is None for f in fields) or all(f is not None for f in fields)


def test_schedule_creates_scheduled_appointment(appointment, seed):
    assert appointment.status == AppointmentStatus.SCHEDULED.value
    assert appointment.client_id == seed["client"].id
    assert appointment.engineer_id == seed["engineer"].id
    assert appointment.visit_date == VISIT_DATE
    assert appointment.otp_attempts == 0
    assert_otp_fields_consistent(appointment)


def test_schedule_accepts_past_dates_and_normalizes_timezone(service, seed):
    aware = datetime(2024, 1, 10, 14, 30, tzinfo=timezone(timedelta(hours=5, minutes=30)))
    appt = service.schedule(
        AppointmentCreate(clientId=seed["client"].id, engineerId=seed["engineer"].id, visitDate=aware)
    )
    assert appt.visit_date == datetime(2024, 1, 10, 9, 0)


def test_schedule_rejects_inactive_client(service, seed):
    with pytest.raises(ValidationFailed):
        service.schedule(
            AppointmentCreate(
                clientId=seed["inactive_client"].id,
                engineerId=seed["engineer"].id,
                visitDate=VISIT_DATE,
            )
        )


def test_schedule_rejects_unknown_engineer(service, seed):
    with pytest.raises(NotFound):
        service.schedule(
            AppointmentCreate(clientId=seed["client"].id, engineerId="missing", visitDate=VISIT_DATE)
        )


def test_send_otp_issues_code_to_client_contact(service, appointment, dispatcher, seed):
    appt = service.send_otp(appointment.id)

    assert appt.status == AppointmentStatus.OTP_SENT.value
    assert len(appt.otp) == 6 and appt.otp.isdigit()
    assert appt.otp_expires_at == appt.otp_sent_at + timedelta(hours=24)
    assert appt.otp_attempts == 0
    assert_otp_fields_consistent(appt)

    assert len(dispatcher.sent) == 1
    assert dispatcher.sent[0].destination == seed["client"].primary_contact
    assert dispatcher.sent[0].code == appt.otp
    assert dispatcher.sent[0].subject_type == "Appointment"


def test_send_otp_prefers_override_number(service, seed, dispatcher):
    appt = service.schedule(
        AppointmentCreate(
            clientId=seed["client"].id,
            engineerId=seed["engineer"].id,
            visitDate=VISIT_DATE,
            otpMobileNumber="9812345678",
        )
    )
    service.send_otp(appt.id)

    assert dispatcher.sent[0].destination == "+919812345678"


def test_send_otp_only_from_scheduled(service, appointment):
    service.send_otp(appointment.id)

    with pytest.raises(InvalidState) as exc_info:
        service.send_otp(appointment.id)
    assert exc_info.value.extra["currentStatus"] == AppointmentStatus.OTP_SENT.value


def test_full_attempts_and_resend_scenario(service, appointment, dispatcher, clock):
    service.send_otp(appointment.id)
    code = dispatcher.last_code(appointment.id)
    bad = wrong_code(code)

    with pytest.raises(InvalidCode):
        service.verify_otp(appointment.id, bad)
    with pytest.raises(InvalidCode):
        service.verify_otp(appointment.id, bad)
    with pytest.raises(AttemptsExceeded):
        service.verify_otp(appointment.id, bad)

    appt = service.get_appointment(appointment.id)
    assert appt.status == AppointmentStatus.OTP_SENT.value
    assert appt.otp_attempts == 3

    clock.advance(seconds=61)
    appt = service.resend_otp(appointment.id)
    assert appt.status == AppointmentStatus.OTP_SENT.value
    assert appt.otp_attempts == 0
    assert len(dispatcher.sent) == 2

    appt = service.verify_otp(appointment.id, dispatcher.last_code(appointment.id))
    assert appt.status == AppointmentStatus.VERIFIED.value


def test_failed_attempt_count_is_persisted(service, appointment, dispatcher, session_factory):
    service.send_otp(appointment.id)
    with pytest.raises(InvalidCode):
        service.verify_otp(appointment.id, wrong_code(dispatcher.last_code(appointment.id)))

    with session_factory() as other:
        assert other.get(Appointment, appointment.id).otp_attempts == 1


def test_resend_within_cooldown_is_rate_limited(service, appointment, clock):
    service.send_otp(appointment.id)
    clock.advance(seconds=15)

    with pytest.raises(RateLimited) as exc_info:
        service.resend_otp(appointment.id)
    assert exc_info.value.retry_after_seconds == 45


def test_resend_only_from_otp_sent(service, appointment):
    with pytest.raises(InvalidState):
        service.resend_otp(appointment.id)


def test_verify_then_feedback_completes(service, appointment, dispatcher, clock):
    service.send_otp(appointment.id)
    clock.advance(minutes=30)

    appt = service.verify_otp(appointment.id, dispatcher.last_code(appointment.id))
    assert appt.status == AppointmentStatus.VERIFIED.value
    assert appt.verified_at == clock.now
    assert_otp_fields_consistent(appt)
    assert appt.otp is None

    with pytest.raises(AlreadyVerified):
        service.verify_otp(appointment.id, "000000")

    clock.advance(hours=1)
    appt = service.submit_feedback(appointment.id, "Looks good")
    assert appt.status == AppointmentStatus.COMPLETED.value
    assert appt.feedback == "Looks good"
    assert appt.completed_at == clock.now

    appt = service.submit_feedback(appointment.id, "Client asked for a follow-up")
    assert appt.status == AppointmentStatus.COMPLETED.value
    assert appt.feedback == "Client asked for a follow-up"


def test_verify_expired_code(service, appointment, dispatcher, clock):
    service.send_otp(appointment.id)
    clock.advance(hours=25)

    with pytest.raises(Expired):
        service.verify_otp(appointment.id, dispatcher.last_code(appointment.id))


def test_feedback_requires_verified(service, appointment):
    with pytest.raises(InvalidState) as exc_info:
        service.submit_feedback(appointment.id, "Too early")
    assert exc_info.value.extra["currentStatus"] == AppointmentStatus.SCHEDULED.value


def test_feedback_must_not_be_blank(service, appointment, dispatcher):
    service.send_otp(appointment.id)
    service.verify_otp(appointment.id, dispatcher.last_code(appointment.id))

    with pytest.raises(ValidationFailed):
        service.submit_feedback(appointment.id, "   ")


def test_cancel_clears_outstanding_otp(service, appointment, dispatcher, clock):
    service.send_otp(appointment.id)

    appt = service.cancel(appointment.id, "Client rescheduled")

    assert appt.status == AppointmentStatus.CANCELLED.value
    assert appt.cancelled_at == clock.now
    assert appt.cancellation_reason == "Client rescheduled"
    assert appt.otp is None
    assert_otp_fields_consistent(appt)

    with pytest.raises(InvalidState):
        service.verify_otp(appointment.id, dispatcher.last_code(appointment.id))
    with pytest.raises(InvalidState):
        service.cancel(appointment.id)


def test_cancel_not_allowed_after_completion(service, appointment, dispatcher):
    service.send_otp(appointment.id)
    service.verify_otp(appointment.id, dispatcher.last_code(appointment.id))
    service.submit_feedback(appointment.id, "Done")

    with pytest.raises(InvalidState):
        service.cancel(appointment.id)


def test_update_details_only_while_scheduled(service, appointment, seed):
    appt = service.update_details(
        appointment.id,
        AppointmentUpdate(purpose="Measure kitchen", engineerId=seed["other_engineer"].id),
    )
    assert appt.purpose == "Measure kitchen"
    assert appt.engineer_id == seed["other_engineer"].id

    service.send_otp(appointment.id)
    with pytest.raises(InvalidState):
        service.update_details(appointment.id, AppointmentUpdate(purpose="Too late"))


def test_update_details_explicit_null_clears_optional_fields(service, appointment):
    appt = service.update_details(
        appointment.id, AppointmentUpdate(siteAddress="Villa 7", otpMobileNumber="98450 12345")
    )
    assert appt.otp_mobile_number == "+919845012345"

    appt = service.update_details(
        appointment.id, AppointmentUpdate(purpose=None, otpMobileNumber=None, visitDate=None)
    )
    assert appt.purpose is None
    assert appt.otp_mobile_number is None
    assert appt.site_address == "Villa 7"
    assert appt.visit_date == VISIT_DATE


def test_unassigned_engineer_cannot_act(service, appointment, seed):
    with pytest.raises(PermissionDenied):
        service.send_otp(appointment.id, seed["other_user"])

    appt = service.send_otp(appointment.id, seed["engineer_user"])
    assert appt.status == AppointmentStatus.OTP_SENT.value


def test_concurrent_transition_conflicts(session_factory, seed, dispatcher, clock, appointment):
    first = session_factory()
    second = session_factory()
    try:
        stale = second.get(Appointment, appointment.id)
        assert stale.status == AppointmentStatus.SCHEDULED.value

        AppointmentService(first, dispatcher, clock=clock).send_otp(appointment.id)

        with pytest.raises(Conflict):
            AppointmentService(second, dispatcher, clock=clock).send_otp(appointment.id)
    finally:
        first.close()
        second.close()

    # Only the winning transition delivered a code
    assert len(dispatcher.sent) == 1


def test_engineer_dashboard_lists_open_visits_soonest_first(service, seed, dispatcher):
    later = service.schedule(
        AppointmentCreate(
            clientId=seed["client"].id,
            engineerId=seed["engineer"].id,
            visitDate=VISIT_DATE + timedelta(days=2),
        )
    )
    sooner = service.schedule(
        AppointmentCreate(
            clientId=seed["client"].id,
            engineerId=seed["engineer"].id,
            visitDate=VISIT_DATE,
        )
    )
    done = service.schedule(
        AppointmentCreate(
            clientId=seed["client"].id,
            engineerId=seed["engineer"].id,
            visitDate=VISIT_DATE - timedelta(days=1),
        )
    )
    service.cancel(done.id)

    ids = [a.id for a in service.engineer_dashboard(seed["engineer"].id)]
    assert ids == [sooner.id, later.id]


def test_dashboard_stats(service, seed, dispatcher, clock):
    def schedule(days):
        return service.schedule(
            AppointmentCreate(
                clientId=seed["client"].id,
                engineerId=seed["engineer"].id,
                visitDate=clock.now + timedelta(days=days),
            )
        )

    schedule(1)
    schedule(-1)
    pending = schedule(0)
    service.send_otp(pending.id)
    completed = schedule(0)
    service.send_otp(completed.id)
    service.verify_otp(completed.id, dispatcher.last_code(completed.id))
    service.submit_feedback(completed.id, "All good")

    stats = service.dashboard_stats()

    assert stats == {
        "totalAppointments": 4,
        "pendingVerifications": 1,
        "completedToday": 1,
        "upcomingAppointments": 1,
    }


def test_list_appointments_filters_and_paginates(service, seed):
    for day in range(5):
        service.schedule(
            AppointmentCreate(
                clientId=seed["client"].id,
                engineerId=seed["engineer"].id,
                visitDate=VISIT_DATE + timedelta(days=day),
                purpose=f"Visit {day}",
            )
        )

    items, total = service.list_appointments(page=1, limit=2)
    assert total == 5
    assert [a.purpose for a in items] == ["Visit 4", "Visit 3"]

    items, total = service.list_appointments(
        page=1,
        limit=10,
        start_date=VISIT_DATE + timedelta(days=1),
        end_date=datetime(2025, 6, 3),
    )
    assert total == 2

    items, total = service.list_appointments(page=1, limit=10, search="acme")
    assert total == 5
