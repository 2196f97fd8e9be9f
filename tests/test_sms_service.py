import httpx
from fastapi import BackgroundTasks

from floorops.services.sms_service import (
    BackgroundOtpDispatcher,
    SmsGateway,
    SmsOtpDispatcher,
    build_otp_message,
)


def make_gateway(handler, **overrides):
    settings = {
        "account_sid": "AC123",
        "auth_token": "secret",
        "from_number": "+15550001111",
        "messaging_service_sid": None,
    }
    settings.update(overrides)
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return SmsGateway(http_client=client, **settings)


def test_send_posts_to_twilio_messages_api():
    seen = {}

    def handler(request: httpx.Request):
        seen["url"] = str(request.url)
        seen["body"] = request.content.decode()
        return httpx.Response(201, json={"sid": "SM1"})

    ok, error = make_gateway(handler).send("+919876543210", "hello", "appointment_otp")

    assert ok is True and error is None
    assert seen["url"].endswith("/Accounts/AC123/Messages.json")
    assert "To=%2B919876543210" in seen["body"]
    assert "From=%2B15550001111" in seen["body"]


def test_send_reports_api_errors_without_raising():
    def handler(request):
        return httpx.Response(400, json={"code": 21211, "message": "Invalid 'To' number"})

    ok, error = make_gateway(handler).send("+919876543210", "hello", "appointment_otp")

    assert ok is False
    assert error == "Invalid 'To' number"


def test_send_survives_transport_failure():
    def handler(request):
        raise httpx.ConnectError("unreachable")

    ok, error = make_gateway(handler).send("+919876543210", "hello", "worker_visit_otp")

    assert ok is False
    assert "unreachable" in error


def test_send_requires_e164_and_configuration():
    def handler(request):
        raise AssertionError("no request expected")

    assert make_gateway(handler).send("9876543210", "hello", "appointment_otp")[0] is False
    unconfigured = make_gateway(handler, account_sid=None)
    assert unconfigured.is_configured is False
    assert unconfigured.send("+919876543210", "hello", "appointment_otp") == (
        False,
        "SMS gateway not configured",
    )


def test_otp_message_mentions_code():
    assert build_otp_message("123456", "Appointment").startswith("123456")
    assert "worker count" in build_otp_message("654321", "WorkerVisit")


def test_background_dispatcher_defers_delivery():
    delivered = []

    class Recorder(SmsOtpDispatcher):
        def __init__(self):
            pass

        def dispatch(self, destination, code, subject_type, subject_id):
            delivered.append((destination, code, subject_type, subject_id))

    tasks = BackgroundTasks()
    BackgroundOtpDispatcher(tasks, Recorder()).dispatch("+919876543210", "123456", "Appointment", "a1")

    assert delivered == []
    assert len(tasks.tasks) == 1
