import json

import pytest
import requests

from agrolink.errors import RemoteUnavailableError
from agrolink.services.payment_gateway_client import PaymentGatewayClient, PaymentGatewayError


def _resp(status, payload=None, text=None):
    r = requests.Response()
    r.status_code = status
    r.encoding = "utf-8"
    if payload is not None:
        r._content = json.dumps(payload).encode("utf-8")
        r.headers["Content-Type"] = "application/json"
    else:
        r._content = (text or "").encode("utf-8")
        r.headers["Content-Type"] = "text/html"
    return r


class FakeHttp:
    """Plays back queued responses / exceptions for GET."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def get(self, url, timeout=None, allow_redirects=True):
        self.calls.append((url, timeout))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _client(*outcomes, retries=3):
    http = FakeHttp(*outcomes)
    sleeps = []
    client = PaymentGatewayClient("https://pay.example.com/", timeout=7, max_retries=retries,
                                  http=http, sleep=sleeps.append)
    return client, http, sleeps


def test_without_base_url_trusts_widget_outcome():
    client = PaymentGatewayClient("", http=FakeHttp())
    assert client.verify("pay_1") == {"confirmed": True, "error": None}
    assert client.verify("pay_1", reported_status="failed") == {"confirmed": False, "error": "payment failed"}
    assert client.verify("  ")["confirmed"] is False


def test_confirmed_payment():
    client, http, _ = _client(_resp(200, {"status": "captured", "amount": 300}))
    assert client.verify("pay_1", amount=300) == {"confirmed": True, "error": None}
    assert http.calls == [("https://pay.example.com/payments/pay_1", 7)]


def test_amount_mismatch_is_not_confirmed():
    client, _, _ = _client(_resp(200, {"status": "captured", "amount": 30}))
    assert client.verify("pay_1", amount=300) == {"confirmed": False, "error": "amount mismatch"}


@pytest.mark.parametrize("response,error", [
    (_resp(200, {"status": "failed"}), "payment failed"),
    (_resp(404, {"message": "no such payment"}), "unknown payment reference"),
    (_resp(400, {"message": "bad reference"}), "bad reference"),
])
def test_not_confirmed(response, error):
    client, _, _ = _client(response)
    assert client.verify("pay_1") == {"confirmed": False, "error": error}


def test_retries_gateway_errors_with_backoff():
    client, http, sleeps = _client(
        _resp(503, text="<html>down</html>"),
        requests.ConnectionError("reset"),
        _resp(200, {"status": "paid"}),
    )
    assert client.verify("pay_1")["confirmed"] is True
    assert len(http.calls) == 3
    assert sleeps == [0.6, 1.2]


def test_gives_up_after_max_retries():
    client, http, sleeps = _client(
        _resp(502, text="bad gateway"),
        requests.Timeout("slow"),
        retries=2,
    )
    with pytest.raises(PaymentGatewayError) as exc:
        client.verify("pay_1")
    assert isinstance(exc.value, RemoteUnavailableError)
    assert exc.value.details["retryable"] is True
    assert sleeps == [0.6]


def test_non_json_success_is_an_error():
    client, _, _ = _client(_resp(200, text="<html>ok</html>"))
    with pytest.raises(PaymentGatewayError):
        client.verify("pay_1")
