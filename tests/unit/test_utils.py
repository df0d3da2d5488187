from decimal import Decimal

import pytest

from gateway_payments.utils import (
    RetryPolicy,
    b64url_decode,
    b64url_encode,
    deep_get,
    format_amount,
    get_current_timestamp,
    to_decimal,
)


class Flaky(Exception):
    pass


class Fatal(Exception):
    pass


def test_retry_policy_success_first_try():
    calls = []

    def f():
        calls.append(1)
        return 42

    policy = RetryPolicy(retry_on=lambda e: isinstance(e, Flaky), sleep=lambda s: None)
    assert policy.call(f) == 42
    assert len(calls) == 1


def test_retry_policy_retries_until_success():
    calls, sleeps = [], []

    def f():
        calls.append(1)
        if len(calls) < 3:
            raise Flaky("try again")
        return 99

    policy = RetryPolicy(retry_on=lambda e: isinstance(e, Flaky), max_attempts=3, backoff=0.25, sleep=sleeps.append)
    assert policy.call(f) == 99
    assert len(calls) == 3
    assert sleeps == [0.25, 0.25]


def test_retry_policy_gives_up_with_last_error():
    calls = []

    def f():
        calls.append(1)
        raise Flaky("fail")

    policy = RetryPolicy(retry_on=lambda e: isinstance(e, Flaky), max_attempts=2, sleep=lambda s: None)
    with pytest.raises(Flaky):
        policy.call(f)
    assert len(calls) == 2


def test_retry_policy_on_exhausted_builds_error():
    policy = RetryPolicy(
        retry_on=lambda e: True,
        max_attempts=2,
        sleep=lambda s: None,
        on_exhausted=lambda attempts, e: RuntimeError(f"{attempts}: {e}"),
    )

    def f():
        raise Flaky("boom")

    with pytest.raises(RuntimeError, match="2: boom") as exc_info:
        policy.call(f)
    assert isinstance(exc_info.value.__cause__, Flaky)


def test_retry_policy_does_not_retry_other_errors():
    calls = []

    def f():
        calls.append(1)
        raise Fatal("stop")

    policy = RetryPolicy(retry_on=lambda e: isinstance(e, Flaky), max_attempts=5, sleep=lambda s: None)
    with pytest.raises(Fatal):
        policy.call(f)
    assert len(calls) == 1


def test_retry_policy_zero_backoff_does_not_sleep():
    sleeps = []
    attempts = iter([Flaky("x"), None])

    def f():
        error = next(attempts)
        if error:
            raise error
        return "ok"

    policy = RetryPolicy(retry_on=lambda e: True, backoff=0, sleep=sleeps.append)
    assert policy.call(f) == "ok"
    assert sleeps == []


def test_retry_policy_validates_bounds():
    with pytest.raises(ValueError):
        RetryPolicy(retry_on=lambda e: True, max_attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(retry_on=lambda e: True, backoff=-1)


@pytest.mark.parametrize(
    "value, expected",
    [
        (10, "10.00"),
        (19.99, "19.99"),
        ("19.999", "20.00"),
        (Decimal("0.005"), "0.01"),
        (Decimal("2.675"), "2.68"),
        ("1234567.891", "1234567.89"),
        (Decimal("1E+3"), "1000.00"),
    ],
)
def test_format_amount(value, expected):
    assert format_amount(value) == expected


def test_to_decimal_avoids_float_artifacts():
    assert to_decimal(0.1) == Decimal("0.1")


@pytest.mark.parametrize("value", [True, "abc", float("nan"), float("inf"), None])
def test_to_decimal_rejects_invalid(value):
    with pytest.raises(ValueError):
        to_decimal(value)


def test_b64url_helpers():
    encoded = b64url_encode(b'{"kid":"k1"}')
    assert "=" not in encoded
    assert b64url_decode(encoded) == b'{"kid":"k1"}'


def test_b64url_decode_rejects_garbage():
    with pytest.raises(ValueError):
        b64url_decode("a")


def test_deep_get():
    data = {"a": {"b": {"c": 1}}}
    assert deep_get(data, "a.b.c") == 1
    assert deep_get(data, "a.x", default="missing") == "missing"
    assert deep_get("not a dict", "a") is None


def test_get_current_timestamp_is_aware():
    assert get_current_timestamp().tzinfo is not None
