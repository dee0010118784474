import asyncio
import time

import pytest

from fakes import PERSON_DOC


def test_retry_policy_clamps_values():
    from homogenaize import RetryPolicy

    cfg = RetryPolicy(
        max_retries=-1, initial_delay_s=5.0, max_delay_s=1.0, backoff_multiplier=0.5
    )
    assert cfg.max_retries == 0
    assert cfg.max_delay_s == 5.0
    assert cfg.backoff_multiplier == 1.0


def test_backoff_is_monotonic_and_capped():
    from homogenaize import RetryPolicy
    from homogenaize._retry import compute_backoff

    policy = RetryPolicy(initial_delay_s=1.0, max_delay_s=10.0, backoff_multiplier=2.0)
    delays = [compute_backoff(attempt, policy) for attempt in range(12)]

    assert delays[:5] == [1.0, 2.0, 4.0, 8.0, 10.0]
    assert all(later >= earlier for earlier, later in zip(delays, delays[1:]))
    assert all(d <= policy.max_delay_s for d in delays)


def test_jitter_stays_within_half_to_full_delay():
    from homogenaize._retry import apply_jitter

    for _ in range(1000):
        assert 2.0 <= apply_jitter(4.0) <= 4.0


def test_jitter_bounds_at_random_extremes(monkeypatch):
    from homogenaize._retry import apply_jitter

    monkeypatch.setattr("homogenaize._retry.random.random", lambda: 0.0)
    assert apply_jitter(4.0) == 2.0
    monkeypatch.setattr("homogenaize._retry.random.random", lambda: 1.0)
    assert apply_jitter(4.0) == 4.0


@pytest.mark.asyncio
async def test_success_first_try_does_not_sleep(sleeps):
    from homogenaize import execute

    called = {"n": 0}

    async def op():
        called["n"] += 1
        return 123

    assert await execute(op) == 123
    assert called["n"] == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_max_retries_bounds_invocations_and_error_is_unwrapped(sleeps, no_jitter):
    from homogenaize import ServerError, execute

    err = ServerError("boom", status_code=503)
    called = {"n": 0}

    async def op():
        called["n"] += 1
        raise err

    with pytest.raises(ServerError) as exc:
        await execute(op, no_jitter)

    assert exc.value is err
    assert called["n"] == 4
    assert sleeps == [0.01, 0.02, 0.04]


@pytest.mark.asyncio
async def test_client_fault_is_not_retried(sleeps):
    from homogenaize import ClientError, execute

    called = {"n": 0}

    async def op():
        called["n"] += 1
        raise ClientError("bad request", status_code=400)

    with pytest.raises(ClientError):
        await execute(op)
    assert called["n"] == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_retry_after_overrides_computed_backoff(sleeps):
    from homogenaize import RateLimitError, RetryPolicy, execute

    state = {"n": 0}

    async def op():
        state["n"] += 1
        if state["n"] == 1:
            raise RateLimitError("slow down", retry_after_s=2)
        return "ok"

    policy = RetryPolicy(initial_delay_s=0.1, jitter=False)
    assert await execute(op, policy) == "ok"
    assert sleeps == [2.0]


@pytest.mark.asyncio
async def test_on_retry_callback_receives_attempt_error_and_delay(sleeps):
    from homogenaize import NetworkError, RetryPolicy, execute

    seen = []
    state = {"n": 0}

    async def op():
        state["n"] += 1
        if state["n"] < 3:
            raise NetworkError(f"reset {state['n']}")
        return "done"

    policy = RetryPolicy(
        initial_delay_s=0.5,
        jitter=False,
        on_retry=lambda attempt, error, delay: seen.append((attempt, str(error), delay)),
    )
    assert await execute(op, policy) == "done"
    assert seen == [(1, "reset 1", 0.5), (2, "reset 2", 1.0)]


@pytest.mark.asyncio
async def test_custom_retryability_predicate(sleeps):
    from homogenaize import RetryPolicy, execute

    state = {"n": 0}

    async def op():
        state["n"] += 1
        if state["n"] == 1:
            raise ValueError("flaky")
        return "ok"

    policy = RetryPolicy(jitter=False, is_retryable=lambda e: isinstance(e, ValueError))
    assert await execute(op, policy) == "ok"
    assert state["n"] == 2

    with pytest.raises(ValueError):
        await execute(op_raising_value_error, RetryPolicy())


async def op_raising_value_error():
    raise ValueError("not retried by default")


def _validating_operation(responses):
    from homogenaize._json import parse_json
    from homogenaize.schema import prepare_schema, validate_payload

    prepared = prepare_schema(PERSON_DOC)
    state = {"n": 0}

    async def op():
        text = responses[min(state["n"], len(responses) - 1)]
        state["n"] += 1
        return validate_payload(prepared, parse_json(text))

    return op, state


@pytest.mark.asyncio
async def test_validation_failure_is_retried_until_conforming(sleeps, no_jitter):
    from homogenaize import execute

    op, state = _validating_operation(['{"name": "Ada"}', '{"name": "Ada", "age": 36}'])

    assert await execute(op, no_jitter) == {"name": "Ada", "age": 36}
    assert state["n"] == 2


@pytest.mark.asyncio
async def test_validation_failure_exhausts_the_budget(sleeps):
    from homogenaize import LLMValidationError, RetryPolicy, execute

    op, state = _validating_operation(["not json at all"])

    with pytest.raises(LLMValidationError):
        await execute(op, RetryPolicy(max_retries=2, jitter=False))
    assert state["n"] == 3


@pytest.mark.asyncio
async def test_separate_validation_budget(sleeps):
    from homogenaize import LLMValidationError, NetworkError, RetryPolicy, execute

    policy = RetryPolicy(max_retries=0, max_validation_retries=2, jitter=False)

    op, state = _validating_operation(['{"name": 1}'])
    with pytest.raises(LLMValidationError):
        await execute(op, policy)
    assert state["n"] == 3

    called = {"n": 0}

    async def network_op():
        called["n"] += 1
        raise NetworkError("down")

    with pytest.raises(NetworkError):
        await execute(network_op, policy)
    assert called["n"] == 1


@pytest.mark.asyncio
async def test_cancelled_before_first_attempt_never_invokes():
    from homogenaize import CallCancelledError, CancellationToken, execute

    token = CancellationToken()
    token.cancel("stop")
    called = {"n": 0}

    async def op():
        called["n"] += 1

    with pytest.raises(CallCancelledError) as exc:
        await execute(op, cancellation=token)
    assert exc.value.reason == "stop"
    assert called["n"] == 0


@pytest.mark.asyncio
async def test_cancellation_during_sleep_fails_fast():
    from homogenaize import CallCancelledError, CancellationToken, RetryPolicy, ServerError, execute

    token = CancellationToken()
    called = {"n": 0}

    async def op():
        called["n"] += 1
        raise ServerError("unavailable", status_code=503)

    policy = RetryPolicy(initial_delay_s=5.0, jitter=False)
    asyncio.get_running_loop().call_later(0.05, token.cancel, "user abort")

    started = time.monotonic()
    with pytest.raises(CallCancelledError) as exc:
        await execute(op, policy, token)
    elapsed = time.monotonic() - started

    assert elapsed < 1.0
    assert exc.value.reason == "user abort"
    assert called["n"] == 1
    assert token.listener_count == 0


@pytest.mark.asyncio
async def test_cancellation_wins_over_retryable_failure(sleeps):
    from homogenaize import CallCancelledError, CancellationToken, ServerError, execute

    token = CancellationToken()
    called = {"n": 0}

    async def op():
        called["n"] += 1
        token.cancel("shutdown")
        raise ServerError("overloaded", status_code=529)

    with pytest.raises(CallCancelledError) as exc:
        await execute(op, cancellation=token)
    assert exc.value.reason == "shutdown"
    assert isinstance(exc.value.__cause__, ServerError)
    assert called["n"] == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_retry_decisions_are_logged(sleeps, caplog, no_jitter):
    import logging

    from homogenaize import NetworkError, execute

    state = {"n": 0}

    async def op():
        state["n"] += 1
        if state["n"] == 1:
            raise NetworkError("reset")
        return "ok"

    with caplog.at_level(logging.WARNING, logger="homogenaize"):
        await execute(op, no_jitter, description="unit call")

    assert any("retrying" in r.getMessage() and "unit call" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_retrying_decorator(sleeps, no_jitter):
    from homogenaize import NetworkError, retrying

    state = {"n": 0}

    @retrying(no_jitter)
    async def fetch(x):
        state["n"] += 1
        if state["n"] < 2:
            raise NetworkError("reset")
        return x * 2

    assert await fetch(21) == 42
    assert state["n"] == 2
