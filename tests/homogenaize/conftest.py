import pytest


@pytest.fixture
def sleeps(monkeypatch):
    """Replace the inter-retry sleep and record requested delays."""
    delays = []

    async def fake_sleep(delay_s, token=None):
        delays.append(delay_s)

    monkeypatch.setattr("homogenaize._retry.cancellable_sleep", fake_sleep)
    return delays


@pytest.fixture
def no_jitter():
    from homogenaize import RetryPolicy

    return RetryPolicy(max_retries=3, initial_delay_s=0.01, max_delay_s=0.05, jitter=False)
