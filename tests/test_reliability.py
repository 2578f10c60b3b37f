"""
Tests for the bounded retry policy.
"""

from devchef.core.reliability.retry import RetryPolicy


class TestRetryPolicy:
    def test_fixed_delay_by_default(self):
        policy = RetryPolicy()
        assert [policy.delay_for(n) for n in (1, 2, 10)] == [1.0, 1.0, 1.0]

    def test_backoff_is_capped(self):
        policy = RetryPolicy(base_delay=1.0, backoff=2.0, max_delay=5.0)
        assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_stays_in_bounds(self):
        policy = RetryPolicy(base_delay=2.0, jitter=0.5)
        for attempt in range(1, 20):
            assert 2.0 <= policy.delay_for(attempt) <= 3.0

    def test_poll_success_after_failures(self):
        sleeps = []
        answers = iter([False, False, True])
        policy = RetryPolicy(max_attempts=5, sleep=sleeps.append)
        assert policy.poll(lambda: next(answers)) is True
        assert sleeps == [1.0, 1.0]

    def test_poll_exhausted(self):
        calls = []
        sleeps = []

        def probe():
            calls.append(1)
            return False

        policy = RetryPolicy(max_attempts=3, sleep=sleeps.append)
        assert policy.poll(probe) is False
        assert len(calls) == 3
        # No sleep after the last attempt
        assert len(sleeps) == 2

    def test_immediate_success_never_sleeps(self):
        sleeps = []
        assert RetryPolicy(sleep=sleeps.append).poll(lambda: True) is True
        assert sleeps == []
