"""
Unit tests for retry.py - Connect retry policy
"""
import pytest

from remotesync import config
from remotesync.common.retry import RetryPolicy


class TestRetryPolicy:

    def test_defaults_match_config(self):
        policy = RetryPolicy()
        assert policy.max_attempts == config.CONNECT_MAX_ATTEMPTS == 3
        assert policy.attempt_timeout == config.CONNECT_TIMEOUT == 15.0
        assert policy.initial_delay == config.CONNECT_RETRY_DELAY == 0.5

    def test_fixed_delay_by_default(self):
        policy = RetryPolicy(initial_delay=0.5)
        assert policy.get_delay(1) == 0.5
        assert policy.get_delay(2) == 0.5

    def test_exponential_backoff_capped(self):
        policy = RetryPolicy(initial_delay=1.0, backoff_multiplier=2.0, max_delay=3.0)
        assert policy.get_delay(1) == 1.0
        assert policy.get_delay(2) == 2.0
        assert policy.get_delay(3) == 3.0

    def test_should_retry(self):
        policy = RetryPolicy(max_attempts=3)
        assert policy.should_retry(1)
        assert policy.should_retry(2)
        assert not policy.should_retry(3)

    def test_single_attempt_never_retries(self):
        assert not RetryPolicy(max_attempts=1).should_retry(1)

    def test_zero_attempts_rejected(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_worst_case_duration(self):
        policy = RetryPolicy(max_attempts=3, attempt_timeout=15.0, initial_delay=0.5)
        # three timeouts, two pauses between them
        assert policy.worst_case_duration() == pytest.approx(46.0)

    def test_repr(self):
        assert "max_attempts=2" in repr(RetryPolicy(max_attempts=2))
