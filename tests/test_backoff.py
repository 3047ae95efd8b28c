"""
Tests for the rendered-attempt retry policy.

Test Perspectives Table:
| Case ID | Input / Precondition | Perspective | Expected Result | Notes |
|---------|---------------------|-------------|-----------------|-------|
| TC-RP-01 | default policy | Normal | 3 attempts, step 5s | Preview defaults |
| TC-RP-02 | attempt=0, 1 | Normal | 5s, 10s | Linear backoff |
| TC-RP-03 | max_retries=2, attempt=2 | Boundary | No retry left | Last attempt |
| TC-RP-04 | max_retries=0 | Boundary | 1 attempt, no retry | - |
| TC-RP-05 | attempt=-1 | Boundary | ValueError | Negative attempt |
| TC-RP-06 | max_retries=-1 | Boundary | ValueError | Invalid config |
| TC-RP-07 | reader policy (1, 3s) | Normal | 3s, then no retry | Reader defaults |
"""

import pytest

from unfurl.utils.backoff import RetryPolicy


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_defaults(self):
        # Given: No arguments
        # When: Creating the default policy
        policy = RetryPolicy()

        # Then: Preview defaults apply
        assert policy.max_retries == 2
        assert policy.blocked_step == 5.0
        assert policy.max_attempts == 3

    def test_linear_blocked_delay(self):
        policy = RetryPolicy(max_retries=2, blocked_step=5.0)

        assert policy.blocked_delay(0) == 5.0
        assert policy.blocked_delay(1) == 10.0

    def test_retry_left(self):
        """Only attempts before the last one may be followed by a retry."""
        policy = RetryPolicy(max_retries=2)

        assert policy.has_retry_left(0) is True
        assert policy.has_retry_left(1) is True
        assert policy.has_retry_left(2) is False

    def test_no_retries(self):
        policy = RetryPolicy(max_retries=0)

        assert policy.max_attempts == 1
        assert policy.has_retry_left(0) is False

    def test_reader_policy(self):
        policy = RetryPolicy(max_retries=1, blocked_step=3.0)

        assert policy.blocked_delay(0) == 3.0
        assert policy.has_retry_left(1) is False

    def test_negative_attempt(self):
        with pytest.raises(ValueError, match="attempt must be non-negative"):
            RetryPolicy().blocked_delay(-1)

    @pytest.mark.parametrize(
        "kwargs",
        [{"max_retries": -1}, {"blocked_step": -0.5}],
    )
    def test_invalid_config(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)
