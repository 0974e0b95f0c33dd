"""Tests for fixed-delay HTTP retries."""

from unittest.mock import MagicMock

import pytest
import requests

from settings_sync.core.retry import RetryConfig, call_with_retry


class TestCallWithRetry:
    def test_first_attempt_succeeds(self):
        func = MagicMock(return_value="ok")
        sleep = MagicMock()

        assert call_with_retry(func, RetryConfig(), sleep=sleep) == "ok"
        sleep.assert_not_called()

    def test_retries_with_fixed_delay(self):
        func = MagicMock(
            side_effect=[
                requests.ConnectionError("a"),
                requests.Timeout("b"),
                "ok",
            ]
        )
        sleep = MagicMock()

        result = call_with_retry(
            func, RetryConfig(retries=5, delay=3.0), sleep=sleep
        )

        assert result == "ok"
        assert [c.args[0] for c in sleep.call_args_list] == [3.0, 3.0]

    def test_gives_up_after_retries(self):
        func = MagicMock(side_effect=requests.ConnectionError("down"))
        sleep = MagicMock()

        with pytest.raises(requests.ConnectionError, match="down"):
            call_with_retry(func, RetryConfig(retries=2), sleep=sleep)

        assert func.call_count == 3
        assert sleep.call_count == 2

    def test_zero_retries(self):
        func = MagicMock(side_effect=requests.ConnectionError("down"))

        with pytest.raises(requests.ConnectionError):
            call_with_retry(func, RetryConfig(retries=0), sleep=MagicMock())

        assert func.call_count == 1

    def test_other_exceptions_not_retried(self):
        func = MagicMock(side_effect=KeyError("x"))
        sleep = MagicMock()

        with pytest.raises(KeyError):
            call_with_retry(func, RetryConfig(), sleep=sleep)

        assert func.call_count == 1
        sleep.assert_not_called()

    def test_custom_retry_on(self):
        func = MagicMock(side_effect=[OSError("x"), "ok"])

        result = call_with_retry(
            func, RetryConfig(), retry_on=(OSError,), sleep=MagicMock()
        )

        assert result == "ok"
