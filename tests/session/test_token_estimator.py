import unittest

from diag_session.events import MessageEvent, TypingEvent
from diag_session.models import TokenUsageSnapshot, UserTokenUsage
from diag_session.token_estimator import TokenEstimator, estimate_tokens

from tests.session.base import make_message


class EstimateTokensTests(unittest.TestCase):
    def test_formula(self) -> None:
        self.assertEqual(801, estimate_tokens("hola"))
        self.assertEqual(800, estimate_tokens(""))
        self.assertEqual(802, estimate_tokens("hola!"))
        self.assertEqual(1050, estimate_tokens("x" * 1000))


class TokenEstimatorTests(unittest.TestCase):
    def test_estimate_does_not_record(self) -> None:
        estimator = TokenEstimator()
        self.assertEqual(801, estimator.estimate("hola"))
        self.assertEqual(0, estimator.last_estimate)
        estimator.record_estimate("hola")
        self.assertEqual(801, estimator.last_estimate)

    def test_remaining_comes_from_user_daily_budget(self) -> None:
        estimator = TokenEstimator()
        self.assertIsNone(estimator.remaining)
        estimator.apply_snapshot(TokenUsageSnapshot(user=None))
        self.assertIsNone(estimator.remaining)
        estimator.apply_snapshot(TokenUsageSnapshot(user=UserTokenUsage(daily_limit=50000, daily_remaining=12000)))
        self.assertEqual(12000, estimator.remaining)

    def test_message_event_replaces_snapshot(self) -> None:
        estimator = TokenEstimator()
        snapshot = TokenUsageSnapshot.from_dict({"user": {"daily_used": 10, "daily_remaining": 90}})
        estimator.handle(
            MessageEvent(
                user_message=make_message("m-1"),
                assistant_message=make_message("m-2", role="assistant"),
                token_usage=snapshot,
            )
        )
        self.assertEqual(snapshot, estimator.snapshot)
        estimator.handle(
            MessageEvent(user_message=make_message("m-3"), assistant_message=make_message("m-4", role="assistant"))
        )
        estimator.handle(TypingEvent(user_id="u-2"))
        self.assertEqual(90, estimator.remaining)


if __name__ == "__main__":
    unittest.main()
