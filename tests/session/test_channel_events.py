import unittest

from diag_session.events import ErrorEvent, MessageEvent, TypingEvent, decode_frame, parse_channel_event

from tests.session.base import message_frame


class ParseChannelEventTests(unittest.TestCase):
    def test_message_frame(self) -> None:
        event = parse_channel_event(
            message_frame("m-1", "m-2", total_tokens=1500, token_usage={"user": {"daily_remaining": 10}})
        )
        self.assertIsInstance(event, MessageEvent)
        self.assertEqual(["m-1", "m-2"], [m.id for m in event.messages])
        self.assertEqual(1500, event.total_tokens)
        self.assertEqual("2026-10-17T10:00:00+00:00", event.last_message_at)
        self.assertEqual(10, event.token_usage.user.daily_remaining)
        self.assertIsNone(event.token_usage.workshop)

    def test_message_frame_without_thread_or_usage(self) -> None:
        frame = message_frame("m-1", "m-2")
        del frame["thread"]
        event = parse_channel_event(frame)
        self.assertIsNone(event.total_tokens)
        self.assertIsNone(event.last_message_at)
        self.assertIsNone(event.token_usage)

    def test_message_frame_missing_half_is_ignored(self) -> None:
        frame = message_frame("m-1", "m-2")
        del frame["assistant_message"]
        self.assertIsNone(parse_channel_event(frame))

    def test_message_frame_with_unusable_payload_is_ignored(self) -> None:
        frame = message_frame("m-1", "m-2")
        del frame["user_message"]["id"]
        self.assertIsNone(parse_channel_event(frame))

        frame = message_frame("m-1", "m-2")
        frame["thread"]["total_tokens"] = "lots"
        self.assertIsNone(parse_channel_event(frame))

    def test_typing_and_error_frames(self) -> None:
        self.assertEqual(TypingEvent(user_id="42"), parse_channel_event({"type": "typing", "user_id": 42}))
        self.assertIsNone(parse_channel_event({"type": "typing"}))
        self.assertEqual(
            ErrorEvent(message="Token limit exceeded", error_type="quota"),
            parse_channel_event({"type": "error", "message": "Token limit exceeded", "error_type": "quota"}),
        )

    def test_unknown_type_is_ignored(self) -> None:
        self.assertIsNone(parse_channel_event({"type": "presence_sync", "users": []}))
        self.assertIsNone(parse_channel_event({}))


class DecodeFrameTests(unittest.TestCase):
    def test_malformed_and_non_object_frames(self) -> None:
        self.assertIsNone(decode_frame("{not json"))
        self.assertIsNone(decode_frame("[1, 2]"))

    def test_valid_frame(self) -> None:
        self.assertEqual(TypingEvent(user_id="u-2"), decode_frame('{"type": "typing", "user_id": "u-2"}'))


if __name__ == "__main__":
    unittest.main()
