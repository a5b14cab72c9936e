import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock

from diag_session.commands.router import CommandRouter


class CommandRouterTests(unittest.TestCase):
    def setUp(self) -> None:
        self._callbacks = {
            "on_help": AsyncMock(),
            "on_open": AsyncMock(),
            "on_new": AsyncMock(),
            "on_list": AsyncMock(),
            "on_status": AsyncMock(),
            "on_delete": AsyncMock(),
            "on_usage": AsyncMock(),
            "on_dismiss": AsyncMock(),
            "on_unknown": MagicMock(),
        }
        self._router = CommandRouter(**self._callbacks)

    def test_plain_text_is_not_a_command(self) -> None:
        self.assertFalse(asyncio.run(self._router.try_handle("el motor tiembla en ralenti")))
        for callback in self._callbacks.values():
            callback.assert_not_called()

    def test_commands_receive_their_arguments(self) -> None:
        asyncio.run(self._router.try_handle("/new 1234ABC 120000 P0301"))
        asyncio.run(self._router.try_handle("  /open   t-42 "))
        asyncio.run(self._router.try_handle("/status completed resolved"))
        asyncio.run(self._router.try_handle("/list"))

        self._callbacks["on_new"].assert_awaited_once_with("1234ABC 120000 P0301")
        self._callbacks["on_open"].assert_awaited_once_with("t-42")
        self._callbacks["on_status"].assert_awaited_once_with("completed resolved")
        self._callbacks["on_list"].assert_awaited_once_with("")

    def test_argumentless_commands(self) -> None:
        for command, name in (
            ("/help", "on_help"),
            ("/delete", "on_delete"),
            ("/usage", "on_usage"),
            ("/dismiss", "on_dismiss"),
        ):
            self.assertTrue(asyncio.run(self._router.try_handle(command)))
            self._callbacks[name].assert_awaited_once_with()

    def test_unknown_command(self) -> None:
        self.assertTrue(asyncio.run(self._router.try_handle("/rewind 3")))
        self._callbacks["on_unknown"].assert_called_once_with("/rewind 3")


if __name__ == "__main__":
    unittest.main()
