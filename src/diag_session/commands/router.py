from __future__ import annotations

from collections.abc import Awaitable, Callable


class CommandRouter:
    def __init__(
        self,
        *,
        on_help: Callable[[], Awaitable[None]],
        on_open: Callable[[str], Awaitable[None]],
        on_new: Callable[[str], Awaitable[None]],
        on_list: Callable[[str], Awaitable[None]],
        on_status: Callable[[str], Awaitable[None]],
        on_delete: Callable[[], Awaitable[None]],
        on_usage: Callable[[], Awaitable[None]],
        on_dismiss: Callable[[], Awaitable[None]],
        on_unknown: Callable[[str], None],
    ) -> None:
        self._on_help = on_help
        self._on_open = on_open
        self._on_new = on_new
        self._on_list = on_list
        self._on_status = on_status
        self._on_delete = on_delete
        self._on_usage = on_usage
        self._on_dismiss = on_dismiss
        self._on_unknown = on_unknown

    async def try_handle(self, user_message: str) -> bool:
        trimmed = user_message.strip()
        if not trimmed.startswith("/"):
            return False

        command, _, args = trimmed.partition(" ")
        args = args.strip()

        if command == "/help":
            await self._on_help()
        elif command == "/open":
            await self._on_open(args)
        elif command == "/new":
            await self._on_new(args)
        elif command == "/list":
            await self._on_list(args)
        elif command == "/status":
            await self._on_status(args)
        elif command == "/delete":
            await self._on_delete()
        elif command == "/usage":
            await self._on_usage()
        elif command == "/dismiss":
            await self._on_dismiss()
        else:
            self._on_unknown(trimmed)
        return True
