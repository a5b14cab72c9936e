import asyncio
import sys

from dotenv import load_dotenv
from loguru import logger

from diag_session.app_config import load_json_config, parse_app_config, resolve_runtime_env
from diag_session.bootstrap import bootstrap_runtime
from diag_session.commands.router import CommandRouter
from diag_session.errors import ApiError, describe_failure
from diag_session.models import THREAD_STATUSES, ThreadFilters
from diag_session.services.session_formatter import SessionFormatter
from diag_session.session_store import SessionStore, SessionView

_LINE_PREFIX = "session> "

_HELP_LINES = [
    "Commands:",
    "  /new <plate> [km] [error codes]  start a consultation for a vehicle",
    "  /open <thread id>                open an existing consultation",
    "  /list [limit]                    list consultations for this workshop",
    "  /status <active|completed|archived> [resolved|unresolved]",
    "  /delete                          delete the open consultation",
    "  /usage                           show token usage",
    "  /dismiss                         clear the error and notifications",
    "  exit                             quit",
]


class ConsoleView:
    """Prints what changed in the session since the last view."""

    def __init__(self, formatter: SessionFormatter):
        self._formatter = formatter
        self._thread_id: str | None = None
        self._printed: set[str] = set()
        self._error: str | None = None
        self._typing: frozenset[str] = frozenset()
        self._notified: set[str] = set()

    def __call__(self, view: SessionView) -> None:
        thread_id = view.thread.id if view.thread else None
        if thread_id != self._thread_id:
            self._thread_id = thread_id
            self._printed = set()
            self._typing = frozenset()

        for message in view.messages:
            if message.id in self._printed:
                continue
            self._printed.add(message.id)
            print(self._formatter.format_message(message))

        if view.error != self._error:
            self._error = view.error
            if view.error:
                print(f"{_LINE_PREFIX}! {view.error}")

        if view.typing_users != self._typing:
            self._typing = view.typing_users
            if view.typing_users:
                print(f"{_LINE_PREFIX}{', '.join(sorted(view.typing_users))} typing...")

        for notification in view.notifications:
            if notification.id in self._notified:
                continue
            self._notified.add(notification.id)
            print(f"{_LINE_PREFIX}[{notification.title}] {notification.message}")


def _parse_new_args(args: str) -> tuple[str, int | None, str | None]:
    parts = args.split()
    plate = parts[0]
    km: int | None = None
    rest = parts[1:]
    if rest and rest[0].isdigit():
        km = int(rest[0])
        rest = rest[1:]
    return plate, km, " ".join(rest) or None


def _build_router(store: SessionStore, formatter: SessionFormatter) -> CommandRouter:
    async def on_help() -> None:
        for line in _HELP_LINES:
            print(f"{_LINE_PREFIX}{line}")

    async def on_open(args: str) -> None:
        if not args:
            print(f"{_LINE_PREFIX}Usage: /open <thread id>")
            return
        thread = await store.open_thread(args)
        if thread is None:
            return
        for line in formatter.format_thread_header_lines(thread, message_count=len(store.messages)):
            print(line)

    async def on_new(args: str) -> None:
        if not args:
            print(f"{_LINE_PREFIX}Usage: /new <plate> [km] [error codes]")
            return
        plate, km, error_codes = _parse_new_args(args)
        try:
            thread = await store.create_session(plate, vehicle_km=km, error_codes=error_codes)
        except (ApiError, ValueError) as ex:
            print(f"{_LINE_PREFIX}! {describe_failure(ex, str(ex))}")
            return
        print(f"{_LINE_PREFIX}Started consultation for {thread.license_plate} [{formatter.short_id(thread.id)}]")

    async def on_list(args: str) -> None:
        filters = ThreadFilters()
        if args:
            if not args.isdigit():
                print(f"{_LINE_PREFIX}Usage: /list [limit]")
                return
            filters.limit = int(args)
        try:
            page = await store.list_threads(filters)
        except ApiError as ex:
            print(f"{_LINE_PREFIX}! {ex.user_message('Failed to load consultations')}")
            return
        if not page.threads:
            print(f"{_LINE_PREFIX}No consultations found.")
            return
        print(f"{_LINE_PREFIX}Consultations ({len(page.threads)} of {page.total}):")
        active_id = store.thread.id if store.thread else None
        for thread in page.threads:
            print(formatter.format_thread_list_entry(thread, active_thread_id=active_id))

    async def on_status(args: str) -> None:
        parts = args.split()
        if not parts or parts[0] not in THREAD_STATUSES:
            print(f"{_LINE_PREFIX}Usage: /status <{'|'.join(THREAD_STATUSES)}> [resolved|unresolved]")
            return
        is_resolved: bool | None = None
        if len(parts) > 1:
            is_resolved = parts[1] == "resolved"
        if store.thread is None:
            print(f"{_LINE_PREFIX}No consultation open.")
            return
        await store.update_thread_status(parts[0], is_resolved)

    async def on_delete() -> None:
        if store.thread is None:
            print(f"{_LINE_PREFIX}No consultation open.")
            return

        async def confirm(prompt: str) -> bool:
            answer = await asyncio.to_thread(input, f"{prompt} [y/N] ")
            return answer.strip().lower() in {"y", "yes"}

        await store.delete_thread(confirm)

    async def on_usage() -> None:
        view = store.view
        lines = formatter.format_usage_lines(
            view.token_usage,
            estimated_tokens=view.estimated_tokens,
            thread=view.thread,
        )
        for line in lines:
            print(line)

    async def on_dismiss() -> None:
        store.clear_error()
        for notification in store.view.notifications:
            store.dismiss_notification(notification.id)

    def on_unknown(command: str) -> None:
        print(f"{_LINE_PREFIX}Unknown command: {command} (try /help)")

    return CommandRouter(
        on_help=on_help,
        on_open=on_open,
        on_new=on_new,
        on_list=on_list,
        on_status=on_status,
        on_delete=on_delete,
        on_usage=on_usage,
        on_dismiss=on_dismiss,
        on_unknown=on_unknown,
    )


async def main() -> None:
    load_dotenv()

    app = parse_app_config(load_json_config())
    env = resolve_runtime_env()
    if not env.access_token:
        print(f"{env.access_token_env_var} environment variable is required.", file=sys.stderr)
        sys.exit(1)

    runtime = await bootstrap_runtime(app, env)
    store = runtime.store
    formatter = SessionFormatter(line_prefix=_LINE_PREFIX)
    console = ConsoleView(formatter)
    store.subscribe(console)
    router = _build_router(store, formatter)

    print("diag-session (type 'exit' to quit, '/help' for commands)")
    print(f"API: {app.api_base_url}")
    if app.workshop_id:
        print(f"Workshop: {app.workshop_id}")
    else:
        print("Workshop: none (set WorkshopId in config.json to start consultations)")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    try:
        while True:
            try:
                user_input = await asyncio.to_thread(input, "you> ")
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()

            if trimmed in ("exit", "quit"):
                break

            if not trimmed:
                continue

            try:
                if await router.try_handle(trimmed):
                    continue
                if store.thread is None:
                    print(f"{_LINE_PREFIX}Open or start a consultation first (/open, /new).")
                    continue
                await store.send_message(trimmed)
            except Exception as ex:
                logger.error(f"Unhandled error: {ex}")
    finally:
        await runtime.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
