from __future__ import annotations

from diag_session.models import Message, Thread, TokenUsageSnapshot


def _amount(value: int | None) -> str:
    return "n/a" if value is None else f"{value:,}"


class SessionFormatter:
    def __init__(self, *, line_prefix: str, short_id_len: int = 8):
        self._line_prefix = line_prefix
        self._short_id_len = short_id_len

    def short_id(self, value: str) -> str:
        if len(value) <= self._short_id_len:
            return value
        return value[: self._short_id_len]

    def format_thread_list_entry(self, thread: Thread, *, active_thread_id: str | None) -> str:
        marker = "*" if thread.id == active_thread_id else " "
        title = thread.title or thread.license_plate
        last = thread.last_message_at or "-"
        resolved = "yes" if thread.is_resolved else "no"
        return (
            f"{self._line_prefix}{marker} {title} [{self.short_id(thread.id)}] (id={thread.id}) "
            f"(plate={thread.license_plate}, status={thread.status}, resolved={resolved}, "
            f"tokens={thread.total_tokens:,}, last={last})"
        )

    def format_thread_header_lines(self, thread: Thread, *, message_count: int) -> list[str]:
        lines = [f"{self._line_prefix}Thread {thread.license_plate} [{self.short_id(thread.id)}]"]
        lines.append(
            f"{self._line_prefix}- Status: {thread.status} | "
            f"Resolved: {'yes' if thread.is_resolved else 'no'}"
        )
        lines.append(f"{self._line_prefix}- Messages: {message_count} | Tokens: {thread.total_tokens:,}")
        if thread.vehicle_km is not None:
            lines.append(f"{self._line_prefix}- Odometer: {thread.vehicle_km:,} km")
        if thread.error_codes:
            lines.append(f"{self._line_prefix}- Error codes: {thread.error_codes}")
        return lines

    def format_message(self, message: Message) -> str:
        speaker = "you" if message.role == "user" else "assistant"
        return f"{speaker}> {message.content}"

    def format_usage_lines(
        self,
        snapshot: TokenUsageSnapshot | None,
        *,
        estimated_tokens: int,
        thread: Thread | None,
    ) -> list[str]:
        lines = [f"{self._line_prefix}Token usage:"]
        lines.append(f"{self._line_prefix}- Last estimate: {estimated_tokens:,}")
        if thread is not None:
            lines.append(f"{self._line_prefix}- This thread: {thread.total_tokens:,}")
        if snapshot is None:
            lines.append(f"{self._line_prefix}- No usage reported yet")
            return lines
        if snapshot.user is not None:
            user = snapshot.user
            if user.is_unlimited:
                lines.append(f"{self._line_prefix}- You: {user.daily_used:,} used today (unlimited)")
            else:
                lines.append(
                    f"{self._line_prefix}- You: {user.daily_used:,} used / {_amount(user.daily_limit)} daily "
                    f"({_amount(user.daily_remaining)} remaining)"
                )
        if snapshot.workshop is not None:
            workshop = snapshot.workshop
            lines.append(
                f"{self._line_prefix}- Workshop: {workshop.monthly_used:,} used / {_amount(workshop.monthly_limit)} monthly "
                f"({_amount(workshop.monthly_remaining)} remaining)"
            )
        return lines
