"""Text messages injected into the coaching session."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Optional

from live_coach.conversation.state import Suggestion
from live_coach.transcript.models import TurnHistoryEntry


def build_context_message(body: str, suggestion: Optional[Suggestion] = None) -> str:
    """
    <context> block with the speaker-labelled transcript, followed by the last
    suggestion (if any) so the AI remembers what it proposed.
    """
    message = f"<context>\n{body.strip()}\n</context>"
    if suggestion is not None:
        at = datetime.fromtimestamp(suggestion.timestamp / 1000.0, tz=timezone.utc).isoformat()
        message += (
            "\n<lastSuggestion>\n"
            f'You suggested: "{suggestion.text}"\n'
            f"Turn ID: {suggestion.turn_id}\n"
            f"Time: {at}\n"
            "</lastSuggestion>"
        )
    return message


def build_relevant_history_message(context: str) -> str:
    return f"<relevantHistory>\n{context.strip()}\n</relevantHistory>"


def build_reconnection_context(turn_history: Iterable[TurnHistoryEntry]) -> Optional[str]:
    """Numbered recent turns for a freshly reconnected session. None when there is nothing to replay."""
    lines = [
        f"[{turn.speaker}]: {turn.text.strip()}" if turn.speaker else turn.text.strip()
        for turn in turn_history
        if turn.text and turn.text.strip()
    ]
    if not lines:
        return None
    numbered = "\n".join(f"{i}. {line}" for i, line in enumerate(lines, start=1))
    return (
        "[Connection restored - Recent context]\n"
        f"{numbered}\n\n"
        "Please continue providing assistance based on the above context."
    )
