from collections.abc import Mapping
from typing import Any, Dict, Iterable, List, Tuple

MessageKey = Tuple[int, str, str]


def _field(message: Any, attr: str, alias: str, default):
    if isinstance(message, Mapping):
        value = message.get(alias, message.get(attr))
    else:
        value = getattr(message, attr, None)
    return default if value is None else value


def message_key(message: Any) -> MessageKey:
    """Composite identity of a message: (timestampSeconds, from, text)."""
    return (
        _field(message, "timestampSeconds", "timestampSeconds", 0),
        _field(message, "sender", "from", ""),
        _field(message, "text", "text", ""),
    )


def dedupe_messages(messages: Iterable[Any]) -> List[Any]:
    """Collapse messages sharing a key and order them by timestamp.

    Works on ChatMessage models and plain mappings alike. The last record seen
    for a key wins but keeps the slot of the first occurrence, so records with
    equal timestamps stay in input order. Applying it to its own output is a
    no-op.
    """
    merged: Dict[MessageKey, Any] = {}
    for message in messages or ():
        if message is None:
            continue
        merged[message_key(message)] = message
    return sorted(merged.values(), key=lambda m: message_key(m)[0])
