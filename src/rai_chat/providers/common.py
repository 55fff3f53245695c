from __future__ import annotations


def to_plain_messages(messages: list[dict]) -> list[dict]:
    """Keep only user/assistant turns with non-empty text content."""
    out: list[dict] = []
    for msg in messages:
        role = msg.get("role")
        content = msg.get("content")
        if role not in ("user", "assistant"):
            continue
        if not isinstance(content, str) or not content.strip():
            continue
        out.append({"role": role, "content": content})
    return out
