"""WhatsApp JID normalization shared by the normalizer, policy and oracle."""

from __future__ import annotations

USER_SERVER = "s.whatsapp.net"
GROUP_SERVER = "g.us"


def normalize_jid(value: str | None) -> str:
    """Return the canonical form of one JID.

    ``"123:4@s.whatsapp.net"`` (multi-device suffix) becomes
    ``"123@s.whatsapp.net"``. Empty input yields ``""``.
    """
    token = (value or "").strip().lower()
    if not token:
        return ""
    if "@" not in token:
        return token.split(":", 1)[0]
    user, server = token.split("@", 1)
    return f"{user.split(':', 1)[0]}@{server}"


def phone_to_jid(number: str | None) -> str:
    """Turn a bare phone number into a user JID; JIDs pass through normalized."""
    token = (number or "").strip()
    if not token:
        return ""
    if "@" in token:
        return normalize_jid(token)
    digits = token.lstrip("+").replace(" ", "").replace("-", "")
    return f"{digits}@{USER_SERVER}"


def is_group_jid(jid: str | None) -> bool:
    return bool(jid) and str(jid).endswith(f"@{GROUP_SERVER}")


def display_jid(jid: str) -> str:
    """Short user part for chat output (``"123@s.whatsapp.net"`` -> ``"123"``)."""
    return jid.split("@", 1)[0]
