"""Transport that renders outbound traffic on a rich console."""

from __future__ import annotations

from typing import Any

from rich.console import Console


class ConsoleTransport:
    """Prints replies instead of delivering them; used by ``relaybot simulate``."""

    def __init__(self, console: Console | None = None, *, show_presence: bool = False) -> None:
        self._console = console or Console()
        self._show_presence = show_presence
        self.sent: list[tuple[str, dict[str, Any]]] = []

    async def send_message(self, target: str, content: dict[str, Any], options: dict[str, Any] | None = None) -> Any:
        self.sent.append((target, content))
        text = content.get("text", "")
        quoted = " [dim](quoted)[/dim]" if content.get("quoted") else ""
        self._console.print(f"[cyan]→ {target}[/cyan]{quoted}")
        self._console.print(text, markup=False, highlight=False)
        return {"key": {"remoteJid": target, "id": f"sim-{len(self.sent)}", "fromMe": True}}

    async def send_presence_update(self, state: str, target: str) -> None:
        if self._show_presence:
            self._console.print(f"[dim]presence {state} → {target}[/dim]")

    async def mark_read(self, keys: list[Any]) -> None:
        if self._show_presence:
            ids = ", ".join(str((key or {}).get("id")) for key in keys)
            self._console.print(f"[dim]read {ids}[/dim]")
