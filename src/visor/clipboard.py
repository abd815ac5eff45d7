"""Host clipboard access for paste/copy in the terminal panel."""

from __future__ import annotations

import asyncio
from typing import Protocol

import pyperclip


class Clipboard(Protocol):
    async def read_text(self) -> str: ...

    async def write_text(self, text: str) -> None: ...


class HostClipboard:
    """System clipboard through pyperclip.

    pyperclip shells out to pbcopy/xclip/wl-copy, so calls run in a worker
    thread. Missing clipboard tools surface as ``pyperclip.PyperclipException``.
    """

    async def read_text(self) -> str:
        text = await asyncio.to_thread(pyperclip.paste)
        return text or ""

    async def write_text(self, text: str) -> None:
        await asyncio.to_thread(pyperclip.copy, text)
