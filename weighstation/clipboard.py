"""Placing measurement results on the system clipboard."""

from __future__ import annotations

from types import ModuleType
from typing import Optional

try:
    import tkinter as _tk
except ImportError:  # Python built without Tk support
    _tk = None

tkinter: Optional[ModuleType] = _tk


class ClipboardError(Exception):
    """The clipboard could not be written."""


def copy_to_clipboard(text: str) -> None:
    """Replace the clipboard contents with ``text``."""
    if tkinter is None:
        raise ClipboardError("буфер обмена недоступен: tkinter не установлен")

    try:
        root = tkinter.Tk()
    except tkinter.TclError as exc:
        raise ClipboardError(f"буфер обмена недоступен: {exc}") from exc

    try:
        root.withdraw()
        root.clipboard_clear()
        root.clipboard_append(text)
        root.update()
    except tkinter.TclError as exc:
        raise ClipboardError(f"ошибка записи в буфер обмена: {exc}") from exc
    finally:
        root.destroy()