from clipboard.base import ClipboardAdapter
from clipboard.factory import get_clipboard, get_clipboard_class
from clipboard.memory import InMemoryClipboard
from clipboard.watcher import ClipboardWatcher

__all__ = [
    'ClipboardAdapter',
    'ClipboardWatcher',
    'InMemoryClipboard',
    'get_clipboard',
    'get_clipboard_class',
]
