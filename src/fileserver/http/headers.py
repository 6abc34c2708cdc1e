"""
Response header mapping.

HTTP header names are case-insensitive, but the name we send should keep
the spelling it was set with. Headers stores both:

    headers["Content-Type"] = "text/html"
    headers["content-type"]          # → "text/html"
    list(headers)                    # → ["Content-Type"]

Setting an existing name replaces the value in place, so names stay unique
and the original insertion order is kept.
"""

from collections.abc import Iterator, Mapping, MutableMapping
from typing import Iterable, Optional, Tuple


class Headers(MutableMapping):
    """Insertion-ordered, case-insensitive mapping of header name → value."""

    def __init__(self, items: Optional[Iterable[Tuple[str, str]]] = None, **kwargs: str):
        self._data: dict[str, tuple[str, str]] = {}
        if items is not None:
            self.update(items)
        if kwargs:
            self.update(kwargs)

    def __getitem__(self, name: str) -> str:
        return self._data[name.lower()][1]

    def __setitem__(self, name: str, value: str) -> None:
        key = name.lower()
        if key in self._data:
            # Keep the first spelling and position.
            name = self._data[key][0]
        self._data[key] = (name, value)

    def __delitem__(self, name: str) -> None:
        del self._data[name.lower()]

    def __iter__(self) -> Iterator[str]:
        return (name for name, _ in self._data.values())

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        return name.lower() in self._data

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Headers):
            return list(self.items()) == list(other.items())
        if isinstance(other, Mapping):
            return dict(self.items()) == dict(other.items())
        return NotImplemented

    def __repr__(self) -> str:
        return f"{type(self).__name__}({list(self.items())!r})"

    def copy(self) -> "Headers":
        return Headers(self.items())
