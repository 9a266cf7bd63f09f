"""Exception types raised by the state store and model factories."""

from __future__ import annotations


class InvalidArgument(ValueError):
    """A caller passed a value the store cannot work with."""


class IndexOutOfRange(IndexError):
    """A period index fell outside [0, len(periods))."""

    def __init__(self, index: int, length: int):
        self.index = index
        self.length = length
        super().__init__(f"Invalid period index: {index} (periods: {length})")
