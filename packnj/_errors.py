"""
_errors.py
==========
Exception taxonomy for packnj.

Every exception derives from ``PackNJError`` and from the builtin that a
caller would naturally catch for the same failure, so ``except ValueError``
and ``except KeyError`` keep working alongside the specific classes.
"""


class PackNJError(Exception):
    """Base exception for packnj errors."""


class MalformedTreeError(PackNJError, ValueError):
    """A structural tree invariant is violated (unary node, cyclic parents)."""


class UnknownLabelError(PackNJError, KeyError):
    """A requested taxon label is not present in the tree."""

    def __init__(self, label: str, message: str = None):
        self.label = label
        super().__init__(message or f"No leaf with label '{label}' found in tree.")

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable.
        return str(self.args[0])


class InvalidTreeStateError(PackNJError, RuntimeError):
    """An operation's structural precondition is unmet (rooted vs. unrooted)."""


class DimensionMismatchError(PackNJError, ValueError):
    """A distance matrix is not square or disagrees with its label list."""
