"""Nemeses the external fault schedule can invoke."""

from .recover import RecoverNemesis, RecoverResult

__all__ = [
    "RecoverNemesis",
    "RecoverResult",
]
