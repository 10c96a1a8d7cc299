"""
Value Objects доменного слоя.
"""

from .attempt_result import AttemptResult, AttemptStatus

__all__ = ["AttemptResult", "AttemptStatus"]
