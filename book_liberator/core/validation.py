"""
Preconditions that must hold before any decrypt work starts for an item.
"""

from dataclasses import dataclass
from typing import Optional

from book_liberator.models.book import AcquisitionItem
from book_liberator.utils.formatting import title_for_errors


@dataclass(frozen=True)
class ValidationResult:
    passed: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.passed


class ValidationGate:
    """Fail-fast checks of the account data a license request depends on."""

    REQUIRED_FIELDS = (("Account", "account"), ("Locale", "locale"))

    def check(self, item: AcquisitionItem) -> ValidationResult:
        for label, attr in self.REQUIRED_FIELDS:
            value = getattr(item, attr, None)
            if not value or not value.strip():
                return ValidationResult(False, self._error_message(item, label))
        return ValidationResult(True)

    @staticmethod
    def _error_message(item: AcquisitionItem, field: str) -> str:
        return (
            f"{title_for_errors(item)}\n"
            f"Cannot download book. {field} is not known. "
            "Try re-importing the account which owns this book."
        )
