from __future__ import annotations

from enum import Enum
from typing import List


class GuestCardsError(Exception):
    """Base error for the personalization pipeline."""


class ValidationError(GuestCardsError):
    """Input rejected before any job runs."""


class LayoutError(ValidationError):
    def __init__(self, errors: List[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class NameListError(ValidationError):
    pass


class TemplateError(ValidationError):
    pass


class EmptyBatchError(GuestCardsError):
    """Batch precondition failed; no jobs were created."""


class NoRecipientsError(EmptyBatchError):
    pass


class NoEnabledPagesError(EmptyBatchError):
    pass


class RenderFailure(str, Enum):
    UNSUPPORTED_GLYPH = "unsupported_glyph"
    MALFORMED_TEMPLATE = "malformed_template"
    OUT_OF_MEMORY = "out_of_memory"
    INTERNAL = "internal"


class RenderError(GuestCardsError):
    def __init__(self, reason: RenderFailure, detail: str = "") -> None:
        self.reason = RenderFailure(reason)
        self.detail = detail
        message = self.reason.value if not detail else f"{self.reason.value}: {detail}"
        super().__init__(message)
