from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Union

from ..extensions import db


@dataclass(frozen=True)
class Active:
    pass


@dataclass(frozen=True)
class Retired:
    at: datetime


Lifecycle = Union[Active, Retired]


class RetirableMixin:
    """
    Soft-delete exposed as an explicit lifecycle.

    On disk this stays a nullable `deactivated_at` column so existing rows and
    queries keep working; code reads `lifecycle` / `is_active` instead of
    testing the column for NULL.
    """

    deactivated_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    @property
    def lifecycle(self) -> Lifecycle:
        if self.deactivated_at is None:
            return Active()
        return Retired(at=self.deactivated_at)

    @property
    def is_active(self) -> bool:
        return isinstance(self.lifecycle, Active)

    def retire(self, at: datetime) -> None:
        if self.deactivated_at is None:
            self.deactivated_at = at
