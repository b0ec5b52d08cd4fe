from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List

from .errors import AuditWriteFailed


@dataclass
class LedgerOutcome:
    """Result of a successful ledger command."""

    value: Any
    warnings: List[AuditWriteFailed] = field(default_factory=list)
    replayed: bool = False

    def warn(self, warning: AuditWriteFailed | None) -> None:
        if warning is not None:
            self.warnings.append(warning)

    def warnings_payload(self) -> list[dict]:
        return [warning.as_dict() for warning in self.warnings]
