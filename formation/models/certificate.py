"""Completion certificates, earned by finishing whole modules.

A tier is issued at most once per learner and points at the module
whose completion was most recent when it was issued.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal
from uuid import UUID, uuid4

CertificateTier = Literal["BRONZE", "SILVER", "GOLD"]

# tier -> completed modules required, lowest tier first
REQUIRED_MODULES: dict[str, int] = {"BRONZE": 3, "SILVER": 6, "GOLD": 9}


@dataclass(frozen=True, slots=True)
class Certificate:
    id: UUID
    user_id: str
    tier: str
    module_id: UUID
    number: str
    issued_at: int

    @staticmethod
    def new(*, user_id: str, tier: str, module_id: UUID, issued_at: int) -> Certificate:
        cert_id = uuid4()
        return Certificate(
            id=cert_id,
            user_id=user_id,
            tier=tier,
            module_id=module_id,
            number=f"CERT-{tier}-{issued_at}-{cert_id.hex[:8].upper()}",
            issued_at=issued_at,
        )
