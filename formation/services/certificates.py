"""Completion certificates.

  BRONZE  3 completed modules
  SILVER  6 completed modules
  GOLD    9 completed modules

Eligibility is read from the learner's module progress only. Issuing
runs in the learner's unit of work, so the eligibility check and the
insert see the same progress, and the (user, tier) key makes a second
issue of the same tier a conflict instead of a duplicate.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Collection
from dataclasses import dataclass

from formation.core.metrics import CERTIFICATES_ISSUED
from formation.models.certificate import REQUIRED_MODULES, Certificate
from formation.repos.unit_of_work import Store, store
from formation.services.errors import (
    AlreadyIssuedError,
    InvalidInputError,
    NotEligibleError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EligibleTier:
    tier: str
    required_modules: int


@dataclass(frozen=True, slots=True)
class CertificateSummary:
    certificates: list[Certificate]
    eligible: list[EligibleTier]
    completed_modules: int


def eligible_tiers(completed_modules: int, issued: Collection[str]) -> list[EligibleTier]:
    """Tiers the learner has earned but not been issued yet, lowest first."""
    return [
        EligibleTier(tier=tier, required_modules=required)
        for tier, required in REQUIRED_MODULES.items()
        if completed_modules >= required and tier not in issued
    ]


class CertificateService:
    def __init__(self, store: Store) -> None:
        self._store = store

    async def summary(self, user_id: str) -> CertificateSummary:
        async with self._store.unit_of_work(user_id, exclusive=False) as uow:
            completed = len(await uow.progress.completed_module_ids(user_id))
            certificates = await uow.progress.list_certificates(user_id)
        certificates.sort(
            key=lambda c: (c.issued_at, REQUIRED_MODULES[c.tier]), reverse=True
        )
        return CertificateSummary(
            certificates=certificates,
            eligible=eligible_tiers(completed, {c.tier for c in certificates}),
            completed_modules=completed,
        )

    async def issue(self, user_id: str, tier: str) -> Certificate:
        """Issue ``tier`` to the learner.

        Raises InvalidInputError for an unknown tier, NotEligibleError
        when too few modules are completed, AlreadyIssuedError when the
        tier was issued before.
        """
        required = REQUIRED_MODULES.get(tier)
        if required is None:
            raise InvalidInputError(f"unknown certificate tier {tier!r}")

        async with self._store.unit_of_work(user_id) as uow:
            completed = len(await uow.progress.completed_module_ids(user_id))
            latest = await uow.progress.latest_completed_module(user_id)
            if completed < required or latest is None:
                raise NotEligibleError(
                    f"Complete {required} modules to earn the {tier} certificate"
                )
            certificate = Certificate.new(
                user_id=user_id,
                tier=tier,
                module_id=latest.module_id,
                issued_at=int(datetime.datetime.now(datetime.UTC).timestamp()),
            )
            if not await uow.progress.insert_certificate(certificate):
                raise AlreadyIssuedError(tier)

        CERTIFICATES_ISSUED.labels(tier=tier).inc()
        logger.info(
            "Certificate issued  user_id=%s tier=%s number=%s",
            user_id,
            tier,
            certificate.number,
        )
        return certificate


certificate_service = CertificateService(store)
