"""Completion certificate endpoints.

  GET  /v1/certificates   issued certificates and tiers ready to claim
  POST /v1/certificates   claim a tier (201); 403 when not earned, 409 when claimed
"""

from __future__ import annotations

from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from formation.api.dependencies import http_error, require_user
from formation.models.certificate import Certificate
from formation.services.certificates import certificate_service
from formation.services.errors import ProgressionError

router = APIRouter(prefix="/v1/certificates", tags=["certificates"])


class CertificateIssueIn(BaseModel):
    tier: Literal["BRONZE", "SILVER", "GOLD"]


class CertificateOut(BaseModel):
    id: UUID
    tier: str
    number: str
    module_id: UUID
    issued_at: int


class EligibleTierOut(BaseModel):
    tier: str
    required_modules: int


class CertificatesOut(BaseModel):
    certificates: list[CertificateOut]
    eligible: list[EligibleTierOut]
    completed_modules: int


def _certificate_out(c: Certificate) -> CertificateOut:
    return CertificateOut(
        id=c.id,
        tier=c.tier,
        number=c.number,
        module_id=c.module_id,
        issued_at=c.issued_at,
    )


@router.get("", response_model=CertificatesOut)
async def list_certificates(
    user_id: Annotated[str, Depends(require_user)],
) -> CertificatesOut:
    try:
        summary = await certificate_service.summary(user_id)
    except ProgressionError as e:
        raise http_error(e) from None

    return CertificatesOut(
        certificates=[_certificate_out(c) for c in summary.certificates],
        eligible=[
            EligibleTierOut(tier=t.tier, required_modules=t.required_modules)
            for t in summary.eligible
        ],
        completed_modules=summary.completed_modules,
    )


@router.post("", response_model=CertificateOut, status_code=status.HTTP_201_CREATED)
async def issue_certificate(
    body: CertificateIssueIn,
    user_id: Annotated[str, Depends(require_user)],
) -> CertificateOut:
    try:
        certificate = await certificate_service.issue(user_id, body.tier)
    except ProgressionError as e:
        raise http_error(e) from None
    return _certificate_out(certificate)
