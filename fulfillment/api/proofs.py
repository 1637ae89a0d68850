"""
Proofs API - proof creation (admin) and the customer-facing approval link (public).

The public routes are authenticated by the approval token alone and do not
take the admin key.
"""
from datetime import datetime

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from fulfillment.api.deps import verify_admin_key
from fulfillment.api.errors import to_http_exception
from fulfillment.database import get_db
from fulfillment.exceptions import FulfillmentError
from fulfillment.schemas.core import (
    ProofCreate, ProofPublicResponse, ProofRespondRequest, ProofResponse, ProofStatsResponse
)
from fulfillment.services.proof_service import ProofService, RequesterMeta

router = APIRouter(prefix="/proofs", tags=["proofs"], dependencies=[Depends(verify_admin_key)])
public_router = APIRouter(prefix="/proofs/public", tags=["proofs-public"])


@router.post("", response_model=ProofResponse, status_code=201)
def create_proof(data: ProofCreate, db: Session = Depends(get_db)):
    try:
        return ProofService(db).create_proof(**data.model_dump())
    except FulfillmentError as e:
        raise to_http_exception(e)


@router.get("/stats", response_model=ProofStatsResponse)
def get_proof_stats(db: Session = Depends(get_db)):
    return ProofService(db).get_proof_stats()


def _public_view(proof) -> ProofPublicResponse:
    view = ProofPublicResponse.model_validate(proof)
    view.is_expired = datetime.utcnow() > proof.expires_at
    return view


@public_router.get("/{token}", response_model=ProofPublicResponse)
def get_public_proof(token: str, db: Session = Depends(get_db)):
    try:
        return _public_view(ProofService(db).get_proof_by_token(token))
    except FulfillmentError as e:
        raise to_http_exception(e)


@public_router.post("/{token}/respond", response_model=ProofPublicResponse)
def respond_to_proof(token: str, data: ProofRespondRequest, request: Request, db: Session = Depends(get_db)):
    requester = RequesterMeta(
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    try:
        proof = ProofService(db).respond_to_proof(token, data.decision, notes=data.notes, requester=requester)
    except FulfillmentError as e:
        raise to_http_exception(e)
    return _public_view(proof)
