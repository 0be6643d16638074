"""
Fulfillment Document API Endpoints

Move picking slips, job cards, transfer requests and purchase orders
through their lifecycles. Stock effects and the order's derived status
follow each transition.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.v1.deps import get_actor, get_db
from app.schemas.common import ERROR_RESPONSES
from app.schemas.orchestration import (
    DocumentTransitionRequest,
    DocumentTransitionResponse,
    DocumentType,
)
from app.services.document_service import DocumentService

router = APIRouter(responses=ERROR_RESPONSES)


@router.post(
    "/{document_type}/{document_id}/transition",
    response_model=DocumentTransitionResponse,
)
def transition_document(
    document_type: DocumentType,
    document_id: int,
    request: DocumentTransitionRequest,
    db: Session = Depends(get_db),
    actor: Optional[str] = Depends(get_actor),
):
    return DocumentService(db).transition(
        document_type,
        document_id,
        request.status,
        actor=actor,
        notes=request.notes,
    )
