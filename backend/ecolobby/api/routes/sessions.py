from fastapi import APIRouter, Depends, HTTPException, status

from ecolobby.api.deps import get_registry
from ecolobby.schemas.session import SessionSummaryRead
from ecolobby.services.session_registry import SessionRegistry

router = APIRouter()


@router.get("", response_model=list[SessionSummaryRead])
def list_sessions(registry: SessionRegistry = Depends(get_registry)) -> list[SessionSummaryRead]:
    return [SessionSummaryRead(**summary.to_payload()) for summary in registry.list_summaries()]


@router.get("/{session_id}", response_model=SessionSummaryRead)
def read_session(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> SessionSummaryRead:
    summary = registry.summary(session_id)
    if not summary:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return SessionSummaryRead(**summary.to_payload())
