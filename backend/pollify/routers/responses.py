from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from pollify import services
from pollify.database import get_store
from pollify.schemas import FormMetrics, Response, ResponseIn
from pollify.store import Store

router = APIRouter(prefix="/api/forms", tags=["responses"])


def respondent_identity(request: Request) -> str:
    """Completion identity: explicit respondent id, else forwarded address, else client host."""
    explicit = request.headers.get("x-respondent-id")
    if explicit:
        return explicit.strip()
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


@router.post("/{form_id}/responses", response_model=Response)
async def submit_response(
    form_id: str,
    payload: ResponseIn,
    request: Request,
    store: Store = Depends(get_store),
):
    return await services.submit_response(
        store,
        form_id,
        payload,
        completion_key=respondent_identity(request),
        user_agent=request.headers.get("user-agent"),
    )


@router.get("/{form_id}/responses", response_model=List[Response])
async def list_responses(form_id: str, store: Store = Depends(get_store)):
    """Return responses for a form (most recent first)."""
    await services.load_form(store, form_id)
    return await store.list_responses(form_id)


@router.get("/{form_id}/responses/check")
async def check_response(
    form_id: str,
    request: Request,
    identity: Optional[str] = Query(None, description="Completion identity; defaults to the caller's"),
    store: Store = Depends(get_store),
):
    await services.load_form(store, form_id)
    key = identity or respondent_identity(request)
    return {"exists": await store.has_response(form_id, key)}


@router.delete("/{form_id}/responses/{response_id}")
async def delete_response(form_id: str, response_id: str, store: Store = Depends(get_store)):
    """Delete a single response by id."""
    if not await store.delete_response(form_id, response_id):
        raise HTTPException(status_code=404, detail="Response not found")
    return {"status": "ok", "deletedId": response_id}


@router.get("/{form_id}/behavioral-analysis", response_model=FormMetrics)
async def behavioral_analysis(form_id: str, store: Store = Depends(get_store)):
    return await services.form_metrics(store, form_id)
