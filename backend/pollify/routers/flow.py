from typing import List

from fastapi import APIRouter, Depends, Request

from pollify import services
from pollify.database import get_store
from pollify.routers.responses import respondent_identity
from pollify.schemas import AnswersIn, NextStep, NextStepIn, Question, Response, SessionAnswerIn, SessionView
from pollify.services import SessionRegistry, get_sessions
from pollify.store import Store

router = APIRouter(prefix="/api/forms", tags=["flow"])


@router.post("/{form_id}/visible", response_model=List[Question])
async def visible_questions(form_id: str, body: AnswersIn, store: Store = Depends(get_store)):
    """Ordered questions to render for the given answers."""
    return await services.visible_questions(store, form_id, body.answers)


@router.post("/{form_id}/next", response_model=NextStep)
async def next_step(form_id: str, body: NextStepIn, store: Store = Depends(get_store)):
    return await services.next_step(store, form_id, body.from_question_id, body.answers)


@router.post("/{form_id}/sessions", response_model=SessionView)
async def start_session(
    form_id: str,
    request: Request,
    store: Store = Depends(get_store),
    sessions: SessionRegistry = Depends(get_sessions),
):
    session = await services.start_session(store, sessions, form_id, respondent_identity(request))
    return session.view()


@router.get("/{form_id}/sessions/{session_id}", response_model=SessionView)
async def get_session(form_id: str, session_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    return sessions.get(session_id, form_id).view()


@router.post("/{form_id}/sessions/{session_id}/answer", response_model=SessionView)
async def answer(
    form_id: str,
    session_id: str,
    body: SessionAnswerIn,
    sessions: SessionRegistry = Depends(get_sessions),
):
    session = sessions.get(session_id, form_id)
    session.answer(body.question_id, body.answer)
    return session.view()


@router.post("/{form_id}/sessions/{session_id}/advance", response_model=SessionView)
async def advance(form_id: str, session_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    session = sessions.get(session_id, form_id)
    session.advance()
    return session.view()


@router.post("/{form_id}/sessions/{session_id}/retreat", response_model=SessionView)
async def retreat(form_id: str, session_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    session = sessions.get(session_id, form_id)
    session.retreat()
    return session.view()


@router.post("/{form_id}/sessions/{session_id}/submit", response_model=Response)
async def submit(
    form_id: str,
    session_id: str,
    request: Request,
    store: Store = Depends(get_store),
    sessions: SessionRegistry = Depends(get_sessions),
):
    return await services.submit_session(
        store,
        sessions,
        form_id,
        session_id,
        completion_key=respondent_identity(request),
        user_agent=request.headers.get("user-agent"),
    )
