from fastapi import APIRouter, Depends, HTTPException

from pollify import services
from pollify.database import get_store
from pollify.schemas import Form, FormIn, NavigationRule, VisibilityRule
from pollify.store import Store

router = APIRouter(prefix="/api/forms", tags=["forms"])


@router.get("")
async def list_forms(store: Store = Depends(get_store)):
    """Get a list of all forms with basic info."""
    items = []
    for form in await store.list_forms():
        items.append({
            "id": form.id,
            "title": form.title,
            "isPublic": form.is_public,
            "createdAt": form.created_at,
            "questionCount": len(form.questions),
            "responseCount": await store.count_responses(form.id),
        })
    return items


@router.post("")
async def upsert_form(form: FormIn, store: Store = Depends(get_store)):
    saved = await services.upsert_form(store, form)
    return {"status": "ok", "formId": saved.id}


@router.get("/{form_id}", response_model=Form)
async def get_form(form_id: str, store: Store = Depends(get_store)):
    form = await store.get_form(form_id)
    if not form:
        raise HTTPException(status_code=404, detail="Form not found")
    return form.model_copy(update={"questions": form.ordered_questions()})


@router.delete("/{form_id}")
async def delete_form(form_id: str, store: Store = Depends(get_store)):
    """Delete a form and all its responses."""
    if not await store.delete_form(form_id):
        raise HTTPException(status_code=404, detail="Form not found")
    return {"status": "ok", "formId": form_id}


@router.delete("/{form_id}/questions/{question_id}")
async def delete_question(form_id: str, question_id: str, store: Store = Depends(get_store)):
    await services.delete_question(store, form_id, question_id)
    return {"status": "ok", "questionId": question_id}


@router.post("/{form_id}/logic-rules/visibility")
async def add_visibility_rule(form_id: str, rule: VisibilityRule, store: Store = Depends(get_store)):
    await services.add_visibility_rule(store, form_id, rule)
    return {"status": "ok", "ruleId": rule.id}


@router.put("/{form_id}/logic-rules/visibility/{rule_id}")
async def update_visibility_rule(
    form_id: str, rule_id: str, rule: VisibilityRule, store: Store = Depends(get_store)
):
    form = await services.load_form(store, form_id)
    if all(r.id != rule_id for r in form.visibility_rules):
        raise HTTPException(status_code=404, detail="Rule not found")
    await services.add_visibility_rule(store, form_id, rule.model_copy(update={"id": rule_id}))
    return {"status": "ok", "ruleId": rule_id}


@router.post("/{form_id}/logic-rules/navigation")
async def add_navigation_rule(form_id: str, rule: NavigationRule, store: Store = Depends(get_store)):
    await services.add_navigation_rule(store, form_id, rule)
    return {"status": "ok", "ruleId": rule.id}


@router.put("/{form_id}/logic-rules/navigation/{rule_id}")
async def update_navigation_rule(
    form_id: str, rule_id: str, rule: NavigationRule, store: Store = Depends(get_store)
):
    form = await services.load_form(store, form_id)
    if all(r.id != rule_id for r in form.navigation_rules):
        raise HTTPException(status_code=404, detail="Rule not found")
    await services.add_navigation_rule(store, form_id, rule.model_copy(update={"id": rule_id}))
    return {"status": "ok", "ruleId": rule_id}


@router.delete("/{form_id}/logic-rules/{rule_id}")
async def delete_rule(form_id: str, rule_id: str, store: Store = Depends(get_store)):
    await services.delete_rule(store, form_id, rule_id)
    return {"status": "ok", "ruleId": rule_id}
