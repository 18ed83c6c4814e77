"""
Persistence collaborators used by the engine.

`Store` is the combined form/response contract; `MemoryStore` keeps everything
in process (tests, local runs with STORE_BACKEND=memory) and `MongoStore` in
pollify.database is the production implementation.
"""

from typing import Dict, List, Optional, Protocol, Set, Tuple

from pollify.errors import DuplicateResponse
from pollify.schemas import Form, Response


class FormStore(Protocol):
    async def list_forms(self) -> List[Form]: ...

    async def get_form(self, form_id: str) -> Optional[Form]: ...

    async def save_form(self, form: Form) -> None: ...

    async def delete_form(self, form_id: str) -> bool: ...


class ResponseStore(Protocol):
    async def create_response(self, response: Response, unique: bool) -> None:
        """Append a response; with `unique` reject a second one for (form, identity)."""

    async def has_response(self, form_id: str, completion_key: str) -> bool: ...

    async def count_responses(self, form_id: str) -> int: ...

    async def list_responses(self, form_id: str) -> List[Response]: ...

    async def delete_response(self, form_id: str, response_id: str) -> bool: ...


class Store(FormStore, ResponseStore, Protocol):
    pass


class MemoryStore:
    def __init__(self):
        self._forms: Dict[str, Form] = {}
        self._responses: List[Response] = []
        self._unique_keys: Set[Tuple[str, str]] = set()

    async def list_forms(self) -> List[Form]:
        return [f.model_copy(deep=True) for f in sorted(self._forms.values(), key=lambda f: f.created_at, reverse=True)]

    async def get_form(self, form_id: str) -> Optional[Form]:
        form = self._forms.get(form_id)
        return form.model_copy(deep=True) if form is not None else None

    async def save_form(self, form: Form) -> None:
        self._forms[form.id] = form.model_copy(deep=True)

    async def delete_form(self, form_id: str) -> bool:
        if self._forms.pop(form_id, None) is None:
            return False
        self._responses = [r for r in self._responses if r.form_id != form_id]
        self._unique_keys = {k for k in self._unique_keys if k[0] != form_id}
        return True

    async def create_response(self, response: Response, unique: bool) -> None:
        key = (response.form_id, response.completion_key)
        if unique:
            if key in self._unique_keys:
                raise DuplicateResponse("a response for this respondent already exists")
            self._unique_keys.add(key)
        self._responses.append(response)

    async def has_response(self, form_id: str, completion_key: str) -> bool:
        return any(r.form_id == form_id and r.completion_key == completion_key for r in self._responses)

    async def count_responses(self, form_id: str) -> int:
        return sum(1 for r in self._responses if r.form_id == form_id)

    async def list_responses(self, form_id: str) -> List[Response]:
        found = [r for r in self._responses if r.form_id == form_id]
        return sorted(found, key=lambda r: r.submitted_at, reverse=True)

    async def delete_response(self, form_id: str, response_id: str) -> bool:
        for index, response in enumerate(self._responses):
            if response.form_id == form_id and response.id == response_id:
                del self._responses[index]
                self._unique_keys.discard((form_id, response.completion_key))
                return True
        return False
