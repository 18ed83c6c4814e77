import logging
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError

from pollify.config import settings
from pollify.errors import DuplicateResponse
from pollify.schemas import Form, Response
from pollify.store import MemoryStore, Store

logger = logging.getLogger(__name__)


def convert_doc(doc: Optional[dict]) -> Optional[dict]:
    """Turn a stored document back into model input: `_id` becomes `id`, bookkeeping keys dropped."""
    if doc is None:
        return doc
    result = {key: value for key, value in doc.items() if key not in ("_id", "uniqueKey")}
    result["id"] = str(doc["_id"])
    return result


class MongoStore:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.forms_collection = db.forms
        self.responses_collection = db.responses

    async def ensure_indexes(self) -> None:
        # authoritative duplicate guard; only responses of single-response forms carry uniqueKey
        await self.responses_collection.create_index("uniqueKey", unique=True, sparse=True)
        await self.responses_collection.create_index([("formId", ASCENDING), ("completionKey", ASCENDING)])
        await self.responses_collection.create_index([("formId", ASCENDING), ("submittedAt", DESCENDING)])

    async def list_forms(self) -> List[Form]:
        forms = []
        async for doc in self.forms_collection.find({}, sort=[("createdAt", DESCENDING)]):
            forms.append(Form.model_validate(convert_doc(doc)))
        return forms

    async def get_form(self, form_id: str) -> Optional[Form]:
        doc = await self.forms_collection.find_one({"_id": form_id})
        if not doc:
            return None
        return Form.model_validate(convert_doc(doc))

    async def save_form(self, form: Form) -> None:
        doc: Dict[str, Any] = form.model_dump(by_alias=True, exclude={"id"})
        doc["_id"] = form.id
        await self.forms_collection.replace_one({"_id": form.id}, doc, upsert=True)

    async def delete_form(self, form_id: str) -> bool:
        result = await self.forms_collection.delete_one({"_id": form_id})
        if result.deleted_count == 0:
            return False
        await self.responses_collection.delete_many({"formId": form_id})
        return True

    async def create_response(self, response: Response, unique: bool) -> None:
        doc: Dict[str, Any] = response.model_dump(by_alias=True, exclude={"id"})
        doc["_id"] = response.id
        if unique:
            doc["uniqueKey"] = f"{response.form_id}:{response.completion_key}"
        try:
            await self.responses_collection.insert_one(doc)
        except DuplicateKeyError:
            raise DuplicateResponse("a response for this respondent already exists")

    async def has_response(self, form_id: str, completion_key: str) -> bool:
        doc = await self.responses_collection.find_one(
            {"formId": form_id, "completionKey": completion_key}, {"_id": 1}
        )
        return doc is not None

    async def count_responses(self, form_id: str) -> int:
        return await self.responses_collection.count_documents({"formId": form_id})

    async def list_responses(self, form_id: str) -> List[Response]:
        responses = []
        cursor = self.responses_collection.find({"formId": form_id}, sort=[("submittedAt", DESCENDING)])
        async for doc in cursor:
            responses.append(Response.model_validate(convert_doc(doc)))
        return responses

    async def delete_response(self, form_id: str, response_id: str) -> bool:
        result = await self.responses_collection.delete_one({"_id": response_id, "formId": form_id})
        return result.deleted_count > 0


_store: Optional[Store] = None


def get_store() -> Store:
    """FastAPI dependency: the process-wide store selected by STORE_BACKEND."""
    global _store
    if _store is None:
        if settings.STORE_BACKEND == "memory":
            logger.info("using in-memory store")
            _store = MemoryStore()
        else:
            client = AsyncIOMotorClient(settings.MONGO_URI, tz_aware=True)
            _store = MongoStore(client[settings.DB_NAME])
    return _store
