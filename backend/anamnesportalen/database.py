from typing import Any, Iterable

from motor.motor_asyncio import AsyncIOMotorClient
from bson import ObjectId
from anamnesportalen.config import settings

client = AsyncIOMotorClient(settings.MONGO_URI)
db = client[settings.DB_NAME]

# forms hold the templates, entries hold one patient's token, draft and submission
forms_collection = db.forms
entries_collection = db.entries


def _jsonable(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    return value


def public_doc(doc: dict, hidden: Iterable[str] = ()) -> dict:
    """
    Copy of a stored document ready for a JSON response: `_id` becomes `id`,
    ObjectIds become strings and the `hidden` fields are left out.
    """
    if doc is None:
        return doc
    out = {k: v for k, v in doc.items() if k not in hidden and k != "_id"}
    if "_id" in doc:
        out = {"id": doc["_id"], **out}
    return _jsonable(out)
