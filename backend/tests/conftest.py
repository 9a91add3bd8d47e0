import copy
import os

# Settings are read at import time; the motor client connects lazily, so no
# database is needed as long as the collections are swapped out below.
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")
os.environ.setdefault("DB_NAME", "anamnesportalen_test")

import pytest
from fastapi.testclient import TestClient

from anamnesportalen.schemas import FormTemplate


class FakeCursor:
    def __init__(self, docs):
        self._docs = iter(docs)

    def __aiter__(self):
        return self

    async def __anext__(self):
        try:
            return next(self._docs)
        except StopIteration:
            raise StopAsyncIteration


class FakeResult:
    def __init__(self, count=0):
        self.deleted_count = count
        self.modified_count = count


class FakeCollection:
    """In-memory stand-in for the handful of motor collection calls the routers make."""

    def __init__(self):
        self.docs = []

    @staticmethod
    def _matches(doc, query):
        return all(doc.get(k) == v for k, v in query.items())

    async def find_one(self, query, *args, **kwargs):
        for doc in self.docs:
            if self._matches(doc, query):
                return copy.deepcopy(doc)
        return None

    def find(self, query=None, *args, **kwargs):
        return FakeCursor([copy.deepcopy(d) for d in self.docs if self._matches(d, query or {})])

    async def insert_one(self, doc):
        self.docs.append(copy.deepcopy(doc))
        return FakeResult(1)

    async def replace_one(self, query, doc, upsert=False):
        for i, existing in enumerate(self.docs):
            if self._matches(existing, query):
                self.docs[i] = copy.deepcopy(doc)
                return FakeResult(1)
        if upsert:
            self.docs.append(copy.deepcopy(doc))
        return FakeResult(0)

    async def update_one(self, query, update):
        for doc in self.docs:
            if self._matches(doc, query):
                doc.update(copy.deepcopy(update.get("$set", {})))
                return FakeResult(1)
        return FakeResult(0)

    async def delete_one(self, query):
        before = len(self.docs)
        for i, doc in enumerate(self.docs):
            if self._matches(doc, query):
                del self.docs[i]
                break
        return FakeResult(before - len(self.docs))

    async def delete_many(self, query):
        before = len(self.docs)
        self.docs = [d for d in self.docs if not self._matches(d, query)]
        return FakeResult(before - len(self.docs))


@pytest.fixture
def template_dict():
    return {
        "title": "Synundersökning",
        "sections": [
            {
                "section_title": "Kontakt",
                "questions": [
                    {
                        "id": "contact_preference",
                        "label": "Hur vill du bli kontaktad?",
                        "type": "radio",
                        "options": ["Email", "Phone", "Other"],
                    },
                    {
                        "id": "contact_preference_other",
                        "label": "Ange annat sätt",
                        "type": "text",
                        "show_if": {"question": "contact_preference", "equals": "Other"},
                    },
                    {
                        "id": "has_license",
                        "label": "Har du körkort?",
                        "type": "radio",
                        "options": ["Ja", "Nej"],
                    },
                ],
            },
            {
                "section_title": "Livsstil",
                "questions": [
                    {
                        "id": "smoking",
                        "label": "Vad använder du?",
                        "type": "checkbox",
                        "options": ["Cigarettes", "Vape", "Snus"],
                        "followup_question_ids": ["duration"],
                    },
                    {
                        "id": "duration",
                        "label": "Hur länge har du använt {option}?",
                        "type": "text",
                        "is_followup_template": True,
                    },
                ],
            },
            {
                "section_title": "Körkort",
                "show_if": {"question": "has_license", "equals": "Ja"},
                "questions": [
                    {
                        "id": "license_glasses",
                        "label": "Använder du glasögon när du kör?",
                        "type": "radio",
                        "options": ["Ja", "Nej"],
                    },
                ],
            },
            {
                "section_title": "Optikerns anteckningar",
                "questions": [
                    {
                        "id": "optician_notes",
                        "label": "Anteckningar",
                        "type": "textarea",
                        "show_in_mode": "optician",
                    },
                ],
            },
        ],
    }


@pytest.fixture
def template(template_dict):
    return FormTemplate.model_validate(template_dict)


@pytest.fixture
def collections(monkeypatch):
    import anamnesportalen.routers.entries as entries_router
    import anamnesportalen.routers.forms as forms_router

    forms, entries = FakeCollection(), FakeCollection()
    for module in (forms_router, entries_router):
        monkeypatch.setattr(module, "forms_collection", forms)
        monkeypatch.setattr(module, "entries_collection", entries)
    return forms, entries


@pytest.fixture
def api(collections):
    from anamnesportalen.main import app

    with TestClient(app) as client:
        yield client
