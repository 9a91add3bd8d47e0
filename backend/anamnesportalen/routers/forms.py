from fastapi import APIRouter, HTTPException
from pydantic import ValidationError
from datetime import datetime

from anamnesportalen.database import forms_collection, entries_collection, public_doc
from anamnesportalen.errors import InvalidTemplate
from anamnesportalen.formatting import format_answers
from anamnesportalen.schemas import FormIn, FormTemplate, ResolveIn
from anamnesportalen.scoring import calculate_score
from anamnesportalen.visibility import resolve_steps, total_steps

router = APIRouter(prefix="/api/forms", tags=["forms"])


def template_from_doc(form: dict) -> FormTemplate:
    """Parse the template stored on a form document."""
    try:
        return FormTemplate.model_validate(form.get("template") or {})
    except ValidationError as e:
        raise InvalidTemplate(f"Stored template for form '{form.get('_id')}' is invalid: {e}") from e


async def load_form(form_id: str) -> dict:
    form = await forms_collection.find_one({"_id": form_id})
    if not form:
        raise HTTPException(status_code=404, detail="Form not found")
    return form


async def load_template(form_id: str) -> FormTemplate:
    form = await load_form(form_id)
    try:
        return template_from_doc(form)
    except InvalidTemplate as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("")
async def list_forms():
    """Get a list of all forms with basic info."""
    items = []
    async for item in forms_collection.find({}, {"_id": 1, "template.title": 1, "organizationId": 1, "examinationType": 1, "createdAt": 1}):
        item["title"] = (item.pop("template", None) or {}).get("title", "")
        items.append(public_doc(item))
    return items


@router.post("")
async def upsert_form(form: FormIn):
    doc = form.model_dump(exclude_none=True)
    doc["_id"] = form.id
    del doc["id"]
    # Only set createdAt if this is a new document
    existing = await forms_collection.find_one({"_id": form.id})
    if not existing:
        doc["createdAt"] = datetime.utcnow()
    else:
        doc["createdAt"] = existing.get("createdAt", datetime.utcnow())
    doc["updatedAt"] = datetime.utcnow()

    await forms_collection.replace_one({"_id": form.id}, doc, upsert=True)
    return {"status": "ok", "formId": form.id}


@router.get("/{form_id}")
async def get_form(form_id: str):
    return public_doc(await load_form(form_id))


@router.delete("/{form_id}")
async def delete_form(form_id: str):
    """Delete a form and every entry issued for it."""
    await load_form(form_id)
    await forms_collection.delete_one({"_id": form_id})
    await entries_collection.delete_many({"form_id": form_id})
    return {"status": "ok", "formId": form_id}


@router.post("/{form_id}/resolve")
async def resolve_form(form_id: str, body: ResolveIn):
    """Preview which steps and questions render for a set of answers."""
    template = await load_template(form_id)
    steps = resolve_steps(template, body.answers, body.mode)
    return {
        "formId": form_id,
        "totalSteps": total_steps(template, body.answers, body.mode),
        "steps": [[section.model_dump(exclude_none=True) for section in step] for step in steps],
    }


@router.post("/{form_id}/format")
async def format_form(form_id: str, body: ResolveIn):
    """Preview the submission payload and score for a set of answers."""
    template = await load_template(form_id)
    formatted = format_answers(template, body.answers, mode=body.mode)
    score = calculate_score(template, body.answers)
    return {
        "formattedAnswers": formatted.model_dump(exclude_none=True),
        "scoring": score.model_dump() if score else None,
    }
