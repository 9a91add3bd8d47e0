import logging

from fastapi import APIRouter, HTTPException

from anamnesportalen.database import forms_collection, entries_collection, public_doc
from anamnesportalen.errors import TokenError
from anamnesportalen.formatting import (
    build_summary_input,
    extract_form_data,
    extract_formatted_answers,
    is_optician_payload,
    prepare_submission,
    utc_timestamp,
)
from anamnesportalen.logging_config import token_prefix
from anamnesportalen.routers.forms import load_template
from anamnesportalen.schemas import IssueTokenIn, IssueTokenOut, SaveDraftIn, SubmitIn, TokenIn
from anamnesportalen.scoring import calculate_score
from anamnesportalen.tokens import check_token_format, ensure_fillable, new_entry, utcnow
from anamnesportalen.validation import is_empty

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["entries"])

# Entry fields safe to hand to the patient form
PUBLIC_ENTRY_FIELDS = ("form_id", "status", "first_name", "store_id", "booking_date", "expires_at", "is_kiosk_mode")


async def entry_for_token(token) -> dict:
    """Resolve a token to an entry the patient may still edit, or raise HTTPException."""
    try:
        token = check_token_format(token)
        entry = await entries_collection.find_one({"access_token": token})
        return ensure_fillable(entry, token)
    except TokenError as e:
        raise e.to_http()


@router.post("/tokens", response_model=IssueTokenOut)
async def issue_token(body: IssueTokenIn):
    """Create an entry for a booking (magic link) or kiosk customer and return its access token."""
    form = await forms_collection.find_one({"_id": body.formId})
    if not form:
        raise HTTPException(status_code=404, detail="Invalid form ID")

    entry = new_entry(form, body)
    await entries_collection.insert_one(entry)
    logger.info("Issued token %s for form %s (entry %s)", token_prefix(entry["access_token"]), body.formId, entry["_id"])

    return IssueTokenOut(accessToken=entry["access_token"], entryId=entry["_id"], expiresAt=entry["expires_at"])


@router.post("/tokens/verify")
async def verify_token(body: TokenIn):
    entry = await entry_for_token(body.token)
    template = await load_template(entry["form_id"])

    draft = entry.get("draft") or {}
    return {
        "entryId": entry["_id"],
        "entry": public_doc({k: entry.get(k) for k in PUBLIC_ENTRY_FIELDS}),
        "template": template.model_dump(exclude_none=True),
        "draftAnswers": draft.get("answers") or {},
    }


@router.post("/entries/save-draft")
async def save_draft(body: SaveDraftIn):
    if not body.token:
        raise HTTPException(status_code=400, detail={"error": "Token is required", "code": "missing_token"})
    if body.formData is None:
        raise HTTPException(status_code=400, detail={"error": "Form data is required", "code": "missing_data"})

    entry = await entry_for_token(body.token)

    if all(is_empty(value) for value in body.formData.values()):
        return {"success": True, "message": "No data to save"}

    now = utcnow()
    draft = {
        "answers": body.formData,
        "meta": {
            "auto_saved": True,
            "saved_at": utc_timestamp(),
            "form_template_id": entry.get("form_id"),
        },
    }
    await entries_collection.update_one(
        {"_id": entry["_id"]},
        {"$set": {"draft": draft, "status": "in_progress", "updated_at": now}},
    )
    logger.info("Draft saved for entry %s", entry["_id"])
    return {"success": True, "message": "Draft saved successfully", "savedAt": draft["meta"]["saved_at"]}


@router.post("/entries/submit")
async def submit_entry(body: SubmitIn):
    if not body.token:
        raise HTTPException(status_code=400, detail={"error": "Token is required", "code": "missing_token"})
    if not body.answers:
        raise HTTPException(status_code=400, detail={"error": "Answers are required", "code": "missing_data"})

    entry = await entry_for_token(body.token)
    template = await load_template(entry["form_id"])

    raw_answers = extract_form_data(body.answers)
    submitted_by = "optician" if is_optician_payload(body.answers) else "patient"
    logger.info("Submission for token %s by %s", token_prefix(body.token), submitted_by)

    # The stored payload is always rebuilt from the template, whatever shape the client sent
    submission = prepare_submission(template, raw_answers, template_id=entry["form_id"], submitted_by=submitted_by)
    score = calculate_score(template, raw_answers)

    now = utcnow()
    status = "ready" if submitted_by == "optician" else "pending"
    update = {
        "answers": submission.model_dump(exclude_none=True),
        "formatted_raw_data": build_summary_input(template, submission.formattedAnswers),
        "scoring_result": score.model_dump() if score else None,
        "status": status,
        "updated_at": now,
    }
    if status == "ready":
        update["sent_at"] = now

    if isinstance(raw_answers.get("consent_given"), bool):
        update["consent_given"] = raw_answers["consent_given"]
        if raw_answers["consent_given"]:
            update["consent_timestamp"] = now
    for field in ("privacy_policy_version", "terms_version", "first_name", "store_id"):
        if isinstance(raw_answers.get(field), str) and raw_answers[field]:
            update[field] = raw_answers[field]

    await entries_collection.update_one({"_id": entry["_id"]}, {"$set": update})
    logger.info("Entry %s submitted with status '%s'", entry["_id"], status)

    return {"success": True, "message": "Form submitted", "submitted": True, "entryId": entry["_id"], "status": status}


@router.get("/entries/{entry_id}")
async def get_entry(entry_id: str):
    """Entry as seen by the optician, with the structured answers unwrapped."""
    entry = await entries_collection.find_one({"_id": entry_id})
    if not entry:
        raise HTTPException(status_code=404, detail="Entry not found")

    entry["formattedAnswers"] = extract_formatted_answers(entry.get("answers"))
    return public_doc(entry, hidden=("access_token",))
