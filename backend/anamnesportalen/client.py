"""
HTTP client for the patient-facing endpoints (token verification, draft
save, submission). Used by kiosks and integrations that drive a form from
Python, and by the auto-saver.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Union

import requests

from anamnesportalen.config import settings
from anamnesportalen.logging_config import token_prefix
from anamnesportalen.schemas import SubmissionData

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Non-2xx response. `code` is the error code sent by the server (if any)."""

    def __init__(self, status_code: int, message: str, code: Optional[str] = None):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.code = code

    @property
    def expired(self) -> bool:
        return self.code == "expired"

    @property
    def already_submitted(self) -> bool:
        return self.code == "already_submitted"


class AnamnesisClient:
    def __init__(self, base_url: str = None, timeout: float = None, session: requests.Session = None):
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT
        self.session = session or requests.Session()

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        r = self.session.post(f"{self.base_url}{path}", json=payload, timeout=self.timeout)
        if r.status_code >= 400:
            raise self._error(r)
        return r.json()

    @staticmethod
    def _error(r: requests.Response) -> ApiError:
        try:
            detail = r.json().get("detail")
        except ValueError:
            detail = r.text
        if isinstance(detail, dict):
            return ApiError(r.status_code, detail.get("error", ""), detail.get("code"))
        return ApiError(r.status_code, str(detail))

    def issue_token(self, form_id: str, booking_id: str = None, **fields) -> Dict[str, Any]:
        payload = {"formId": form_id, "bookingId": booking_id}
        payload.update(fields)
        return self._post("/api/tokens", payload)

    def verify_token(self, token: str) -> Dict[str, Any]:
        return self._post("/api/tokens/verify", {"token": token})

    def save_draft(self, token: str, form_data: Dict[str, Any]) -> Dict[str, Any]:
        logger.debug("Saving draft for token %s", token_prefix(token))
        return self._post("/api/entries/save-draft", {"token": token, "formData": form_data})

    def submit(self, token: str, submission: Union[SubmissionData, Dict[str, Any]]) -> Dict[str, Any]:
        if isinstance(submission, SubmissionData):
            submission = submission.model_dump(exclude_none=True)
        logger.info("Submitting form for token %s", token_prefix(token))
        return self._post("/api/entries/submit", {"token": token, "answers": submission})
