from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from anamnesportalen.autosave import AutoSaver
from anamnesportalen.client import AnamnesisClient
from anamnesportalen.formatting import prepare_submission
from anamnesportalen.schemas import FormTemplate, Mode
from anamnesportalen.visibility import Step, resolve_steps

logger = logging.getLogger(__name__)


class FormSession:
    """
    One patient (or optician) filling one form through a token.

    Answers are held as an immutable snapshot: every edit replaces the dict,
    so the auto-saver and the resolver always read a complete version.
    """

    def __init__(
        self,
        client: AnamnesisClient,
        token: str,
        template: FormTemplate,
        form_id: str = None,
        mode: Mode = "patient",
        answers: Dict[str, Any] = None,
    ):
        self.client = client
        self.token = token
        self.template = template
        self.form_id = form_id
        self.mode = mode
        self._answers: Dict[str, Any] = dict(answers or {})
        self.autosaver: Optional[AutoSaver] = None

    @classmethod
    def open(cls, client: AnamnesisClient, token: str, mode: Mode = "patient") -> "FormSession":
        """Verify the token and resume from any saved draft."""
        data = client.verify_token(token)
        template = FormTemplate.model_validate(data["template"])
        return cls(
            client,
            token,
            template,
            form_id=data.get("entry", {}).get("form_id"),
            mode=mode,
            answers=data.get("draftAnswers"),
        )

    @property
    def answers(self) -> Dict[str, Any]:
        return self._answers

    def set_answer(self, key: str, value: Any):
        self._answers = {**self._answers, key: value}

    def change_template(self, template: FormTemplate):
        self.template = template
        self._answers = {}

    def steps(self) -> List[Step]:
        return resolve_steps(self.template, self._answers, self.mode)

    def start_autosave(self, interval: float = None, on_error=None) -> bool:
        if self.autosaver is None:
            self.autosaver = AutoSaver(self.client, on_error=on_error)
        elif on_error is not None:
            self.autosaver.on_error = on_error
        return self.autosaver.schedule(self.token, lambda: self._answers, interval)

    def close(self):
        if self.autosaver is not None:
            self.autosaver.cancel()

    def submit(self) -> Dict[str, Any]:
        """
        Submit the current answers. Auto-save is stopped first (a save already
        in flight finishes before the submission is sent).
        """
        self.close()
        submission = prepare_submission(
            self.template,
            self._answers,
            template_id=self.form_id,
            submitted_by=self.mode,
        )
        return self.client.submit(self.token, submission)
