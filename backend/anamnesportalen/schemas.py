from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Any, Dict, List, Literal, Optional, Union
from datetime import datetime


QuestionType = Literal[
    "text", "textarea", "radio", "select", "checkbox", "dropdown",
    "number", "date", "email", "tel", "url", "info",
]
Mode = Literal["patient", "optician"]


class QuestionOption(BaseModel):
    value: str
    triggers_followups: bool = True


class QuestionScoring(BaseModel):
    enabled: bool = False
    min_value: int = 0
    max_value: int = 0
    flag_threshold: Optional[int] = None
    warning_message: Optional[str] = None


class AdvancedCondition(BaseModel):
    type: str  # answer | any_answer | section_score
    # answer
    question_id: Optional[str] = None
    values: Optional[Union[str, List[str]]] = None
    # any_answer
    section_index: Optional[int] = None
    any_value: Optional[Union[str, List[str]]] = None
    # section_score
    target_section_index: Optional[int] = None
    operator: Optional[Literal["less_than", "greater_than", "equals"]] = None
    threshold: Optional[float] = None


class Condition(BaseModel):
    question: Optional[str] = None
    equals: Optional[Any] = None
    contains: Optional[Any] = None
    # Section-level only: OR/AND over advanced conditions, each validated when evaluated
    conditions: Optional[List[Dict[str, Any]]] = None
    logic: Literal["or", "and"] = "or"


class FormQuestion(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    label: str = ""
    type: QuestionType = "text"
    options: Optional[List[Union[str, QuestionOption]]] = None
    required: bool = False
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    # Raw dict; parsed into a Condition when evaluated so a bad rule only hides this item
    show_if: Optional[Dict[str, Any]] = None
    is_followup_template: Optional[bool] = None
    followup_question_ids: Optional[List[str]] = None
    show_in_mode: Optional[Literal["patient", "optician", "all"]] = None
    scoring: Optional[QuestionScoring] = None

    @property
    def key(self) -> str:
        """The answer-map key this question reads and writes."""
        return self.id

    def option_values(self) -> List[str]:
        return [o if isinstance(o, str) else o.value for o in (self.options or [])]


class DynamicFollowupQuestion(FormQuestion):
    parentId: str
    parentValue: str
    runtimeId: str
    originalId: str

    @property
    def key(self) -> str:
        return self.runtimeId


class FormSection(BaseModel):
    section_title: str
    questions: List[FormQuestion] = Field(default_factory=list)
    show_if: Optional[Dict[str, Any]] = None


class ScoringConfig(BaseModel):
    enabled: bool = False
    total_threshold: Optional[float] = None
    show_score_to_patient: bool = False
    threshold_message: Optional[str] = None
    disable_ai_summary: bool = False


class FormTemplate(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    sections: List[FormSection] = Field(default_factory=list)
    scoring_config: Optional[ScoringConfig] = None

    @model_validator(mode="after")
    def _unique_question_ids(self):
        seen = set()
        for section in self.sections:
            for question in section.questions:
                if question.id in seen:
                    raise ValueError(f"Duplicate question id '{question.id}' in template '{self.title}'")
                seen.add(question.id)
        return self

    def find_question(self, question_id: str) -> Optional[FormQuestion]:
        for section in self.sections:
            for question in section.questions:
                if question.id == question_id:
                    return question
        return None


class ResolvedSection(BaseModel):
    """A section as rendered for one pass: questions already filtered."""
    section_title: str
    questions: List[Union[DynamicFollowupQuestion, FormQuestion]]


# -- Submission payloads ---------------------------------------------------

class FormattedResponse(BaseModel):
    id: str
    answer: Any


class AnsweredSection(BaseModel):
    section_title: str
    responses: List[FormattedResponse] = Field(default_factory=list)


class FormattedAnswer(BaseModel):
    formTitle: str
    submissionTimestamp: str
    answeredSections: List[AnsweredSection] = Field(default_factory=list)
    isOpticianSubmission: Optional[bool] = None


class SubmissionMetadata(BaseModel):
    formTemplateId: str
    submittedAt: str
    version: str
    submittedBy: Mode = "patient"


class SubmissionData(BaseModel):
    formattedAnswers: FormattedAnswer
    rawAnswers: Dict[str, Any]
    metadata: SubmissionMetadata


class FlaggedQuestion(BaseModel):
    question_id: str
    label: str
    score: int
    warning_message: Optional[str] = None


class ScoringResult(BaseModel):
    total_score: int
    max_possible_score: int
    percentage: int
    threshold_exceeded: bool
    flagged_questions: List[FlaggedQuestion] = Field(default_factory=list)


# -- API bodies ------------------------------------------------------------

class FormIn(BaseModel):
    id: str
    organizationId: Optional[str] = None
    examinationType: Optional[str] = None
    template: FormTemplate


class ResolveIn(BaseModel):
    answers: Dict[str, Any] = Field(default_factory=dict)
    mode: Mode = "patient"


class IssueTokenIn(BaseModel):
    formId: str
    bookingId: Optional[str] = None
    firstName: Optional[str] = None
    storeId: Optional[str] = None
    bookingDate: Optional[datetime] = None
    isKioskMode: bool = False
    customerData: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def _booking_required_for_magic_links(self):
        if not self.isKioskMode and not self.bookingId:
            raise ValueError("bookingId is required for magic link entries")
        return self


class IssueTokenOut(BaseModel):
    accessToken: str
    entryId: str
    expiresAt: datetime


# Token fields are optional so a missing token maps to the domain error
# (400 missing_token) rather than a generic validation failure.
class TokenIn(BaseModel):
    token: Optional[str] = None


class SaveDraftIn(TokenIn):
    formData: Optional[Dict[str, Any]] = None


class SubmitIn(TokenIn):
    answers: Optional[Dict[str, Any]] = None
