from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional, List
from datetime import date, datetime, time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi_users import schemas as fu_schemas

from storyseed.vocabulary import ElementType, EmailFormat, PromptType


# =========================
# USER SCHEMAS
# =========================
class UserRead(fu_schemas.BaseUser[int]):
    username: Optional[str] = None

class UserCreate(fu_schemas.BaseUserCreate):
    username: Optional[str] = None

class UserUpdate(fu_schemas.BaseUserUpdate):
    username: Optional[str] = None


# =========================
# PROFILE & STATS
# =========================
class ProfileRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    display_name: Optional[str] = None
    timezone: Optional[str] = "UTC"
    current_streak: int = 0
    longest_streak: int = 0
    last_prompt_date: Optional[date] = None

class ProfileUpdate(BaseModel):
    display_name: Optional[str] = None
    timezone: Optional[str] = None

class DailyActivity(BaseModel):
    date: str
    word_count: int
    prompt_count: int

class StatsRead(BaseModel):
    total_words: int
    total_prompts: int
    total_responses: int
    current_streak: int
    longest_streak: int
    average_words_per_day: int
    daily: List[DailyActivity] = []


# =========================
# BOOKS & STORY ELEMENTS
# =========================
class BookCreate(BaseModel):
    title: str = Field(min_length=1, max_length=256)
    description: Optional[str] = ""

class BookRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None


class ElementCreate(BaseModel):
    book_id: int
    element_type: ElementType
    name: str = Field(min_length=1, max_length=256)
    description: Optional[str] = ""
    notes: Optional[str] = ""

class ElementUpdate(BaseModel):
    element_type: Optional[ElementType] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=256)
    description: Optional[str] = None
    notes: Optional[str] = None

class ElementRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    book_id: int
    element_type: ElementType
    name: str
    description: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class EnhanceResult(BaseModel):
    element_id: int
    description: str


# =========================
# PROMPTS & RESPONSES
# =========================
class PromptCreate(BaseModel):
    book_id: Optional[int] = None
    prompt_text: str = Field(min_length=1)
    prompt_type: PromptType = PromptType.general
    prompt_mode: str = "general"
    element_references: List[int] = []

class PromptRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    book_id: Optional[int] = None
    prompt_text: str
    prompt_type: PromptType
    prompt_mode: str
    element_references: List[int] = []
    generated_at: Optional[datetime] = None

class GeneratePromptRequest(BaseModel):
    book_id: Optional[int] = None
    prompt_type: Optional[PromptType] = None
    element_ids: List[int] = []
    include_previous_answers: bool = True

class GeneratePromptResult(BaseModel):
    prompt: PromptRead
    elements: List[ElementRead] = []

class AvailableModesRequest(BaseModel):
    element_ids: List[int] = []

class AvailableModesResult(BaseModel):
    modes: List[PromptType]


class ResponseCreate(BaseModel):
    prompt_id: int
    response_text: str = Field(min_length=1)

class ResponseUpdate(BaseModel):
    response_text: str = Field(min_length=1)

class ResponseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    prompt_id: int
    response_text: str
    word_count: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# =========================
# DAILY PROMPTS
# =========================
class DailyPromptPreferenceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    enabled: bool
    delivery_time: time
    timezone: str
    focus_story_id: Optional[int] = None
    email_format: EmailFormat
    include_character: bool
    include_plot: bool
    include_worldbuilding: bool
    include_dialogue: bool
    include_conflict: bool
    include_general: bool
    focus_underdeveloped: bool
    avoid_repetition_days: int
    include_context: bool
    include_previous_answers: bool
    send_streak_warning: bool
    pause_after_skips: int
    consecutive_skips: int
    last_prompt_sent_at: Optional[datetime] = None

class DailyPromptPreferenceUpdate(BaseModel):
    enabled: Optional[bool] = None
    delivery_time: Optional[time] = None
    timezone: Optional[str] = None
    focus_story_id: Optional[int] = None
    email_format: Optional[EmailFormat] = None
    include_character: Optional[bool] = None
    include_plot: Optional[bool] = None
    include_worldbuilding: Optional[bool] = None
    include_dialogue: Optional[bool] = None
    include_conflict: Optional[bool] = None
    include_general: Optional[bool] = None
    focus_underdeveloped: Optional[bool] = None
    avoid_repetition_days: Optional[int] = Field(default=None, ge=0, le=365)
    include_context: Optional[bool] = None
    include_previous_answers: Optional[bool] = None
    send_streak_warning: Optional[bool] = None
    pause_after_skips: Optional[int] = Field(default=None, ge=1, le=30)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, v):
        if v is None:
            return v
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone: {v}")
        return v

    @model_validator(mode="after")
    def _no_null_settings(self):
        # only focus_story_id may be cleared; every other column is NOT NULL
        nulled = sorted(f for f in self.model_fields_set if f != "focus_story_id" and getattr(self, f) is None)
        if nulled:
            raise ValueError(f"{', '.join(nulled)} cannot be null")
        return self

class DeliveryLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    prompt_id: int
    element_id: Optional[int] = None
    response_id: Optional[int] = None
    email_format: EmailFormat
    is_test: bool
    sent_at: datetime
    opened_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    skipped: bool
    skip_reason: Optional[str] = None
    prompt_text: Optional[str] = None
    prompt_type: Optional[PromptType] = None
    element_name: Optional[str] = None
    element_type: Optional[ElementType] = None
    book_title: Optional[str] = None
    response_text: Optional[str] = None

    @classmethod
    def from_log(cls, log) -> "DeliveryLogRead":
        out = cls.model_validate(log)
        if log.prompt is not None:
            out.prompt_text = log.prompt.prompt_text
            out.prompt_type = log.prompt.prompt_type
            out.book_title = log.prompt.book.title if log.prompt.book else None
        if log.element is not None:
            out.element_name = log.element.name
            out.element_type = log.element.element_type
        if log.response is not None:
            out.response_text = log.response.response_text
        return out

class DailyRespondRequest(BaseModel):
    token: str
    response_text: str = Field(min_length=1)

class SkipResult(BaseModel):
    skipped: bool = True
    paused: bool

class SendTestEmailResult(BaseModel):
    log_id: int
    prompt_text: str
    element_name: str
    book_title: str
    provider_message_id: Optional[str] = None
