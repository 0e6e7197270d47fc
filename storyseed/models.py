from sqlalchemy import (
    Column, Integer, String, Boolean, ForeignKey, Text, DateTime, Date, Time, Index, text,
)
from sqlalchemy.orm import relationship
from sqlalchemy import Enum as SAEnum
from datetime import datetime, time, timezone

from .database import Base
from .vocabulary import ElementType, PromptType, EmailFormat


def utcnow() -> datetime:
    # Naive UTC to match DB columns (TIMESTAMP WITHOUT TIME ZONE)
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------------------------
# USER MODEL
# ---------------------------
class User(Base):
    __tablename__ = "user"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    username = Column(String, index=True)
    hashed_password = Column(String, nullable=False)
    is_active = Column(Boolean, default=True)
    is_superuser = Column(Boolean, default=False)
    is_verified = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)

    profile = relationship("Profile", back_populates="user", uselist=False, cascade="all, delete-orphan")
    books = relationship("Book", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    daily_prompt_preference = relationship(
        "DailyPromptPreference",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Profile(Base):
    __tablename__ = "profile"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), unique=True, index=True, nullable=False)
    display_name = Column(String(128), nullable=True)
    timezone = Column(String(64), default="UTC")
    current_streak = Column(Integer, default=0, nullable=False)
    longest_streak = Column(Integer, default=0, nullable=False)
    last_prompt_date = Column(Date, nullable=True)  # UTC date of the last answered prompt
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="profile")


# ---------------------------
# BOOKS & STORY ELEMENTS
# ---------------------------
class Book(Base):
    __tablename__ = "book"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    title = Column(String(256), nullable=False)
    description = Column(Text, nullable=True, default="")
    created_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="books")
    elements = relationship("StoryElement", back_populates="book", cascade="all, delete-orphan", passive_deletes=True)


class StoryElement(Base):
    __tablename__ = "story_element"

    id = Column(Integer, primary_key=True, index=True)
    book_id = Column(Integer, ForeignKey("book.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    element_type = Column(SAEnum(ElementType, native_enum=False, length=32), nullable=False)
    name = Column(String(256), nullable=False)
    description = Column(Text, nullable=True, default="")
    notes = Column(Text, nullable=True, default="")
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    book = relationship("Book", back_populates="elements")

    def __repr__(self):
        return f"<StoryElement {self.element_type}:{self.name}>"


# ---------------------------
# PROMPTS
# ---------------------------
class PromptElement(Base):
    """Ordered element references of a prompt."""
    __tablename__ = "prompt_element"

    prompt_id = Column(Integer, ForeignKey("prompt.id", ondelete="CASCADE"), primary_key=True)
    element_id = Column(Integer, ForeignKey("story_element.id", ondelete="CASCADE"), primary_key=True, index=True)
    position = Column(Integer, nullable=False, default=0)


class Prompt(Base):
    __tablename__ = "prompt"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    book_id = Column(Integer, ForeignKey("book.id", ondelete="CASCADE"), index=True, nullable=True)
    prompt_text = Column(Text, nullable=False)
    prompt_type = Column(SAEnum(PromptType, native_enum=False, length=32), nullable=False, default=PromptType.general)
    prompt_mode = Column(String(32), nullable=False, default="general")
    generated_at = Column(DateTime, default=utcnow, index=True)

    element_links = relationship(
        "PromptElement",
        order_by="PromptElement.position.asc()",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    book = relationship("Book", lazy="joined")
    responses = relationship("Response", back_populates="prompt", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def element_references(self) -> list[int]:
        return [link.element_id for link in self.element_links]

    @element_references.setter
    def element_references(self, ids) -> None:
        self.element_links = [PromptElement(element_id=eid, position=i) for i, eid in enumerate(ids or [])]


# ---------------------------
# RESPONSES
# ---------------------------
class Response(Base):
    __tablename__ = "response"

    id = Column(Integer, primary_key=True, index=True)
    prompt_id = Column(Integer, ForeignKey("prompt.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    response_text = Column(Text, nullable=False, default="")
    word_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    prompt = relationship("Prompt", back_populates="responses")


# ---------------------------
# Daily prompts
# ---------------------------
class DailyPromptPreference(Base):
    __tablename__ = "daily_prompt_preference"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), unique=True, index=True, nullable=False)
    enabled = Column(Boolean, default=False, nullable=False)
    delivery_time = Column(Time, default=time(9, 0), nullable=False)
    timezone = Column(String(64), default="UTC", nullable=False)
    focus_story_id = Column(Integer, ForeignKey("book.id", ondelete="SET NULL"), nullable=True)
    email_format = Column(SAEnum(EmailFormat, native_enum=False, length=32), default=EmailFormat.minimal, nullable=False)

    include_character = Column(Boolean, default=True, nullable=False)
    include_plot = Column(Boolean, default=True, nullable=False)
    include_worldbuilding = Column(Boolean, default=True, nullable=False)
    include_dialogue = Column(Boolean, default=True, nullable=False)
    include_conflict = Column(Boolean, default=True, nullable=False)
    include_general = Column(Boolean, default=True, nullable=False)

    focus_underdeveloped = Column(Boolean, default=True, nullable=False)
    avoid_repetition_days = Column(Integer, default=7, nullable=False)
    include_context = Column(Boolean, default=True, nullable=False)
    include_previous_answers = Column(Boolean, default=True, nullable=False)

    send_streak_warning = Column(Boolean, default=True, nullable=False)
    pause_after_skips = Column(Integer, default=3, nullable=False)
    consecutive_skips = Column(Integer, default=0, nullable=False)
    last_prompt_sent_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="daily_prompt_preference")


class DailyPromptSent(Base):
    __tablename__ = "daily_prompts_sent"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    prompt_id = Column(Integer, ForeignKey("prompt.id", ondelete="CASCADE"), index=True, nullable=False)
    element_id = Column(Integer, ForeignKey("story_element.id", ondelete="SET NULL"), nullable=True)
    response_id = Column(Integer, ForeignKey("response.id", ondelete="SET NULL"), nullable=True)
    email_format = Column(SAEnum(EmailFormat, native_enum=False, length=32), default=EmailFormat.minimal, nullable=False)
    provider_message_id = Column(String(256), nullable=True)
    is_test = Column(Boolean, default=False, nullable=False)

    sent_at = Column(DateTime, default=utcnow, nullable=False)
    sent_on = Column(Date, nullable=False)  # UTC calendar day of sent_at
    opened_at = Column(DateTime, nullable=True)
    responded_at = Column(DateTime, nullable=True)
    skipped = Column(Boolean, default=False, nullable=False)
    skip_reason = Column(String(256), nullable=True)

    prompt = relationship("Prompt", lazy="joined")
    element = relationship("StoryElement", lazy="joined")
    response = relationship("Response", lazy="joined")

    # one real delivery per user per UTC day; test sends are exempt
    __table_args__ = (
        Index(
            "uq_daily_prompt_user_day",
            "user_id",
            "sent_on",
            unique=True,
            postgresql_where=text("is_test = false"),
            sqlite_where=text("is_test = 0"),
        ),
    )
