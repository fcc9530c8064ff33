"""Request models for the two public entry points."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from civic_rag.types import Locale


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class RAGInput(BaseModel):
    query: str = Field(min_length=1)
    locale: Locale = "en"
    conversation_history: list[ChatMessage] = Field(default_factory=list)
    user_id: str | None = None


class RouterInput(BaseModel):
    text: str | None = None
    audio_bytes: bytes | None = None
    audio_filename: str = "audio.webm"
    audio_content_type: str | None = None
    image_bytes: bytes | None = None
    image_mime_type: str = "image/jpeg"
    locale: Locale = "en"
    session_id: str
    conversation_history: list[ChatMessage] = Field(default_factory=list)
    user_id: str | None = None
    latitude: float | None = Field(default=None, ge=-90.0, le=90.0)
    longitude: float | None = Field(default=None, ge=-180.0, le=180.0)
