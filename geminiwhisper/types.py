"""Type definitions for the Gemini generateContent wire format."""

from __future__ import annotations

from typing import Literal, TypedDict

HarmCategory = Literal[
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
]

class InlineData(TypedDict):
    """Base64 encoded binary payload."""

    mime_type: str
    data: str


class Part(TypedDict, total=False):
    """One part of a content message: either text or inline data."""

    text: str
    inline_data: InlineData


class Content(TypedDict, total=False):
    role: str
    parts: list[Part]


class SafetySetting(TypedDict):
    category: HarmCategory
    threshold: str


class GenerateContentRequest(TypedDict):
    """Body of a generateContent request."""

    contents: list[Content]
    safetySettings: list[SafetySetting]


class Candidate(TypedDict, total=False):
    content: Content
    finishReason: str


class PromptFeedback(TypedDict, total=False):
    blockReason: str


class GenerateContentResponse(TypedDict, total=False):
    """Body of a successful generateContent response."""

    candidates: list[Candidate]
    promptFeedback: PromptFeedback


class ErrorBody(TypedDict, total=False):
    code: int
    message: str
    status: str


class ErrorResponse(TypedDict, total=False):
    """Body of a failed request."""

    error: ErrorBody


class ModelInfo(TypedDict, total=False):
    name: str
    displayName: str
    supportedGenerationMethods: list[str]


class ListModelsResponse(TypedDict, total=False):
    """Body of a models.list response page."""

    models: list[ModelInfo]
    nextPageToken: str
