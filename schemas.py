"""Pydantic request bodies for the JSON endpoints.

Required fields are typed as optional; absence is reported by
the store as a ``ValidationError`` with the endpoint's own message instead of
pydantic's generic one.
"""

from __future__ import annotations

from typing import Any, List

from pydantic import BaseModel, Field

__all__ = [
    "CallGeminiBody",
    "SaveContentBody",
    "SaveFormulaBody",
    "SaveProblemBody",
]


class CallGeminiBody(BaseModel):
    prompt: str | None = None
    schema_: Any = Field(default=None, alias="schema")


class SaveContentBody(BaseModel):
    prompt: str | None = None
    schema_: Any = Field(default=None, alias="schema")
    ai_response: str | None = None


class SaveFormulaBody(BaseModel):
    key: str | None = None
    category: str | None = None
    subject: str | None = None
    topic: str | None = None
    sub_topic: str | None = None
    formula: str | None = None
    description: str | None = None
    variables: List[Any] | None = None
    connections: List[Any] | None = None
    examples: List[Any] | None = None
    verified_by_ai: bool | None = None
    custom_user: str | None = None


class SaveProblemBody(BaseModel):
    text: str | None = None
    answer: str | None = None
    formulaKeys: List[str] | None = None
    difficulty: str | None = None
    subject: str | None = None
    topic: str | None = None
    analysis: str | None = None
    hint: str | None = None
    custom_user: str | None = None
