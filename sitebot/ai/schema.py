from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    role: str = "assistant"
    content: str = Field(..., min_length=1)


class ChatChoice(BaseModel):
    message: ChatMessage


class ChatCompletion(BaseModel):
    choices: List[ChatChoice] = Field(..., min_length=1)
