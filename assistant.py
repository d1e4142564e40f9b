"""
Darpan 2.0, the shopping assistant.

Each call is stateless: the current catalog is rendered into the system
prompt every time and sent to a hosted chat-completion model together with
the customer's question and, optionally, a photo.
"""
import logging
from typing import Callable, List, Optional

from openai import OpenAI
from pydantic import BaseModel

import config
from catalog import format_price
from schemas import ChatMessage, Product
from site_settings import DEFAULT_ASSISTANT_PROMPT

logger = logging.getLogger(__name__)

FALLBACK_ANSWER = "I'm sorry, I couldn't process that request. Please try again."

_client = None


class AssistantReply(BaseModel):
    answer: str


def get_client() -> OpenAI:
    global _client
    if _client is None:
        _client = OpenAI(
            api_key=config.OPENAI_API_KEY,
            base_url=config.OPENAI_BASE_URL,
            timeout=config.OPENAI_TIMEOUT,
            max_retries=config.OPENAI_MAX_RETRIES,
        )
    return _client


def render_catalog(products: List[Product]) -> str:
    lines = []
    for p in products:
        sizes = ", ".join(p.sizes)
        lines.append(f"- **{p.name}** (ID: {p.id}): {p.description} Price: {format_price(p.sale_price)}. Available sizes: {sizes}.")
    return "\n".join(lines)


def render_system_prompt(base_prompt: str, products: List[Product]) -> str:
    return f"{base_prompt.strip()}\n\nCurrent Product Catalog:\n---\n{render_catalog(products)}\n---"


def build_messages(question: str, products: List[Product], base_prompt: str, photo_data_uri: Optional[str] = None) -> list:
    text = f"Now, please answer the following user question.\n\nUser Question: {question}"
    if photo_data_uri:
        user_content = [
            {"type": "text", "text": text},
            {"type": "image_url", "image_url": {"url": photo_data_uri}},
        ]
    else:
        user_content = text
    return [
        {"role": "system", "content": render_system_prompt(base_prompt, products)},
        {"role": "user", "content": user_content},
    ]


def assist(
    question: str,
    products: List[Product],
    photo_data_uri: Optional[str] = None,
    base_prompt: Optional[str] = None,
    client=None,
) -> AssistantReply:
    """Ask the model. Service errors (openai.OpenAIError) propagate to the caller."""
    client = client or get_client()
    response = client.chat.completions.create(
        model=config.OPENAI_MODEL,
        messages=build_messages(question, products, base_prompt or DEFAULT_ASSISTANT_PROMPT, photo_data_uri),
    )
    answer = ""
    if response.choices:
        answer = (response.choices[0].message.content or "").strip()
    return AssistantReply(answer=answer or FALLBACK_ANSWER)


class Conversation:
    """Chat transcript. A question whose answer fails is taken back out."""

    def __init__(self, messages: Optional[List[ChatMessage]] = None, session_id: Optional[str] = None):
        self.session_id = session_id
        self.messages: List[ChatMessage] = list(messages or [])

    def ask(self, question: str, answer: Callable[[str], AssistantReply]) -> ChatMessage:
        if not question.strip():
            raise ValueError("Message cannot be empty")
        self.messages.append(ChatMessage(session_id=self.session_id, sender="user", text=question))
        try:
            reply = answer(question)
        except Exception:
            self.messages.pop()
            raise
        ai_message = ChatMessage(session_id=self.session_id, sender="ai", text=reply.answer)
        self.messages.append(ai_message)
        return ai_message
