from __future__ import annotations

import json
from typing import Dict, Optional

from openai import AsyncOpenAI

from .config import get_openai_api_key, get_openai_model, is_llm_enabled
from .errors import ExternalUnavailable


def _client() -> AsyncOpenAI:
    if not is_llm_enabled():
        raise ExternalUnavailable("llm_disabled_in_config")
    key = get_openai_api_key()
    if not key:
        raise ExternalUnavailable("missing_openai_api_key_in_config_or_env")
    return AsyncOpenAI(api_key=key)


SYSTEM = (
    "You are a helpful, concise financial coach. Answer the user's question about "
    "their own finances using the data provided. Include concrete numbers from the data. "
    "no bullet points. no asterisks. no bold."
)


async def ask_external(question: str, context: Optional[Dict] = None) -> Dict:
    """Ask the remote model; returns {"text": str}.

    Raises ExternalUnavailable when no call can be made and lets client errors
    propagate; the resolution service treats both as "no external answer".
    """
    client = _client()
    user = (
        f"Question: {question}\n"
        f"Data (JSON): {json.dumps(context or {}, default=str)}\n"
        "Answer in at most 120 words."
    )
    resp = await client.chat.completions.create(
        model=get_openai_model(),
        messages=[
            {"role": "system", "content": SYSTEM},
            {"role": "user", "content": user},
        ],
        temperature=0.3,
        max_tokens=300,
    )
    text = resp.choices[0].message.content if resp.choices else ""
    return {"text": (text or "").strip()}
