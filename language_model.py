from __future__ import annotations

from typing import Protocol, Dict, Any, Optional
import time
from collections import deque, defaultdict

import tiktoken
from openai import AsyncOpenAI

# OpenAI pricing per 1K tokens
OPENAI_PRICING = {
    'gpt-4o': {
        'input': 0.0025,
        'output': 0.01
    },
    'gpt-4o-mini': {
        'input': 0.00015,
        'output': 0.0006
    },
    'gpt-4-turbo': {
        'input': 0.01,
        'output': 0.03
    },
}


def calculate_cost(tokens_in: int, tokens_out: int, model: str = "gpt-4o") -> dict:
    """Calculate cost for given token usage and model"""
    pricing = OPENAI_PRICING.get(model, OPENAI_PRICING['gpt-4o'])

    input_cost = (tokens_in / 1000) * pricing['input']
    output_cost = (tokens_out / 1000) * pricing['output']

    return {
        'input_cost': input_cost,
        'output_cost': output_cost,
        'total_cost': input_cost + output_cost,
        'tokens_in': tokens_in,
        'tokens_out': tokens_out,
        'model': model
    }


# Simple in-memory analytics store (exported for API)
class _Analytics:
    def __init__(self) -> None:
        self.total_requests = 0
        self.total_tokens_in = 0
        self.total_tokens_out = 0
        self.total_cost = 0.0
        # ring buffer of (ts_sec, in_tokens, out_tokens, model, cost, action)
        self.events: deque[tuple[int, int, int, str, float, str]] = deque(maxlen=10_000)
        self.action_counts: Dict[str, int] = {}

    def add(self, in_tokens: int, out_tokens: int, model: str = "gpt-4o", action: str = "") -> dict:
        now = int(time.time())
        self.total_requests += 1
        self.total_tokens_in += max(0, in_tokens)
        self.total_tokens_out += max(0, out_tokens)

        cost_info = calculate_cost(in_tokens, out_tokens, model)
        self.total_cost += cost_info['total_cost']
        if action:
            self.action_counts[action] = self.action_counts.get(action, 0) + 1

        self.events.append((now, in_tokens, out_tokens, model, cost_info['total_cost'], action))
        return cost_info

    def summary_last_24h(self) -> Dict[str, Any]:
        now = int(time.time())
        cutoff = now - 24*3600
        per_hour = defaultdict(lambda: {"requests": 0, "tokens_in": 0, "tokens_out": 0, "cost": 0.0})
        reqs = 0; ti = 0; to = 0; cost_24h = 0.0
        for ts, tin, tout, model, cost, _action in list(self.events):
            if ts < cutoff: continue
            hour_bucket = ts - (ts % 3600)
            b = per_hour[hour_bucket]
            b["requests"] += 1
            b["tokens_in"] += max(0, tin)
            b["tokens_out"] += max(0, tout)
            b["cost"] += cost
            reqs += 1; ti += max(0, tin); to += max(0, tout); cost_24h += cost
        series = [
            {"hour": k, **per_hour[k]}
            for k in sorted(per_hour.keys())
        ]
        return {
            "requests": reqs, "tokens_in": ti, "tokens_out": to, "cost": cost_24h,
            "series": series, "actions": dict(self.action_counts),
        }


analytics_store = _Analytics()


class TokenBudgetExceeded(ValueError):
    pass


class LanguageModel(Protocol):
    async def generate(self, system: str, user: str, temperature: float = 0.4, max_tokens: int = 2000,
                       json_mode: bool = False, action: str = "") -> str: ...


class OpenAIModel:
    def __init__(self, api_key: str, model: str = "gpt-4o", timeout: Optional[float] = None,
                 max_input_tokens: int = 0) -> None:
        client_kwargs: Dict[str, Any] = {"api_key": api_key, "max_retries": 0}
        if timeout is not None:
            client_kwargs["timeout"] = timeout
        self.client = AsyncOpenAI(**client_kwargs)
        self.model = model
        self.max_input_tokens = max_input_tokens

    def _count_tokens(self, text: str) -> int:
        try:
            enc = tiktoken.encoding_for_model(self.model)
        except KeyError:
            enc = tiktoken.get_encoding("cl100k_base")
        return len(enc.encode(text))

    async def generate(self, system: str, user: str, temperature: float = 0.4, max_tokens: int = 2000,
                       json_mode: bool = False, action: str = "") -> str:
        if self.max_input_tokens > 0:
            pre_tokens = self._count_tokens(system) + self._count_tokens(user)
            if pre_tokens > self.max_input_tokens:
                raise TokenBudgetExceeded(f"TOKEN_BUDGET_EXCEEDED: {pre_tokens}>{self.max_input_tokens}")

        extra: Dict[str, Any] = {}
        if json_mode:
            extra["response_format"] = {"type": "json_object"}

        resp = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
            **extra,
        )

        content = resp.choices[0].message.content or ""
        usage = getattr(resp, "usage", None)
        used_in = int(getattr(usage, "prompt_tokens", 0) or 0)
        used_out = int(getattr(usage, "completion_tokens", 0) or 0)
        analytics_store.add(used_in, used_out, self.model, action)
        return content
