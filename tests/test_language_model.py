import asyncio
from types import SimpleNamespace

from language_model import OpenAIModel, analytics_store, calculate_cost


class FakeCompletions:
    def __init__(self):
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content='{"toneScore": 72}'))],
            usage=SimpleNamespace(prompt_tokens=120, completion_tokens=30),
        )


def test_generate_requests_json_and_tracks_usage():
    model = OpenAIModel("test-key", model="gpt-4o-mini")
    completions = FakeCompletions()
    model.client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    before = analytics_store.total_requests
    before_tone = analytics_store.action_counts.get("tone_consistency", 0)

    text = asyncio.run(model.generate("system", "user", temperature=0.3, max_tokens=300,
                                      json_mode=True, action="tone_consistency"))

    assert text == '{"toneScore": 72}'
    assert completions.kwargs["response_format"] == {"type": "json_object"}
    assert completions.kwargs["model"] == "gpt-4o-mini"
    assert analytics_store.total_requests == before + 1
    assert analytics_store.action_counts["tone_consistency"] == before_tone + 1
    assert analytics_store.summary_last_24h()["requests"] >= 1


def test_calculate_cost_falls_back_to_default_pricing():
    assert calculate_cost(1000, 1000, "unknown-model") == calculate_cost(1000, 1000, "gpt-4o")
    assert round(calculate_cost(1000, 0, "gpt-4o-mini")["total_cost"], 5) == 0.00015
