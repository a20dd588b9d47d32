import asyncio
import logging

from controlling_core.narrative import build_root_cause_prompt, explain_root_cause
from controlling_core.root_cause import BookingCluster, RootCauseResult, VarianceDriver


def _result(**kw) -> RootCauseResult:
    data = dict(
        account=6500,
        account_name="Travel",
        total_prev=1_000.0,
        total_curr=6_000.0,
        total_variance=5_000.0,
        clusters=[
            BookingCluster(
                "emergency repair roof",
                "one_time",
                5_000.0,
                100.0,
                'One-time booking in the current period: "Emergency repair roof"',
            )
        ],
        drivers=[VarianceDriver("cost_center", "ADM", 1_000.0, 6_000.0, 5_000.0, 100.0)],
        confidence=0.64,
    )
    data.update(kw)
    return RootCauseResult(**data)


class _FixedGenerator:
    def __init__(self, text: str) -> None:
        self.text = text
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.text


class _FailingGenerator:
    async def generate(self, prompt: str) -> str:
        raise TimeoutError("model did not answer")


def test_prompt_lists_clusters_drivers_and_confidence() -> None:
    prompt = build_root_cause_prompt(_result())

    assert "Account: Travel (6500)" in prompt
    assert "Total variance: 5,000 EUR" in prompt
    assert "Confidence: 64%" in prompt
    assert '- One-time booking in the current period: "Emergency repair roof" (100.0% of the variance)' in prompt
    assert "- cost_center/ADM: 5,000 EUR" in prompt


def test_prompt_without_clusters_or_drivers() -> None:
    prompt = build_root_cause_prompt(_result(clusters=[], drivers=[]), currency="CHF")

    assert "Main clusters:\n- none" in prompt
    assert "Main drivers:\n- none" in prompt
    assert "5,000 CHF" in prompt


def test_narrative_is_attached() -> None:
    generator = _FixedGenerator("  A one-time roof repair explains the increase.  ")
    result = _result()

    explained = asyncio.run(explain_root_cause(result, generator))

    assert explained.narrative == "A one-time roof repair explains the increase."
    assert explained.clusters == result.clusters
    assert result.narrative is None
    assert len(generator.prompts) == 1


def test_failing_generator_keeps_numeric_result(caplog) -> None:
    result = _result()

    with caplog.at_level(logging.WARNING, logger="controlling_core.narrative"):
        explained = asyncio.run(explain_root_cause(result, _FailingGenerator()))

    assert explained is result
    assert explained.narrative is None
    assert "Narrative generation failed for account 6500" in caplog.text


def test_empty_narrative_is_ignored() -> None:
    result = _result()
    assert asyncio.run(explain_root_cause(result, _FixedGenerator("   "))) is result
