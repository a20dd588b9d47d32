# Controlling Core - Deviation & root-cause analytics for controlling teams
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Narrative seam for root-cause results.

The numeric root-cause result is always complete before a narrative is
requested. A narrative generator is any object with an async
``generate(prompt) -> str`` method (for example a thin wrapper around a
local or hosted language model). Timeouts and retries are the generator's
concern.

If the generator fails, the failure is logged and the numeric result is
returned unchanged.
"""

import dataclasses
import logging
from typing import Protocol

from .root_cause import RootCauseResult
from .views import format_currency

logger = logging.getLogger(__name__)

PROMPT_CLUSTERS = 3
PROMPT_DRIVERS = 3


class NarrativeGenerator(Protocol):
    async def generate(self, prompt: str) -> str: ...


def build_root_cause_prompt(result: RootCauseResult, currency: str = "EUR") -> str:
    """Build the prompt describing the top clusters and drivers of a result."""
    clusters = "\n".join(
        f"- {c.description} ({c.contribution_pct:.1f}% of the variance)"
        for c in result.clusters[:PROMPT_CLUSTERS]
    ) or "- none"
    drivers = "\n".join(
        f"- {d.dimension}/{d.key}: {format_currency(d.contribution, currency)}"
        for d in result.drivers[:PROMPT_DRIVERS]
    ) or "- none"

    return (
        "Write a concise business explanation (1-2 sentences) of the following "
        "variance analysis.\n\n"
        f"Account: {result.account_name} ({result.account})\n"
        f"Total variance: {format_currency(result.total_variance, currency)}\n"
        f"Confidence: {result.confidence * 100:.0f}%\n\n"
        f"Main clusters:\n{clusters}\n\n"
        f"Main drivers:\n{drivers}\n\n"
        "Write a clear, business-oriented explanation for stakeholders."
    )


async def explain_root_cause(
    result: RootCauseResult,
    generator: NarrativeGenerator,
    currency: str = "EUR",
) -> RootCauseResult:
    """
    Attach a generated narrative to a root-cause result.

    Returns a copy with ``narrative`` set, or ``result`` itself when the
    generator fails or returns an empty text.
    """
    prompt = build_root_cause_prompt(result, currency)
    try:
        text = await generator.generate(prompt)
    except Exception:
        logger.warning(
            "Narrative generation failed for account %s", result.account, exc_info=True
        )
        return result

    text = (text or "").strip()
    if not text:
        return result
    return dataclasses.replace(result, narrative=text)
