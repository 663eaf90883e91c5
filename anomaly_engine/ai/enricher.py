"""Anomaly Enricher — business impact, narrative and optional generated insights."""

import asyncio
from typing import Optional

from ..contracts import DetectedAnomaly, DetectionContext
from ..utils.logging import get_logger
from .business_impact import assess_business_impact
from .explainability import AnomalyExplainer
from .text_generation import TextGenerator, build_prompt, parse_insights

logger = get_logger("ai.enricher")


class AnomalyEnricher:
    """Adds business context to detected anomalies.

    Impact and narrative are always computed locally. When a text generator is
    configured, each anomaly also gets up to three generated reasons and
    factors; a failed or slow call leaves the statistical explanation as is.
    """

    def __init__(
        self,
        text_generator: Optional[TextGenerator] = None,
        timeout: float = 10.0,
        concurrency: int = 4,
    ):
        self._text_generator = text_generator
        self._timeout = timeout
        self._semaphore = asyncio.Semaphore(max(1, concurrency))
        self._explainer = AnomalyExplainer()

    async def enrich(self, anomalies: list[DetectedAnomaly], context: DetectionContext) -> list[DetectedAnomaly]:
        enriched = []
        for anomaly in anomalies:
            with_impact = anomaly.model_copy(update={
                "business_impact": assess_business_impact(anomaly, context),
            })
            narrative = self._explainer.generate_narrative(with_impact)
            with_impact.explanation = with_impact.explanation.model_copy(update={"narrative": narrative})
            enriched.append(with_impact)

        if self._text_generator is None or not enriched:
            return enriched
        return list(await asyncio.gather(*(self._add_insights(a, context) for a in enriched)))

    async def _add_insights(self, anomaly: DetectedAnomaly, context: DetectionContext) -> DetectedAnomaly:
        prompt = build_prompt(anomaly, context)
        async with self._semaphore:
            try:
                response = await asyncio.wait_for(
                    self._text_generator.generate(prompt, context.user_role),
                    timeout=self._timeout,
                )
            except asyncio.TimeoutError:
                logger.warning("enrichment_timeout", anomaly_id=anomaly.id, timeout=self._timeout)
                return anomaly
            except Exception as e:
                logger.error("enrichment_failed", anomaly_id=anomaly.id, error=str(e))
                return anomaly

        insights = parse_insights(response)
        explanation = anomaly.explanation
        anomaly.explanation = explanation.model_copy(update={
            "possible_reasons": explanation.possible_reasons
            + [r for r in insights.reasons if r not in explanation.possible_reasons],
            "contributing_factors": explanation.contributing_factors
            + [f for f in insights.factors if f not in explanation.contributing_factors],
        })
        return anomaly
