"""
Completion -> extraction -> validation loop for the skin analysis call.

At most two completion calls are made per run. The second call is either a
JSON repair (first answer did not parse) or a richness repair (first answer
parsed but was too thin), never both.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple
import logging

from app.core.exceptions import ExtractionError, UnparseableResponseError
from app.core.monitoring import analysis_repairs, completion_calls, skin_analysis_total
from app.services.openai_service import CompletionClient
from app.services.prompt_builder import JSON_REPAIR_INSTRUCTION, build_richness_repair_instruction
from app.services.richness_validator import RichnessReport, RichnessRules, validate_richness
from app.utils.date_utils import utc_now_iso
from app.utils.json_extraction import extract_json

logger = logging.getLogger(__name__)

MAX_COMPLETION_CALLS = 2

REPAIR_JSON = "json"
REPAIR_RICHNESS = "richness"


class AnalysisState(str, Enum):
    INITIAL = "initial"
    AWAITING_FIRST_COMPLETION = "awaiting_first_completion"
    EXTRACTING_FIRST = "extracting_first"
    AWAITING_JSON_REPAIR = "awaiting_json_repair"
    AWAITING_RICHNESS_REPAIR = "awaiting_richness_repair"
    DONE = "done"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class CompletionOptions:
    temperature: float
    max_tokens: int


@dataclass(frozen=True)
class AttemptOptions:
    first: CompletionOptions = CompletionOptions(temperature=0.4, max_tokens=1600)
    json_repair: CompletionOptions = CompletionOptions(temperature=0.2, max_tokens=1600)
    richness_repair: CompletionOptions = CompletionOptions(temperature=0.35, max_tokens=1800)

    @classmethod
    def from_settings(cls, settings) -> "AttemptOptions":
        return cls(
            first=CompletionOptions(settings.ANALYSIS_TEMPERATURE, settings.ANALYSIS_MAX_TOKENS),
            json_repair=CompletionOptions(settings.JSON_REPAIR_TEMPERATURE, settings.JSON_REPAIR_MAX_TOKENS),
            richness_repair=CompletionOptions(
                settings.RICHNESS_REPAIR_TEMPERATURE, settings.RICHNESS_REPAIR_MAX_TOKENS
            ),
        )


@dataclass
class AttemptState:
    """Per-run bookkeeping; never shared between requests"""
    state: AnalysisState = AnalysisState.INITIAL
    completion_calls: int = 0
    last_failure: Optional[str] = None
    repair_sent: Optional[str] = None

    def move_to(self, state: AnalysisState) -> None:
        logger.debug(f"Analysis state {self.state.value} -> {state.value}")
        self.state = state


@dataclass(frozen=True)
class AnalysisOutcome:
    analysis: Dict[str, Any]
    completion_calls: int
    repair: Optional[str] = None
    rich_enough: bool = True
    reasons: Tuple[str, ...] = field(default=())


def with_timestamp(parsed: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy carrying a timestamp when the key is absent; the candidate itself is left untouched"""
    if "timestamp" in parsed:
        return parsed
    return {**parsed, "timestamp": utc_now_iso()}


class AnalysisOrchestrator:
    def __init__(
        self,
        client: CompletionClient,
        rules: RichnessRules,
        options: Optional[AttemptOptions] = None,
    ):
        self.client = client
        self.rules = rules
        self.options = options or AttemptOptions()

    async def _complete(
        self,
        attempt: AttemptState,
        prompt: str,
        image_data_uri: str,
        options: CompletionOptions,
        follow_up: Optional[str] = None,
    ) -> str:
        if attempt.completion_calls >= MAX_COMPLETION_CALLS:
            raise RuntimeError("Completion call budget exhausted")

        attempt.completion_calls += 1
        return await self.client.complete(
            prompt,
            image_data_uri,
            follow_up=follow_up,
            temperature=options.temperature,
            max_tokens=options.max_tokens,
        )

    def _finish(
        self,
        attempt: AttemptState,
        analysis: Dict[str, Any],
        report: RichnessReport,
    ) -> AnalysisOutcome:
        attempt.move_to(AnalysisState.DONE)
        completion_calls.observe(attempt.completion_calls)
        skin_analysis_total.labels(outcome="rich" if report.passed else "best_effort").inc()

        logger.info(
            f"Skin analysis done after {attempt.completion_calls} completion call(s) "
            f"(repair={attempt.repair_sent}, rich_enough={report.passed})"
        )
        return AnalysisOutcome(
            analysis=analysis,
            completion_calls=attempt.completion_calls,
            repair=attempt.repair_sent,
            rich_enough=report.passed,
            reasons=report.reasons,
        )

    async def run(self, prompt: str, image_data_uri: str) -> AnalysisOutcome:
        """
        Produce a parsed analysis for one request.

        Raises UnparseableResponseError when neither the first answer nor the
        JSON repair answer contains a JSON object. Provider errors propagate.
        """
        attempt = AttemptState()

        attempt.move_to(AnalysisState.AWAITING_FIRST_COMPLETION)
        text = await self._complete(attempt, prompt, image_data_uri, self.options.first)

        attempt.move_to(AnalysisState.EXTRACTING_FIRST)
        try:
            first = extract_json(text)
        except ExtractionError as e:
            attempt.last_failure = str(e)
            logger.warning(f"First completion had no usable JSON ({e}); sending JSON repair")
            return await self._repair_json(attempt, prompt, image_data_uri)

        first = with_timestamp(first)
        report = validate_richness(first, self.rules)
        if report.passed:
            return self._finish(attempt, first, report)

        attempt.last_failure = "; ".join(report.reasons)
        logger.warning(f"Skin analysis too generic/short ({attempt.last_failure}); sending richness repair")
        return await self._repair_richness(attempt, prompt, image_data_uri, first, report)

    async def _repair_json(
        self,
        attempt: AttemptState,
        prompt: str,
        image_data_uri: str,
    ) -> AnalysisOutcome:
        attempt.move_to(AnalysisState.AWAITING_JSON_REPAIR)
        attempt.repair_sent = REPAIR_JSON
        analysis_repairs.labels(kind=REPAIR_JSON).inc()

        text = await self._complete(
            attempt, prompt, image_data_uri, self.options.json_repair, follow_up=JSON_REPAIR_INSTRUCTION
        )

        try:
            repaired = extract_json(text)
        except ExtractionError as e:
            attempt.move_to(AnalysisState.EXHAUSTED)
            skin_analysis_total.labels(outcome="unparseable").inc()
            logger.error(
                f"Model returned unparseable JSON twice (first: {attempt.last_failure}; repair: {e})"
            )
            raise UnparseableResponseError("Model returned unparseable JSON") from e

        repaired = with_timestamp(repaired)
        # Budget is spent; a thin answer is still returned
        return self._finish(attempt, repaired, validate_richness(repaired, self.rules))

    async def _repair_richness(
        self,
        attempt: AttemptState,
        prompt: str,
        image_data_uri: str,
        first: Dict[str, Any],
        first_report: RichnessReport,
    ) -> AnalysisOutcome:
        attempt.move_to(AnalysisState.AWAITING_RICHNESS_REPAIR)
        attempt.repair_sent = REPAIR_RICHNESS
        analysis_repairs.labels(kind=REPAIR_RICHNESS).inc()

        instruction = build_richness_repair_instruction(first_report.reasons, self.rules)
        text = await self._complete(
            attempt, prompt, image_data_uri, self.options.richness_repair, follow_up=instruction
        )

        try:
            second = extract_json(text)
        except ExtractionError as e:
            logger.warning(f"Richness repair had no usable JSON ({e}); keeping first answer")
            return self._finish(attempt, first, first_report)

        second = with_timestamp(second)
        return self._finish(attempt, second, validate_richness(second, self.rules))
