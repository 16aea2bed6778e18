"""Critic/refiner quality loop."""

import re
from collections.abc import Callable
from dataclasses import dataclass

import structlog
from pydantic import ValidationError

from csm_pipeline.errors import ConfigurationError, ParseError, StepInvocationError
from csm_pipeline.llm.json_parsing import parse_json_response
from csm_pipeline.models import ReviewResult

logger = structlog.get_logger(__name__)

SCORE_PATTERN = re.compile(r'"?(?:extraction_score|score)"?\s*[:=]\s*"?(-?\d+(?:\.\d+)?)')

# Critic: output -> raw review JSON
Critic = Callable[[str], str]
# Refiner: (output, raw review JSON) -> corrected output
Refiner = Callable[[str, str], str]


def extract_score(raw_review: str | None) -> float:
    """Read the quality score from a critic response.

    Tries a structural parse first, then a pattern scan for the score
    field. Anything unreadable scores 0.0, which keeps the loop refining
    rather than accepting an unverified output.
    """
    if not raw_review:
        return 0.0
    try:
        parsed = parse_json_response(raw_review)
        if isinstance(parsed, dict):
            for key in ("extraction_score", "score"):
                if parsed.get(key) is not None:
                    return min(1.0, max(0.0, float(parsed[key])))
    except (ParseError, TypeError, ValueError):
        pass

    match = SCORE_PATTERN.search(raw_review)
    if match:
        return min(1.0, max(0.0, float(match.group(1))))
    return 0.0


def parse_review(raw_review: str | None) -> ReviewResult:
    """Parse a critic response into a ReviewResult, degrading to score only."""
    if raw_review:
        try:
            parsed = parse_json_response(raw_review)
            if isinstance(parsed, dict):
                return ReviewResult.model_validate(parsed)
        except (ParseError, ValidationError) as e:
            logger.warning("review_parse_degraded", error=str(e)[:200])
    return ReviewResult(score=extract_score(raw_review), issues=[], summary=None)


@dataclass
class RefinementOutcome:
    """Result of a refinement loop run.

    quality_met=False is a normal terminal state: the output is the best
    available and review is the last critique of it.
    """

    output: str
    review: ReviewResult
    iterations: int
    critic_calls: int
    quality_met: bool
    error: str | None = None


class RefinementLoop:
    """Bounded critic/refiner loop with a bootstrap critique."""

    def __init__(self, max_iterations: int = 3, quality_threshold: float = 0.85):
        if max_iterations < 0:
            raise ConfigurationError(f"max_iterations must be >= 0, got {max_iterations}")
        if not 0.0 <= quality_threshold <= 1.0:
            raise ConfigurationError(f"quality_threshold must be within [0, 1], got {quality_threshold}")
        self.max_iterations = max_iterations
        self.quality_threshold = quality_threshold

    def run(self, initial_output: str, critic: Critic, refiner: Refiner) -> RefinementOutcome:
        """Critique the output and refine it until it meets the threshold.

        The first critique runs outside the iteration bound; an output that
        already passes is returned without refinement. Each iteration then
        refines and re-critiques. A step failure ends the loop with the last
        critiqued output and its review; an uncritiqued refinement is dropped.

        Args:
            initial_output: Output to review.
            critic: Returns a raw review for an output.
            refiner: Returns a corrected output for an output and its review.

        Returns:
            RefinementOutcome.
        """
        output = initial_output
        critic_calls = 0

        try:
            raw_review = critic(output)
            critic_calls += 1
        except StepInvocationError as e:
            logger.error("refinement_bootstrap_critic_failed", error=str(e))
            return RefinementOutcome(output, ReviewResult.empty(), 0, critic_calls, False, error=str(e))

        review = parse_review(raw_review)
        logger.info("refinement_bootstrap_review", score=review.score, issues=len(review.issues))

        if review.meets(self.quality_threshold):
            return RefinementOutcome(output, review, 0, critic_calls, True)

        for iteration in range(1, self.max_iterations + 1):
            try:
                refined = refiner(output, raw_review)
                refined_review = critic(refined)
                critic_calls += 1
            except StepInvocationError as e:
                # The last critiqued output stays paired with its review
                logger.error("refinement_step_failed", iteration=iteration, error=str(e))
                return RefinementOutcome(output, review, iteration - 1, critic_calls, False, error=str(e))

            output, raw_review = refined, refined_review
            review = parse_review(raw_review)
            logger.info(
                "refinement_iteration_complete",
                iteration=iteration,
                score=review.score,
                issues=len(review.issues),
                critical=review.critical_count,
            )

            if review.meets(self.quality_threshold):
                return RefinementOutcome(output, review, iteration, critic_calls, True)

        logger.warning(
            "refinement_threshold_not_met",
            iterations=self.max_iterations,
            final_score=review.score,
            threshold=self.quality_threshold,
        )
        return RefinementOutcome(output, review, self.max_iterations, critic_calls, False)
