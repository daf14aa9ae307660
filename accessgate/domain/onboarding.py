"""
Onboarding scorer - Questionnaire answers to trait scores.

Pure function, no I/O. The mean of the answer scores becomes the
contradiction_tolerance of the registration payload; the tag attached to
the final question becomes belief_sensitivity.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from .exceptions import InsufficientAnswers
from .models import BeliefTag


@dataclass(frozen=True)
class OnboardingAnswer:
    score: float
    belief_tag: BeliefTag | None = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.score <= 1.0:
            raise ValueError(f"score must be within [0, 1], got {self.score}")


@dataclass(frozen=True)
class OnboardingScore:
    contradiction_tolerance: float
    belief_sensitivity: BeliefTag | None


def score_answers(answers: Sequence[OnboardingAnswer]) -> OnboardingScore:
    """
    Score an ordered sequence of onboarding answers.

    Args:
        answers: Answers in question order

    Returns:
        Mean score rounded to 2 decimals and the terminal answer's tag

    Raises:
        InsufficientAnswers: If answers is empty
    """
    if not answers:
        raise InsufficientAnswers("at least one answer is required")

    mean = sum(answer.score for answer in answers) / len(answers)
    return OnboardingScore(
        contradiction_tolerance=round(mean, 2),
        belief_sensitivity=answers[-1].belief_tag,
    )
