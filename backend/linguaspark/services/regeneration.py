"""Bounded generate → validate → retry loop for one lesson section.

The loop is an explicit state machine:

    IDLE → GENERATING → VALIDATING → ACCEPTED
                ↓            ↓
                └──────→ RETRYING → GENERATING   (attempts left)
                             ↓
                         EXHAUSTED                (budget spent)

An unparseable response or a service failure (timeouts included) moves
GENERATING straight to RETRYING and still uses up an attempt. On EXHAUSTED the
last candidate ships with a warning, unless it falls below its section's
minimum viable payload or no candidate was ever produced, in which case the
loop raises.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from linguaspark.config import settings
from linguaspark.services.generation_log import log_generation_event
from linguaspark.services.llm import GenerationServiceFailure
from linguaspark.services.response_parsing import ResponseParseError
from linguaspark.services.section_validators import ValidationResult, minimum_viable_issue
from linguaspark.services.sections import SectionKind
from linguaspark.services.shared_context import SharedContext

logger = logging.getLogger(__name__)


class RegenerationState(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    VALIDATING = "validating"
    ACCEPTED = "accepted"
    RETRYING = "retrying"
    EXHAUSTED = "exhausted"


ALLOWED_TRANSITIONS = {
    RegenerationState.IDLE: {RegenerationState.GENERATING},
    RegenerationState.GENERATING: {RegenerationState.VALIDATING, RegenerationState.RETRYING},
    RegenerationState.VALIDATING: {RegenerationState.ACCEPTED, RegenerationState.RETRYING},
    RegenerationState.RETRYING: {RegenerationState.GENERATING, RegenerationState.EXHAUSTED},
    RegenerationState.ACCEPTED: set(),
    RegenerationState.EXHAUSTED: set(),
}


class ExhaustedRegeneration(Exception):
    """The attempt budget ran out without a section worth shipping."""

    def __init__(self, section: SectionKind, reason: str, validation: ValidationResult | None = None):
        super().__init__(f"{section.value}: {reason}")
        self.section = section
        self.reason = reason
        self.validation = validation


@dataclass
class RegenerationOutcome:
    section: Any
    validation: ValidationResult
    attempts: int
    state: RegenerationState
    duration_ms: int
    history: list[RegenerationState] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return self.state == RegenerationState.ACCEPTED

    @property
    def regenerated(self) -> bool:
        return self.attempts > 1


class RegenerationController:
    def __init__(
        self,
        kind: SectionKind,
        generate: Callable[..., Any],
        validate: Callable[[Any, SharedContext], ValidationResult],
        max_attempts: int | None = None,
    ):
        self.kind = kind
        self.generate = generate
        self.validate = validate
        self.max_attempts = max_attempts or settings.max_section_attempts
        self.state = RegenerationState.IDLE
        self.history: list[RegenerationState] = [self.state]

    def _transition(self, new_state: RegenerationState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal regeneration transition {self.state.value} → {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    def run(self, context: SharedContext, previous: dict) -> RegenerationOutcome:
        self.state = RegenerationState.IDLE
        self.history = [self.state]
        start = time.time()

        candidate = None
        validation: ValidationResult | None = None
        feedback: list[str] | None = None
        service_error: GenerationServiceFailure | None = None
        attempts = 0

        self._transition(RegenerationState.GENERATING)
        while True:
            attempts += 1
            try:
                produced = self.generate(context, previous, feedback)
            except ResponseParseError as e:
                logger.warning(f"{self.kind.value} attempt {attempts}: unparseable response: {e}")
                log_generation_event("parse_failed", self.kind.value, attempts, self.state.value, error=str(e))
                feedback = [f"The response could not be parsed ({e}). Follow the output format exactly."]
                self._transition(RegenerationState.RETRYING)
            except GenerationServiceFailure as e:
                logger.warning(f"{self.kind.value} attempt {attempts}: service failure {e.kind.value}: {e}")
                log_generation_event(
                    "service_failed", self.kind.value, attempts, self.state.value,
                    error=str(e), failure_kind=e.kind.value,
                )
                service_error = e
                self._transition(RegenerationState.RETRYING)
            else:
                candidate = produced
                self._transition(RegenerationState.VALIDATING)
                validation = self.validate(candidate, context)
                log_generation_event(
                    "validated", self.kind.value, attempts, self.state.value,
                    valid=validation.valid, score=validation.score,
                    issues=validation.issues, warnings=validation.warnings,
                )
                if validation.valid:
                    self._transition(RegenerationState.ACCEPTED)
                    break
                logger.info(f"{self.kind.value} attempt {attempts} invalid: {'; '.join(validation.issues)}")
                feedback = validation.issues
                self._transition(RegenerationState.RETRYING)

            if attempts >= self.max_attempts:
                self._transition(RegenerationState.EXHAUSTED)
                break
            self._transition(RegenerationState.GENERATING)

        duration_ms = int((time.time() - start) * 1000)

        if self.state == RegenerationState.EXHAUSTED:
            if candidate is None:
                if service_error is not None:
                    raise service_error
                raise ExhaustedRegeneration(self.kind, f"no usable response after {attempts} attempts")
            reason = minimum_viable_issue(candidate)
            if reason:
                raise ExhaustedRegeneration(self.kind, reason, validation)
            logger.warning(
                f"{self.kind.value} exhausted {attempts} attempts, shipping last candidate "
                f"(score {validation.score})"
            )

        return RegenerationOutcome(
            section=candidate,
            validation=validation,
            attempts=attempts,
            state=self.state,
            duration_ms=duration_ms,
            history=list(self.history),
        )
