"""Conflict resolution: decide what to do when a candidate name already exists."""

from __future__ import annotations

import logging
import random
import re
import string
from enum import Enum
from typing import Awaitable, Callable

from pydantic import BaseModel

from namecheck.settings.models import ConflictStrategy
from namecheck.validator.models import ValidationResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_SUFFIX_LENGTH = 4
# SuffixRandom: first suffix plus one retry
SUFFIX_RANDOM_ATTEMPTS = 2

REASON_ALREADY_EXISTS = "name already exists"
REASON_EXHAUSTED = "exhausted attempts"
REASON_UNAVAILABLE = "validation unavailable"

SUFFIX_ALPHABET = string.ascii_lowercase + string.digits

_TRAILING_NUMBER_RE = re.compile(r"^(?P<stem>.*?)(?P<number>\d+)$")

ValidateFn = Callable[[str], Awaitable[ValidationResult]]
Mutator = Callable[[str], str]


class ConflictOutcome(str, Enum):
    accepted = "Accepted"
    auto_resolved = "AutoResolved"
    conflict = "Conflict"
    rejected = "Rejected"


class Resolution(BaseModel):
    """Terminal state of a conflict-resolution run."""

    outcome: ConflictOutcome
    final_name: str | None = None
    reason: str | None = None
    attempts: int = 0
    result: ValidationResult


def increment_instance(name: str) -> str:
    """Increment the trailing instance number, keeping its zero padding.

    'vm-app-001' -> 'vm-app-002', 'vm-app-9' -> 'vm-app-10'. A name without a
    trailing number gets '001' appended.
    """
    match = _TRAILING_NUMBER_RE.match(name)
    if match is None:
        return f"{name}001"
    number = match.group("number")
    incremented = str(int(number) + 1).zfill(len(number))
    return f"{match.group('stem')}{incremented}"


def append_random_suffix(
    name: str,
    length: int = DEFAULT_SUFFIX_LENGTH,
    rng: random.Random | None = None,
) -> str:
    """Append a lowercase alphanumeric suffix of fixed length."""
    chooser = rng or random.SystemRandom()
    return name + "".join(chooser.choice(SUFFIX_ALPHABET) for _ in range(length))


async def resolve_conflict(
    candidate_name: str,
    result: ValidationResult,
    strategy: ConflictStrategy,
    validate: ValidateFn,
    mutate: Mutator | None = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> Resolution:
    """Apply a conflict strategy to a validated candidate name.

    validate is only called for mutated candidates (AutoIncrement and
    SuffixRandom). mutate defaults to increment_instance for AutoIncrement and
    append_random_suffix for SuffixRandom.
    """
    if not result.exists_in_azure:
        return Resolution(
            outcome=ConflictOutcome.accepted,
            final_name=candidate_name,
            result=result,
        )

    if strategy == ConflictStrategy.notify_only:
        return Resolution(
            outcome=ConflictOutcome.conflict,
            final_name=candidate_name,
            reason=REASON_ALREADY_EXISTS,
            result=result,
        )

    if strategy == ConflictStrategy.fail:
        return Resolution(
            outcome=ConflictOutcome.rejected,
            reason=REASON_ALREADY_EXISTS,
            result=result,
        )

    if strategy == ConflictStrategy.auto_increment:
        return await _retry_with_mutation(
            candidate_name,
            result,
            validate,
            mutate or increment_instance,
            max_attempts=max_attempts,
            chain=True,
        )

    if strategy == ConflictStrategy.suffix_random:
        return await _retry_with_mutation(
            candidate_name,
            result,
            validate,
            mutate or append_random_suffix,
            max_attempts=SUFFIX_RANDOM_ATTEMPTS,
            chain=False,
        )

    raise ValueError(f"Unknown conflict strategy: {strategy}")


async def _retry_with_mutation(
    original: str,
    result: ValidationResult,
    validate: ValidateFn,
    mutate: Mutator,
    max_attempts: int,
    chain: bool,
) -> Resolution:
    """Mutate and re-validate until a free name is found or attempts run out.

    With chain=True each mutation builds on the previous candidate; otherwise
    every attempt mutates the original name afresh.
    """
    candidate = original
    last = result

    for attempt in range(1, max_attempts + 1):
        candidate = mutate(candidate if chain else original)
        last = await validate(candidate)

        if not last.validation_performed:
            logger.warning(
                "Conflict resolution for '%s' stopped: validation unavailable (%s)",
                original, last.warning,
            )
            return Resolution(
                outcome=ConflictOutcome.rejected,
                reason=REASON_UNAVAILABLE,
                attempts=attempt,
                result=last,
            )

        if not last.exists_in_azure:
            logger.info("Resolved name conflict: '%s' -> '%s'", original, candidate)
            return Resolution(
                outcome=ConflictOutcome.auto_resolved,
                final_name=candidate,
                attempts=attempt,
                result=last,
            )

    logger.info(
        "Could not resolve name conflict for '%s' after %d attempts", original, max_attempts,
    )
    return Resolution(
        outcome=ConflictOutcome.rejected,
        reason=REASON_EXHAUSTED,
        attempts=max_attempts,
        result=last,
    )
