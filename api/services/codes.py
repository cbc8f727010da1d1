"""
Posting code generation.

Codes are short public identifiers drawn from a fixed alphabet. A random
source is tried first; if it keeps colliding a UUID-derived fallback source
takes over. Both budgets are bounded so a request never retries forever.
The unique constraint on ``job_postings.code`` remains the final authority:
these probes only make a collision at insert time unlikely.
"""

import logging
import secrets
import uuid
from typing import Awaitable, Callable, Optional, Protocol

from core.config import settings
from api.services.errors import CodeGenerationExhausted

logger = logging.getLogger(__name__)

CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

CodeProbe = Callable[[str], Awaitable[bool]]


class CodeCandidateSource(Protocol):
    """Produces candidate codes; uniqueness is checked by the caller."""

    def next_candidate(self) -> str: ...


class RandomCodeSource:
    """Uniform random codes from the alphabet."""

    def __init__(self, length: int = 6, alphabet: str = CODE_ALPHABET):
        self.length = length
        self.alphabet = alphabet

    def next_candidate(self) -> str:
        return "".join(secrets.choice(self.alphabet) for _ in range(self.length))


class FallbackCodeSource:
    """Codes derived from a random UUID, base-N encoded over the alphabet."""

    def __init__(self, length: int = 6, alphabet: str = CODE_ALPHABET):
        self.length = length
        self.alphabet = alphabet

    def next_candidate(self) -> str:
        value = uuid.uuid4().int
        base = len(self.alphabet)
        symbols = []
        while len(symbols) < self.length:
            value, index = divmod(value, base)
            symbols.append(self.alphabet[index])
        return "".join(symbols)


class CodeGenerator:
    """
    Bounded unique-code driver over a primary and a fallback source.

    Args:
        primary: Source tried first
        fallback: Source tried once the primary budget is spent
        primary_attempts: Probe budget for the primary source
        fallback_attempts: Probe budget for the fallback source
    """

    def __init__(
        self,
        primary: Optional[CodeCandidateSource] = None,
        fallback: Optional[CodeCandidateSource] = None,
        primary_attempts: Optional[int] = None,
        fallback_attempts: Optional[int] = None,
    ):
        self.primary = primary or RandomCodeSource(settings.code_length)
        self.fallback = fallback or FallbackCodeSource(settings.code_length)
        self.primary_attempts = (
            settings.code_random_attempts if primary_attempts is None else primary_attempts
        )
        self.fallback_attempts = (
            settings.code_fallback_attempts if fallback_attempts is None else fallback_attempts
        )

    @property
    def max_attempts(self) -> int:
        return self.primary_attempts + self.fallback_attempts

    async def ensure_unique_code(self, exists: CodeProbe) -> str:
        """
        Return a code that no stored posting currently uses.

        Args:
            exists: Async probe returning True when a code is already taken

        Returns:
            Unused candidate code

        Raises:
            CodeGenerationExhausted: Every probe in both budgets collided
        """
        candidate = await self._attempt(self.primary, self.primary_attempts, exists)
        if candidate is not None:
            return candidate

        logger.warning(
            f"Random code source collided {self.primary_attempts} times, "
            f"switching to fallback source"
        )
        candidate = await self._attempt(self.fallback, self.fallback_attempts, exists)
        if candidate is not None:
            return candidate

        logger.error(f"Posting code generation exhausted after {self.max_attempts} attempts")
        raise CodeGenerationExhausted(self.max_attempts)

    async def _attempt(
        self, source: CodeCandidateSource, attempts: int, exists: CodeProbe
    ) -> Optional[str]:
        for attempt in range(attempts):
            candidate = source.next_candidate()
            if not await exists(candidate):
                logger.debug(f"Generated unique code {candidate} on attempt {attempt + 1}")
                return candidate
            logger.debug(f"Code {candidate} already taken")
        return None
