"""
Captcha challenge service: generate, validate-and-consume, refresh.

A challenge is a random 4-character answer rendered into a distorted PNG.
Only the case-folded answer is kept, in the ChallengeStore, keyed by an
unguessable id. Validation always consumes the stored answer, so each id
can be checked exactly once whatever the outcome.
"""

from __future__ import annotations

import asyncio
import base64
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from errors import RenderingError
from infrastructure.cache.challenge_store import ChallengeStore
from infrastructure.captcha.protocol import CaptchaRenderer
from shared.crypto import constant_time_equals
from shared.datetime_utils import Clock, utc_now
from shared.generators import generate_captcha_text, generate_challenge_id
from shared.logging import get_logger

log = get_logger(__name__)

DEFAULT_TTL = timedelta(minutes=5)


@dataclass(frozen=True)
class CaptchaChallenge:
    captcha_id: str
    image_png: bytes
    expires_at: datetime

    @property
    def image_base64(self) -> str:
        return base64.b64encode(self.image_png).decode("ascii")


def normalize_answer(answer: str) -> str:
    return answer.casefold()


class CaptchaChallengeService:
    def __init__(
        self,
        store: ChallengeStore,
        renderer: CaptchaRenderer,
        *,
        rng: Optional[random.Random] = None,
        clock: Clock = utc_now,
        ttl: timedelta = DEFAULT_TTL,
        length: int = 4,
    ) -> None:
        self._store = store
        self._renderer = renderer
        self._rng = rng if rng is not None else random.SystemRandom()
        self._clock = clock
        self._ttl = ttl
        self._length = length

    async def generate(self) -> CaptchaChallenge:
        """Create a new challenge and store its answer.

        Raises:
            RenderingError: the image could not be produced. Nothing is
                stored in that case.
        """
        captcha_id = generate_challenge_id()
        answer = generate_captcha_text(self._rng, self._length)

        try:
            # CPU-bound; keep it off the event loop
            image_png = await asyncio.to_thread(self._renderer.render, answer, self._rng)
        except Exception as e:
            log.error(
                "captcha_render_failed",
                captcha_id=captcha_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RenderingError() from e

        expires_at = self._clock() + self._ttl
        await self._store.put(captcha_id, normalize_answer(answer), self._ttl)

        log.info("captcha_generated", captcha_id=captcha_id)
        return CaptchaChallenge(
            captcha_id=captcha_id, image_png=image_png, expires_at=expires_at
        )

    async def validate(self, captcha_id: Optional[str], user_input: Optional[str]) -> bool:
        """Check *user_input* against the stored answer, consuming the challenge.

        Absent, expired, already-used and mismatched challenges all return
        ``False``. Only store outages raise.
        """
        if not captcha_id:
            return False

        expected = await self._store.take_if_valid(captcha_id)
        if expected is None:
            log.warning("captcha_not_found_or_expired", captcha_id=captcha_id)
            return False

        is_valid = constant_time_equals(expected, normalize_answer(user_input or ""))
        log.info("captcha_validated", captcha_id=captcha_id, is_valid=is_valid)
        return is_valid

    async def refresh(self, captcha_id: Optional[str]) -> CaptchaChallenge:
        """Discard *captcha_id* and issue a brand new challenge."""
        if captcha_id:
            await self._store.remove(captcha_id)
            log.debug("captcha_discarded", captcha_id=captcha_id)
        return await self.generate()
