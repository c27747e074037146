"""CaptchaRenderer protocol: the captcha service depends on this, not on Pillow."""

import random
from typing import Protocol


class CaptchaRenderer(Protocol):
    def render(self, text: str, rng: random.Random) -> bytes: ...
