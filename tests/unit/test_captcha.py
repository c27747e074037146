"""Unit tests for the captcha renderer and CaptchaChallengeService."""

import base64
import io
import random
from datetime import timedelta

import pytest
from PIL import Image

from errors import RenderingError
from infrastructure.captcha.renderer import (
    BACKGROUND,
    GLYPH_TILE,
    LINE_COLOR,
    NOISE_COLOR,
    PillowCaptchaRenderer,
)
from services.captcha_service import CaptchaChallengeService, normalize_answer
from shared.generators import CAPTCHA_ALPHABET

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


# ── PillowCaptchaRenderer ─────────────────────────────────────────────────────


class TestPillowCaptchaRenderer:
    def test_renders_png_of_configured_size(self):
        png = PillowCaptchaRenderer().render("K3F9", random.Random(7))
        assert png.startswith(PNG_MAGIC)
        with Image.open(io.BytesIO(png)) as img:
            assert img.size == (120, 40)
            assert img.mode == "RGB"

    def test_custom_dimensions(self):
        png = PillowCaptchaRenderer(width=160, height=60).render("AB23", random.Random(1))
        with Image.open(io.BytesIO(png)) as img:
            assert img.size == (160, 60)

    def test_same_seed_gives_identical_bytes(self):
        renderer = PillowCaptchaRenderer()
        assert renderer.render("K3F9", random.Random(42)) == renderer.render(
            "K3F9", random.Random(42)
        )

    def test_different_seeds_give_different_images(self):
        renderer = PillowCaptchaRenderer()
        assert renderer.render("K3F9", random.Random(1)) != renderer.render(
            "K3F9", random.Random(2)
        )

    def test_missing_font_file_raises(self):
        renderer = PillowCaptchaRenderer(font_path="/nonexistent/font.ttf")
        with pytest.raises(OSError):
            renderer.render("K3F9", random.Random(1))

    @pytest.mark.parametrize("length", range(1, 9))
    def test_every_glyph_tile_lies_on_the_canvas(self, length):
        offsets = PillowCaptchaRenderer().glyph_offsets(length)
        assert len(offsets) == length
        assert offsets == sorted(offsets)
        assert offsets[0] >= 0
        assert offsets[-1] + GLYPH_TILE <= 120

    def test_long_answer_draws_its_last_glyph(self):
        renderer = PillowCaptchaRenderer()
        offsets = renderer.glyph_offsets(6)
        png = renderer.render("WWWWWW", random.Random(1))
        with Image.open(io.BytesIO(png)) as img:
            # Columns covered only by the last tile
            strip = img.crop((offsets[-2] + GLYPH_TILE, 0, offsets[-1] + GLYPH_TILE, 40))
            colours = {colour for _, colour in strip.getcolors(maxcolors=4096)}
        assert colours - {BACKGROUND, NOISE_COLOR, LINE_COLOR}


# ── CaptchaChallengeService.generate ──────────────────────────────────────────


class TestGenerate:
    async def test_stores_lowercased_answer(self, captcha_service, store, renderer):
        challenge = await captcha_service.generate()
        answer = renderer.rendered[-1]
        assert len(answer) == 4
        assert set(answer) <= set(CAPTCHA_ALPHABET)
        assert await store.take_if_valid(challenge.captcha_id) == answer.lower()

    async def test_returns_image_and_expiry(self, captcha_service, clock):
        challenge = await captcha_service.generate()
        assert challenge.image_png.startswith(PNG_MAGIC)
        assert base64.b64decode(challenge.image_base64) == challenge.image_png
        assert challenge.expires_at == clock.now + timedelta(minutes=5)

    async def test_ids_are_unique(self, captcha_service):
        ids = {(await captcha_service.generate()).captcha_id for _ in range(20)}
        assert len(ids) == 20

    async def test_seeded_rng_is_reproducible(self, store, clock, make_renderer):
        texts = []
        for _ in range(2):
            renderer = make_renderer()
            service = CaptchaChallengeService(
                store, renderer, rng=random.Random(99), clock=clock
            )
            await service.generate()
            await service.generate()
            texts.append(renderer.rendered)
        assert texts[0] == texts[1]

    async def test_render_failure_raises_and_stores_nothing(self, store, clock, make_renderer):
        service = CaptchaChallengeService(
            store, make_renderer(error=OSError("font missing")), clock=clock
        )
        with pytest.raises(RenderingError) as exc_info:
            await service.generate()
        assert isinstance(exc_info.value.__cause__, OSError)
        assert len(store) == 0

    async def test_custom_length_and_ttl(self, store, renderer, clock):
        service = CaptchaChallengeService(
            store, renderer, clock=clock, ttl=timedelta(seconds=30), length=6
        )
        challenge = await service.generate()
        assert len(renderer.rendered[-1]) == 6
        assert challenge.expires_at == clock.now + timedelta(seconds=30)


# ── CaptchaChallengeService.validate ──────────────────────────────────────────


class TestValidate:
    async def test_correct_answer_any_case_then_single_use(self, captcha_service, mocker):
        mocker.patch("services.captcha_service.generate_captcha_text", return_value="K3F9")
        challenge = await captcha_service.generate()

        assert await captcha_service.validate(challenge.captcha_id, "k3f9") is True
        assert await captcha_service.validate(challenge.captcha_id, "K3F9") is False

    async def test_wrong_answer_consumes_challenge(self, captcha_service, mocker):
        mocker.patch("services.captcha_service.generate_captcha_text", return_value="K3F9")
        challenge = await captcha_service.generate()

        assert await captcha_service.validate(challenge.captcha_id, "XXXX") is False
        assert await captcha_service.validate(challenge.captcha_id, "K3F9") is False

    async def test_expired_challenge_fails(self, captcha_service, clock, mocker):
        mocker.patch("services.captcha_service.generate_captcha_text", return_value="K3F9")
        challenge = await captcha_service.generate()
        clock.advance(minutes=5, seconds=1)
        assert await captcha_service.validate(challenge.captcha_id, "K3F9") is False

    async def test_valid_at_exact_deadline(self, captcha_service, clock, mocker):
        mocker.patch("services.captcha_service.generate_captcha_text", return_value="K3F9")
        challenge = await captcha_service.generate()
        clock.advance(minutes=5)
        assert await captcha_service.validate(challenge.captcha_id, "K3F9") is True

    @pytest.mark.parametrize("captcha_id", [None, ""])
    async def test_missing_id_is_false(self, captcha_service, captcha_id):
        assert await captcha_service.validate(captcha_id, "K3F9") is False

    async def test_unknown_id_is_false(self, captcha_service):
        assert await captcha_service.validate("never-issued", "K3F9") is False

    async def test_missing_input_is_false(self, captcha_service, mocker):
        mocker.patch("services.captcha_service.generate_captcha_text", return_value="K3F9")
        challenge = await captcha_service.generate()
        assert await captcha_service.validate(challenge.captcha_id, None) is False

    async def test_surrounding_whitespace_is_not_stripped(self, captcha_service, mocker):
        mocker.patch("services.captcha_service.generate_captcha_text", return_value="K3F9")
        challenge = await captcha_service.generate()
        assert await captcha_service.validate(challenge.captcha_id, " K3F9 ") is False


# ── CaptchaChallengeService.refresh ───────────────────────────────────────────


class TestRefresh:
    async def test_old_id_dies_new_one_works(self, captcha_service, mocker):
        mocker.patch(
            "services.captcha_service.generate_captcha_text",
            side_effect=["AAAA", "BBBB"],
        )
        old = await captcha_service.generate()
        new = await captcha_service.refresh(old.captcha_id)

        assert new.captcha_id != old.captcha_id
        assert await captcha_service.validate(old.captcha_id, "AAAA") is False
        assert await captcha_service.validate(new.captcha_id, "BBBB") is True

    async def test_unknown_or_missing_id_still_issues(self, captcha_service, store):
        first = await captcha_service.refresh("never-issued")
        second = await captcha_service.refresh(None)
        assert first.captcha_id != second.captcha_id
        assert len(store) == 2


def test_normalize_answer_casefolds():
    assert normalize_answer("K3f9") == "k3f9"
    assert normalize_answer("STRASSE") == normalize_answer("stra\u00dfe")
