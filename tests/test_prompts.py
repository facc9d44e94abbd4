"""Tests for the prompt builder."""

import pytest

from rewrite_moment import prompts
from rewrite_moment.models import CreativeParams, StepKind


FULL_PARAMS = {
    "prompt": "A graduation day",
    "stage": "20s",
    "genre": "melo",
    "distance": "closeup",
    "ending": "twist",
    "mode": "trailer",
    "aspectRatio": "16:9",
    "movieTheme": "noir",
    "rewriteText": "they win the lottery",
    "sliders": {"realism": 85, "intensity": 10, "pace": 55},
}


class TestDeterminism:
    @pytest.mark.parametrize("step_kind", [StepKind.COMPOSE, StepKind.ANIMATE])
    def test_same_params_same_text(self, step_kind):
        first = prompts.build(CreativeParams.model_validate(FULL_PARAMS), step_kind, subject_count=2)
        for _ in range(5):
            again = prompts.build(CreativeParams.model_validate(FULL_PARAMS), step_kind, subject_count=2)
            assert again.instruction_text == first.instruction_text
            assert again.negative_text == first.negative_text

    def test_full_params_render_every_choice(self):
        text = prompts.build(CreativeParams.model_validate(FULL_PARAMS), StepKind.ANIMATE).instruction_text
        assert text.startswith("A graduation day, their twenties")
        assert prompts.GENRE_STYLES["melo"] in text
        assert prompts.DISTANCE_SHOTS["closeup"] in text
        assert prompts.ENDINGS["twist"] in text
        assert prompts.MODES["trailer"] in text
        assert prompts.MOVIE_THEMES["noir"] in text
        assert "The scene transforms to show: they win the lottery" in text
        assert prompts.REALISM_BANDS["high"] in text
        assert prompts.INTENSITY_BANDS["low"] in text
        assert prompts.PACE_BANDS["mid"] in text
        assert "Widescreen 16:9 framing" in text


class TestDefaults:
    def test_empty_params_use_default_variant(self):
        text = prompts.build(CreativeParams(), StepKind.ANIMATE).instruction_text
        assert text.startswith(prompts.DEFAULT_SUBJECT_PROMPT)
        assert prompts.GENRE_STYLES[prompts.DEFAULT_GENRE] in text
        assert prompts.MODES[prompts.DEFAULT_MODE] in text
        assert "Vertical 9:16 framing" in text

    def test_none_params_equal_empty_params(self):
        assert prompts.build(None, StepKind.ANIMATE) == prompts.build(CreativeParams(), StepKind.ANIMATE)

    @pytest.mark.parametrize("step_kind", [StepKind.COMPOSE, StepKind.ANIMATE])
    def test_unknown_enum_values_fall_back(self, step_kind):
        unknown = CreativeParams.model_validate({
            "stage": "retired",
            "genre": "horror",
            "distance": "satellite",
            "ending": "cliffhanger",
            "mode": "feature-film",
            "aspectRatio": "4:3",
            "movieTheme": "zombie",
        })
        assert prompts.build(unknown, step_kind) == prompts.build(CreativeParams(), step_kind)

    def test_wrong_types_never_raise(self):
        params = CreativeParams.model_validate({
            "genre": 42,
            "stage": ["teen"],
            "ending": None,
            "sliders": {"realism": "very", "intensity": True, "pace": {"x": 1}},
            "rewriteText": {"nested": "object"},
        })
        spec = prompts.build(params, StepKind.ANIMATE)
        assert spec.instruction_text == prompts.build(CreativeParams(), StepKind.ANIMATE).instruction_text

    def test_sliders_not_an_object(self):
        params = CreativeParams.model_validate({"sliders": "loud"})
        assert params.sliders.realism is None

    def test_enum_values_are_case_insensitive(self):
        upper = prompts.build(CreativeParams(genre="COMEDY"), StepKind.ANIMATE)
        lower = prompts.build(CreativeParams(genre="comedy"), StepKind.ANIMATE)
        assert upper == lower

    def test_theme_aliases(self):
        text = prompts.build(CreativeParams(movie_theme="sci-fi"), StepKind.ANIMATE).instruction_text
        assert prompts.MOVIE_THEMES["scifi"] in text


class TestSliderBands:
    @pytest.mark.parametrize(
        "value,band",
        [
            (0, "low"),
            (39.9, "low"),
            (40, "mid"),
            (55, "mid"),
            (70, "mid"),
            (70.1, "high"),
            (100, "high"),
            (None, "mid"),
            (-5, "low"),
            (150, "high"),
        ],
    )
    def test_thresholds(self, value, band):
        assert prompts.slider_band(value) == band

    def test_numeric_strings_are_accepted(self):
        params = CreativeParams.model_validate({"sliders": {"pace": "90"}})
        text = prompts.build(params, StepKind.ANIMATE).instruction_text
        assert prompts.PACE_BANDS["high"] in text


class TestIdentityClause:
    def test_single_subject_animate(self):
        text = prompts.build(CreativeParams(), StepKind.ANIMATE, subject_count=1).instruction_text
        assert "Preserve the exact identity of the person" in text
        assert "every frame" in text

    def test_two_subjects_compose(self):
        text = prompts.build(CreativeParams(), StepKind.COMPOSE, subject_count=2).instruction_text
        assert "Preserve the exact identities of BOTH people" in text
        assert "do NOT blend their faces" in text
        assert "the generated image" in text

    def test_two_subjects_animate(self):
        text = prompts.build(CreativeParams(), StepKind.ANIMATE, subject_count=2).instruction_text
        assert "BOTH people" in text
        assert text.startswith(prompts.DEFAULT_PAIR_PROMPT)

    def test_no_subject_no_clause(self):
        text = prompts.build(CreativeParams(), StepKind.ANIMATE, subject_count=0).instruction_text
        assert "Preserve the exact identit" not in text

    def test_clause_present_even_with_custom_prompt(self):
        text = prompts.build(CreativeParams(prompt="Dancing in the rain"), StepKind.ANIMATE).instruction_text
        assert text.startswith("Dancing in the rain")
        assert "CRITICAL: Preserve the exact identity" in text


class TestRewriteText:
    def test_whitespace_collapsed(self):
        text = prompts.build(CreativeParams(rewrite_text="  they   finally\n\nmeet  "), StepKind.ANIMATE).instruction_text
        assert "The scene transforms to show: they finally meet." in text

    def test_truncated(self):
        text = prompts.build(CreativeParams(rewrite_text="x" * 2000), StepKind.ANIMATE).instruction_text
        assert "x" * prompts.MAX_REWRITE_CHARS in text
        assert "x" * (prompts.MAX_REWRITE_CHARS + 1) not in text

    def test_compose_ignores_rewrite(self):
        text = prompts.build(CreativeParams(rewrite_text="a twist"), StepKind.COMPOSE).instruction_text
        assert "transforms" not in text


def test_negative_text_per_step():
    assert prompts.build(CreativeParams(), StepKind.ANIMATE).negative_text == prompts.NEGATIVE_ANIMATE
    assert prompts.build(CreativeParams(), StepKind.COMPOSE).negative_text == prompts.NEGATIVE_COMPOSE


def test_normalize_aspect_ratio():
    assert prompts.normalize_aspect_ratio("1:1") == "1:1"
    assert prompts.normalize_aspect_ratio(" 16:9 ") == "16:9"
    assert prompts.normalize_aspect_ratio("21:9") == "9:16"
    assert prompts.normalize_aspect_ratio(None) == "9:16"
