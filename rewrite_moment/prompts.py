"""
Prompt library: turns the user's creative picks into provider instructions.

Users pick a life stage, genre, sliders and so on; we render the actual
cinematic instruction text. Every table has a fixed default so partial or
unknown input always renders something.
"""

from typing import Optional

from .models import CreativeParams, PromptSpec, StepKind

DEFAULT_SUBJECT_PROMPT = "A person in a meaningful moment of their life"
DEFAULT_PAIR_PROMPT = "Two people sharing a meaningful moment of their lives"
MAX_REWRITE_CHARS = 500

STAGE_PROMPTS = {
    "teen": "adolescence, school days, friends, growing up",
    "20s": "their twenties, campus life, first job, dating, finding themselves",
    "newlywed": "newlywed life, marriage, a new beginning, a life together",
    "parenting": "parenthood, raising a child, family, time together with their kid",
}

GENRE_STYLES = {
    "docu": "cinematic documentary style, natural lighting, authentic moments",
    "comedy": "bright colors, comedic timing, lighthearted mood, funny situations",
    "drama": "dramatic lighting, emotional depth, intense atmosphere",
    "melo": "romantic atmosphere, soft lighting, emotional, touching moments",
    "fantasy": "magical elements, surreal visuals, dreamlike atmosphere, fantasy world",
}
DEFAULT_GENRE = "docu"

DISTANCE_SHOTS = {
    "closeup": "intimate close-up framing on the face",
    "medium": "medium shot from the waist up",
    "wide": "wide shot showing the full body and the surroundings",
}
DEFAULT_DISTANCE = "medium"

ENDINGS = {
    "happy": "ends on a warm, hopeful note",
    "sad": "ends on a bittersweet, melancholic note",
    "open": "ends on an open, unresolved moment",
    "twist": "ends with an unexpected twist",
}
DEFAULT_ENDING = "open"

MODES = {
    "quick": "a single short continuous shot",
    "story": "a short narrative arc with a clear beginning, middle and end",
    "trailer": "movie-trailer pacing with dramatic beats and a title-card style finish",
}
DEFAULT_MODE = "quick"

ASPECT_FRAMING = {
    "9:16": "vertical 9:16 framing",
    "16:9": "widescreen 16:9 framing",
    "1:1": "square 1:1 framing",
}
DEFAULT_ASPECT_RATIO = "9:16"

MOVIE_THEMES = {
    "noir": "film-noir homage, high-contrast shadows, rain-slicked streets",
    "romance": "classic romantic-comedy homage, warm pastel palette",
    "scifi": "science-fiction blockbuster homage, neon and chrome",
    "western": "western homage, dusty golden landscapes, wide horizons",
    "heist": "heist-movie homage, slick, stylish and fast",
    "musical": "musical homage, choreographed movement, vivid color",
}
THEME_ALIASES = {"sci-fi": "scifi", "sf": "scifi", "romcom": "romance"}

# Slider bands: low < 40 <= mid <= 70 < high
LOW_BAND_MAX = 40
HIGH_BAND_MIN = 70
DEFAULT_SLIDER = 50.0

REALISM_BANDS = {
    "low": "stylized, painterly look",
    "mid": "cinematic realism with gentle stylization",
    "high": "photorealistic, true-to-life detail",
}
INTENSITY_BANDS = {
    "low": "calm, understated emotion",
    "mid": "moderate emotional tension",
    "high": "intense, heightened emotion",
}
PACE_BANDS = {
    "low": "slow, lingering camera moves",
    "mid": "steady, natural pacing",
    "high": "fast cuts and energetic camera motion",
}

IDENTITY_CLAUSE_ONE = (
    "CRITICAL: Preserve the exact identity of the person in the reference image. "
    "Do NOT alter their face, facial features, skin tone, hair, age or body shape. "
    "They must remain recognizably the same person in {where}."
)
IDENTITY_CLAUSE_TWO = (
    "CRITICAL: Preserve the exact identities of BOTH people in the reference images. "
    "Do NOT alter either person's face, facial features, skin tone, hair, age or body shape, "
    "and do NOT blend their faces together. Each must remain recognizably the same person in {where}."
)

NEGATIVE_ANIMATE = (
    "distorted face, face morphing, identity change, extra limbs, deformed hands, "
    "flicker, watermark, text overlay"
)
NEGATIVE_COMPOSE = (
    "distorted face, merged faces, duplicated people, extra limbs, deformed hands, "
    "watermark, text"
)


def _pick(table: dict, key: Optional[str], default: Optional[str]) -> Optional[str]:
    if key is not None:
        phrase = table.get(key.lower())
        if phrase is not None:
            return phrase
    return table[default] if default is not None else None


def slider_band(value: Optional[float]) -> str:
    """Bucket a 0-100 slider. Missing values count as the midpoint."""
    if value is None:
        value = DEFAULT_SLIDER
    if value < LOW_BAND_MAX:
        return "low"
    if value > HIGH_BAND_MIN:
        return "high"
    return "mid"


def normalize_aspect_ratio(value: Optional[str]) -> str:
    if value and value.strip() in ASPECT_FRAMING:
        return value.strip()
    return DEFAULT_ASPECT_RATIO


def identity_clause(subject_count: int, step_kind: StepKind) -> Optional[str]:
    if subject_count <= 0:
        return None
    where = "the generated image" if step_kind == StepKind.COMPOSE else "every frame"
    template = IDENTITY_CLAUSE_TWO if subject_count > 1 else IDENTITY_CLAUSE_ONE
    return template.format(where=where)


def _rewrite(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    collapsed = " ".join(text.split())
    return collapsed[:MAX_REWRITE_CHARS] or None


def _theme(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    key = value.lower()
    return MOVIE_THEMES.get(THEME_ALIASES.get(key, key))


def _subject(params: CreativeParams, subject_count: int) -> str:
    if params.prompt:
        return params.prompt
    return DEFAULT_PAIR_PROMPT if subject_count > 1 else DEFAULT_SUBJECT_PROMPT


def _animate_text(params: CreativeParams, subject_count: int) -> str:
    text = _subject(params, subject_count)

    stage = _pick(STAGE_PROMPTS, params.stage, None)
    if stage:
        text += f", {stage}"

    text += f". Style: {_pick(GENRE_STYLES, params.genre, DEFAULT_GENRE)}"
    text += f". Format: {_pick(MODES, params.mode, DEFAULT_MODE)}"
    text += f". Camera: {_pick(DISTANCE_SHOTS, params.distance, DEFAULT_DISTANCE)}"

    sliders = params.sliders
    text += (
        f". Look: {REALISM_BANDS[slider_band(sliders.realism)]}"
        f"; mood: {INTENSITY_BANDS[slider_band(sliders.intensity)]}"
        f"; pacing: {PACE_BANDS[slider_band(sliders.pace)]}"
    )

    theme = _theme(params.movie_theme)
    if theme:
        text += f". Theme: {theme}"

    rewrite = _rewrite(params.rewrite_text)
    if rewrite:
        text += f". The scene transforms to show: {rewrite}"

    text += f". The clip {_pick(ENDINGS, params.ending, DEFAULT_ENDING)}"
    text += f". {ASPECT_FRAMING[normalize_aspect_ratio(params.aspect_ratio)].capitalize()}."
    return text


def _compose_text(params: CreativeParams, subject_count: int) -> str:
    if subject_count > 1:
        text = (
            "Combine the two people from the reference photos into one photorealistic still image, "
            "standing naturally together in the same scene with consistent lighting and perspective."
        )
    else:
        text = (
            "Place the person from the reference photo into a new photorealistic still image "
            "with consistent lighting and perspective."
        )

    text += f" Scene: {_subject(params, subject_count)}"
    stage = _pick(STAGE_PROMPTS, params.stage, None)
    if stage:
        text += f", {stage}"

    text += f". Lighting and mood: {_pick(GENRE_STYLES, params.genre, DEFAULT_GENRE)}"
    text += f". Camera: {_pick(DISTANCE_SHOTS, params.distance, DEFAULT_DISTANCE)}"

    theme = _theme(params.movie_theme)
    if theme:
        text += f". Theme: {theme}"

    text += f". {ASPECT_FRAMING[normalize_aspect_ratio(params.aspect_ratio)].capitalize()}."
    return text


def build(params: Optional[CreativeParams], step_kind: StepKind, subject_count: int = 1) -> PromptSpec:
    """
    Render the instruction for one pipeline step.

    Pure and total: the same params always give byte-identical text, and
    unknown enum values fall back to the default variant. When at least one
    subject image is supplied the identity-preservation clause is appended.
    """
    params = params or CreativeParams()

    if step_kind == StepKind.COMPOSE:
        text = _compose_text(params, subject_count)
        negative = NEGATIVE_COMPOSE
    else:
        text = _animate_text(params, subject_count)
        negative = NEGATIVE_ANIMATE

    clause = identity_clause(subject_count, step_kind)
    if clause:
        text = f"{text}\n\n{clause}"

    return PromptSpec(instruction_text=text, negative_text=negative)
