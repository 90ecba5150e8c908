from __future__ import annotations

import random
from pathlib import Path

import pytest

from coloring_images.gen.prompting import (
    DEFAULT_THEMES_PATH,
    PromptBuilder,
    PromptResolutionError,
    ResolvedPrompt,
    load_themes,
)
from coloring_images.gen.types import Difficulty, GenerationRequest


@pytest.fixture
def builder() -> PromptBuilder:
    return PromptBuilder(rng=random.Random(7))


class TestLoadThemes:
    def test_bundled_themes(self) -> None:
        themes, complexity, default = load_themes(DEFAULT_THEMES_PATH)
        assert default == "animals"
        assert {"animals", "vehicles", "nature", "fantasy", "food"} <= set(themes)
        assert set(complexity) == {"easy", "medium", "hard"}

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "themes.yaml"
        path.write_text("themes: {}\n")
        with pytest.raises(PromptResolutionError):
            load_themes(path)


class TestPromptBuilder:
    def test_subject_and_style_present(self, builder: PromptBuilder) -> None:
        text = builder.build(GenerationRequest("animals", "cat", Difficulty.EASY))
        assert text.startswith("a cat ")
        assert "black and white coloring page" in text
        assert "thick bold outlines" in text
        assert "  " not in text
        assert "\n" not in text

    def test_phrases_come_from_theme(self, builder: PromptBuilder) -> None:
        result = builder.resolve(GenerationRequest("vehicles", "truck"))
        enh = builder.themes["vehicles"]

        assert isinstance(result, ResolvedPrompt)
        assert result.params["scene"] in enh.scenes
        assert result.params["pose"] in enh.poses
        assert result.params["decoration1"] in enh.decorations
        assert result.params["decoration1"] != result.params["decoration2"]

    def test_unknown_theme_falls_back_to_default(self, builder: PromptBuilder) -> None:
        result = builder.resolve(GenerationRequest("space robots", "rocket"))
        assert result.params["scene"] in builder.themes["animals"].scenes

    def test_theme_lookup_is_case_insensitive(self, builder: PromptBuilder) -> None:
        assert builder.enhancements_for("  FOOD ") == builder.themes["food"]

    @pytest.mark.parametrize(
        "difficulty,marker",
        [
            (Difficulty.EASY, "a few simple"),
            (Difficulty.MEDIUM, "surrounded by"),
            (Difficulty.HARD, "richly decorated"),
        ],
    )
    def test_difficulty_wording(self, builder: PromptBuilder, difficulty: Difficulty, marker: str) -> None:
        text = builder.build(GenerationRequest("animals", "cat", difficulty))
        assert marker in text
        assert builder.complexity[difficulty.value].split(",")[0].strip() in text

    def test_custom_prompt_appended(self, builder: PromptBuilder) -> None:
        text = builder.build(GenerationRequest("animals", "cat", custom_prompt=" wearing a hat "))
        assert text.endswith(", wearing a hat")

    def test_randomized_between_calls(self) -> None:
        builder = PromptBuilder()
        request = GenerationRequest("animals", "cat", Difficulty.MEDIUM)
        prompts = {builder.build(request) for _ in range(30)}
        assert len(prompts) > 1

    def test_seeded_rng_is_deterministic(self) -> None:
        request = GenerationRequest("fantasy", "dragon", Difficulty.HARD)
        a = PromptBuilder(rng=random.Random(1)).build(request)
        b = PromptBuilder(rng=random.Random(1)).build(request)
        assert a == b

    def test_missing_template(self) -> None:
        builder = PromptBuilder(template_name="missing.j2")
        with pytest.raises(PromptResolutionError, match="not found"):
            builder.build(GenerationRequest("animals", "cat"))

    def test_undefined_variable(self, tmp_path: Path) -> None:
        (tmp_path / "bad.j2").write_text("{{ subject }} {{ nope }}")
        builder = PromptBuilder(templates_dir=tmp_path, template_name="bad.j2")
        with pytest.raises(PromptResolutionError, match="Undefined"):
            builder.build(GenerationRequest("animals", "cat"))
