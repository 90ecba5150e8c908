from __future__ import annotations

import random
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml
from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateNotFound, UndefinedError

from .types import GenerationRequest

PACKAGE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_TEMPLATES_DIR = PACKAGE_DIR / "templates"
DEFAULT_THEMES_PATH = PACKAGE_DIR / "data" / "themes.yaml"
DEFAULT_TEMPLATE = "coloring.j2"


class PromptResolutionError(Exception):
    """Raised when a prompt template cannot be resolved."""

    pass


@dataclass(frozen=True)
class ThemeEnhancements:
    scenes: list[str]
    decorations: list[str]
    poses: list[str]


@dataclass
class ResolvedPrompt:
    """Container for a resolved prompt with its metadata."""

    template_name: str
    params: dict[str, Any]
    resolved_text: str


def load_themes(path: Path) -> tuple[dict[str, ThemeEnhancements], dict[str, str], str]:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    themes = {
        name.lower(): ThemeEnhancements(
            scenes=list(t["scenes"]),
            decorations=list(t["decorations"]),
            poses=list(t["poses"]),
        )
        for name, t in (data.get("themes") or {}).items()
    }
    if not themes:
        raise PromptResolutionError(f"No themes defined in {path}")
    complexity = {k: str(v) for k, v in (data.get("complexity") or {}).items()}
    default_theme = str(data.get("default_theme") or next(iter(themes)))
    return themes, complexity, default_theme


class PromptBuilder:
    """Builds coloring-page prompts.

    Scene, pose and decorations are drawn at random from the theme's phrase
    table on every call, so identical requests yield varied prompts. The
    complexity wording is fixed per difficulty.
    """

    def __init__(
        self,
        templates_dir: Path = DEFAULT_TEMPLATES_DIR,
        themes_path: Path = DEFAULT_THEMES_PATH,
        template_name: str = DEFAULT_TEMPLATE,
        rng: Optional[random.Random] = None,
    ):
        self.templates_dir = templates_dir
        self.template_name = template_name
        self.env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.themes, self.complexity, self.default_theme = load_themes(themes_path)
        self._rng = rng or random.Random()

    def enhancements_for(self, theme: str) -> ThemeEnhancements:
        key = (theme or "").strip().lower() or self.default_theme
        return self.themes.get(key) or self.themes[self.default_theme]

    def params_for(self, request: GenerationRequest) -> dict[str, Any]:
        enh = self.enhancements_for(request.theme)
        decoration1 = self._rng.choice(enh.decorations)
        others = [d for d in enh.decorations if d != decoration1] or enh.decorations
        difficulty = request.difficulty.value
        return {
            "subject": request.subject.strip(),
            "pose": self._rng.choice(enh.poses),
            "scene": self._rng.choice(enh.scenes),
            "decoration1": decoration1,
            "decoration2": self._rng.choice(others),
            "difficulty": difficulty,
            "complexity": self.complexity.get(difficulty, ""),
            "custom_prompt": (request.custom_prompt or "").strip(),
        }

    def render(self, params: dict[str, Any]) -> str:
        """Render the prompt template.

        Raises:
            PromptResolutionError: If template not found or variable undefined.
        """
        try:
            tpl = self.env.get_template(self.template_name)
            text = tpl.render(**params)
        except TemplateNotFound as e:
            raise PromptResolutionError(
                f"Template '{self.template_name}' not found in {self.templates_dir}"
            ) from e
        except UndefinedError as e:
            raise PromptResolutionError(
                f"Undefined variable in template '{self.template_name}': {e}"
            ) from e
        return " ".join(text.split())

    def resolve(self, request: GenerationRequest) -> ResolvedPrompt:
        params = self.params_for(request)
        return ResolvedPrompt(
            template_name=self.template_name,
            params=params,
            resolved_text=self.render(params),
        )

    def build(self, request: GenerationRequest) -> str:
        return self.resolve(request).resolved_text
