"""
Prompt templates, loaded from the .txt files beside this module.

Templates use str.format placeholders; literal JSON braces are doubled.
"""

from __future__ import annotations

from pathlib import Path

PROMPTS_DIR = Path(__file__).parent


class PromptLoader:
    """Load and cache prompt templates from files"""

    def __init__(self):
        self._cache: dict[str, str] = {}

    def load_prompt(self, prompt_name: str) -> str:
        if prompt_name not in self._cache:
            prompt_path = PROMPTS_DIR / f"{prompt_name}.txt"

            if not prompt_path.exists():
                raise FileNotFoundError(f"Prompt file not found: {prompt_path}")

            self._cache[prompt_name] = prompt_path.read_text(encoding="utf-8")

        return self._cache[prompt_name]

    def render(self, prompt_name: str, **kwargs) -> str:
        return self.load_prompt(prompt_name).format(**kwargs)


_loader = PromptLoader()


def get_prompt_loader() -> PromptLoader:
    return _loader
