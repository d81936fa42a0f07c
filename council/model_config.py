from __future__ import annotations

import os
from dataclasses import dataclass

from .judges import ALL_JUDGES, JudgeName

ANTHROPIC = "anthropic"
OPENAI = "openai"
PROVIDERS = (ANTHROPIC, OPENAI)

DEFAULT_JUDGE_MODELS: dict[JudgeName, str] = {
    JudgeName.GATE: "anthropic/claude-sonnet-4-20250514",
    JudgeName.VEIL: "anthropic/claude-sonnet-4-20250514",
    JudgeName.VOID: "anthropic/claude-sonnet-4-20250514",
    JudgeName.ECHO: "openai/gpt-4o-mini",
    JudgeName.CIPHER: "openai/gpt-4o-mini",
    JudgeName.THREAD: "openai/gpt-4o-mini",
    JudgeName.MARGIN: "openai/gpt-4o-mini",
}


@dataclass(frozen=True)
class ModelRoute:
    provider: str
    model: str

    def __str__(self) -> str:
        return f"{self.provider}/{self.model}"


def get_env_key(judge: JudgeName | str) -> str:
    return f"JUDGE_{JudgeName(judge).value}_MODEL"


def get_model_from_env(judge: JudgeName | str) -> str | None:
    return os.getenv(get_env_key(judge))


def parse_route(value: str) -> ModelRoute:
    provider, sep, model = value.partition("/")
    if not sep or not model or provider not in PROVIDERS:
        raise ValueError(f"Invalid model route {value!r}; expected one of {PROVIDERS} + '/<model>'")
    return ModelRoute(provider=provider, model=model)


def resolve_model_with_source(judge: JudgeName | str) -> tuple[ModelRoute, str]:
    name = JudgeName(judge)
    env_value = get_model_from_env(name)
    if env_value:
        return parse_route(env_value), "env"
    return parse_route(DEFAULT_JUDGE_MODELS[name]), "default"


def resolve_model(judge: JudgeName | str) -> ModelRoute:
    route, _ = resolve_model_with_source(judge)
    return route


def get_all_routes() -> dict[str, dict[str, str]]:
    result = {}
    for judge in ALL_JUDGES:
        route, source = resolve_model_with_source(judge)
        result[judge.value] = {"model": str(route), "source": source}
    return result
