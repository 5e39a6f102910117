from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class Kata(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    phase: int
    phase_title: str
    sequence: int
    title: str
    difficulty: str = "beginner"
    tags: list[str] = []
    estimated_minutes: int = 10
    concept: str = ""
    key_insight: str = ""
    experiment_code: str = ""
    expected_output: str = ""
    challenge: str = ""
    deep_dive: str = ""
    common_mistakes: str = ""
    description: str = ""


class KataSummary(BaseModel):
    id: str
    sequence: int
    title: str


class PhaseGroup(BaseModel):
    phase: int
    title: str
    katas: list[KataSummary]


class KataListResponse(BaseModel):
    phases: list[PhaseGroup]
