"""Five-bullet summary models.

SummaryPayload validates what the generative provider returns. Summary is the
persisted row. The length rules are checked on trimmed text; the caps applied
by normalized() keep every stored summary within:

    bullets:        exactly 5, each 3-180 characters
    why_it_matters: 10-280 characters
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

BULLET_COUNT = 5
BULLET_MIN_CHARS = 3
BULLET_MAX_CHARS = 180
WHY_MIN_CHARS = 10
WHY_MAX_ACCEPTED_CHARS = 300
WHY_MAX_CHARS = 280


class SummaryPayload(BaseModel):
    """Structured summary as produced by the model."""

    bullets: list[str] = Field(description="Exactly 5 key-fact bullets")
    why_it_matters: str = Field(description="One line on impact and context")

    @field_validator("bullets")
    @classmethod
    def _check_bullets(cls, value: list[str]) -> list[str]:
        if len(value) != BULLET_COUNT:
            raise ValueError(f"expected {BULLET_COUNT} bullets, got {len(value)}")
        for i, bullet in enumerate(value):
            if len(bullet.strip()) < BULLET_MIN_CHARS:
                raise ValueError(f"bullet {i} shorter than {BULLET_MIN_CHARS} characters")
        return value

    @field_validator("why_it_matters")
    @classmethod
    def _check_why(cls, value: str) -> str:
        length = len(value.strip())
        if not WHY_MIN_CHARS <= length <= WHY_MAX_ACCEPTED_CHARS:
            raise ValueError(
                f"why_it_matters must be {WHY_MIN_CHARS}-{WHY_MAX_ACCEPTED_CHARS} characters, got {length}"
            )
        return value

    def normalized(self) -> "SummaryPayload":
        """Return a copy with trimmed and capped fields."""
        return SummaryPayload(
            bullets=[b.strip()[:BULLET_MAX_CHARS] for b in self.bullets],
            why_it_matters=self.why_it_matters.strip()[:WHY_MAX_CHARS],
        )


class Summary(BaseModel):
    """A persisted summary (at most one per article)."""

    article_id: int
    bullets: list[str]
    why_it_matters: str
    model_version: str
    quality_score: float = 0.0
    created_at: datetime | None = None
