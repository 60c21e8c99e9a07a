"""Judge and case records as seen by the linking pipeline."""

from pydantic import BaseModel, ConfigDict, Field


class JudgeRecord(BaseModel):
    """Identity of a judicial officer.

    Owned by upstream ingestion. The pipeline only ever writes
    ``total_cases``, which it derives from the case relation.
    """

    id: str = Field(..., description="Stable opaque identifier")
    name: str = ""
    court_name: str | None = None
    court_id: str | None = None
    jurisdiction: str | None = None
    external_id: str | None = Field(
        default=None, description="Identifier in the external case-law system"
    )
    aliases: list[str] = Field(default_factory=list)
    total_cases: int = 0

    model_config = ConfigDict(frozen=True)


class CaseRecord(BaseModel):
    """A single adjudicated or pending matter."""

    id: str
    case_name: str | None = None
    case_number: str | None = None
    judge_name: str | None = Field(default=None, description="Raw judge-name string")
    external_id: str | None = None
    court_id: str | None = None
    jurisdiction: str | None = None
    judge_id: str | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_linked(self) -> bool:
        """Check if the case already references a judge."""
        return self.judge_id is not None


class CaseUpdate(BaseModel):
    """A pending ``cases.judge_id`` assignment."""

    id: str
    judge_id: str

    model_config = ConfigDict(frozen=True)
