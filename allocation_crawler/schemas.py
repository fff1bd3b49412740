"""
Boundary input models

Shapes accepted from callers. Validation failures surface as
InvalidInputError before anything reaches the store.
"""

from typing import Annotated, Any, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from allocation_crawler.applications.models import RunStatus
from allocation_crawler.core.exceptions import InvalidInputError
from allocation_crawler.entities.models import JobStatus, NewJob

M = TypeVar("M", bound=BaseModel)

Identifier = Annotated[str, Field(min_length=1)]


class BoardInput(BaseModel):
    """Board registration"""

    id: Identifier
    company: Identifier
    ats: Identifier


class JobInput(BaseModel):
    """Single or bulk job submission"""

    job_id: Identifier
    board: Identifier
    title: str = ""
    url: str = ""
    location: str = ""
    department: str = ""

    @field_validator("title", "url", "location", "department", mode="before")
    @classmethod
    def default_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    def to_new_job(self) -> NewJob:
        return NewJob(**self.model_dump())


class ArtifactsInput(BaseModel):
    """Partial artifacts; extra keys are kept"""

    model_config = ConfigDict(extra="allow")

    resume_url: Optional[str] = None
    cover_letter: Optional[str] = None
    answers: Optional[dict[str, str]] = None
    confirmation_url: Optional[str] = None
    notes: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class RunCreateInput(BaseModel):
    """Run creation"""

    run_id: Identifier
    job_id: Identifier
    board: Identifier
    variant_id: Identifier
    artifacts: Optional[ArtifactsInput] = None


class RunUpdateInput(BaseModel):
    """Run progress or outcome"""

    run_id: Identifier
    status: RunStatus
    error: Optional[str] = None
    artifacts: Optional[ArtifactsInput] = None


class JobStatusUpdateInput(BaseModel):
    """Manual job status change"""

    board: Identifier
    job_id: Identifier
    status: JobStatus


class UserInput(BaseModel):
    """User interest profile"""

    id: Identifier
    resumes: list[str] = Field(default_factory=list)
    answers: dict[str, str] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: list[str]) -> list[str]:
        return sorted({tag.strip().lower() for tag in v if tag.strip()})


def validate_input(model: type[M], payload: Any) -> M:
    """Parse ``payload`` into ``model`` or raise InvalidInputError"""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise InvalidInputError(f"Invalid {model.__name__}", errors=errors) from e
