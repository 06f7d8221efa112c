from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DATA_SOURCES = ["movies", "companies", "products", "actors", "directors", "testimonials"]

DataItem = Dict[str, Any]


class WireModel(BaseModel):
    """Base for records exchanged with the frontend (camelCase on the wire)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class JobStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class GenerationJob(WireModel):
    project_id: str
    status: JobStatus = JobStatus.PENDING
    message: Optional[str] = None
    project_path: Optional[str] = None
    public_url: Optional[str] = None
    deployed_url: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        wire = super().to_wire()
        wire["status"] = self.status.value
        return wire


class LogEntry(BaseModel):
    timestamp: int  # epoch milliseconds
    level: str
    message: str


class IntentAnalysis(WireModel):
    data_source: str = "movies"
    filters: Dict[str, Any] = Field(default_factory=dict)
    limit: int = 100


class WebsiteDetails(WireModel):
    website_name: Optional[str] = None
    tagline: Optional[str] = None
    description: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.website_name or self.tagline or self.description)


class PlannedFile(WireModel):
    file_name: str
    purpose: str = "Generated file"
    kind: str = "asset"


class ArchitecturePlan(WireModel):
    files: List[PlannedFile] = Field(default_factory=list)

    @property
    def file_names(self) -> List[str]:
        return [f.file_name for f in self.files]

    @property
    def pages(self) -> List[str]:
        return [f.file_name for f in self.files if f.file_name.endswith(".html")]


class ValidationIssue(WireModel):
    file_name: str
    issue: str = ""
    severity: str = "warning"
    fix: str = ""


class ValidationResult(WireModel):
    has_issues: bool = False
    issues: List[ValidationIssue] = Field(default_factory=list)
    fixed_files: List[str] = Field(default_factory=list)


class DeploymentResult(WireModel):
    success: bool
    deployed_url: Optional[str] = None
    error: Optional[str] = None
    skipped: bool = False
