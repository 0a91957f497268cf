#  Project Scaffolder - Pydantic Schemas
#
#  Request/response models for the REST API.
#
#  Depends on: models/enums.py
#  Used by:    routes/*

from pydantic import BaseModel, EmailStr, Field

from scaffolder.models.enums import (
    DeploymentStatus,
    DeployProvider,
    GenerationStatus,
    LLMProvider,
    ProjectStatus,
    TechCategory,
    UserRole,
)


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

class TechStackItem(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    category: TechCategory
    version: str | None = None


class GeneratedFileOut(BaseModel):
    path: str
    content: str


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=1000)
    tech_stack: list[TechStackItem] = Field(default_factory=list)
    prompt: str | None = Field(default=None, max_length=10_000)


class ProjectUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=1000)
    tech_stack: list[TechStackItem] | None = None
    prompt: str | None = Field(default=None, max_length=10_000)
    env_variables: dict[str, str] | None = None


class ProjectOut(BaseModel):
    id: str
    owner_id: str
    name: str
    description: str = ""
    tech_stack: list[TechStackItem] = Field(default_factory=list)
    prompt: str | None = None
    generated_files: list[GeneratedFileOut] | None = None
    github_repo: str | None = None
    deployment_url: str | None = None
    env_variable_keys: list[str] = Field(default_factory=list)  # values never leave the server
    version: int = 1
    status: ProjectStatus
    created_at: float
    updated_at: float
    last_deployed_at: float | None = None
    recent_generations: list["GenerationOut"] | None = None
    recent_deployments: list["DeploymentOut"] | None = None


class ProjectPage(BaseModel):
    items: list[ProjectOut]
    total: int
    page: int
    page_size: int
    total_pages: int


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

class GenerateRequest(BaseModel):
    project_id: str = Field(..., min_length=1)
    prompt: str | None = Field(default=None, min_length=1, max_length=10_000)
    provider: LLMProvider | None = None
    model: str | None = None


class TokenUsageOut(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0


class GenerateResponse(BaseModel):
    success: bool = True
    generation_id: str
    project_id: str
    provider: str
    model: str
    files: list[GeneratedFileOut]
    usage: TokenUsageOut
    duration_ms: int
    version: int


class GenerationOut(BaseModel):
    id: str
    project_id: str
    prompt: str
    model: str
    provider: str
    output: list[GeneratedFileOut] | None = None
    token_usage: TokenUsageOut | None = None
    duration_ms: int | None = None
    status: GenerationStatus
    error_message: str | None = None
    created_at: float
    completed_at: float | None = None


# ---------------------------------------------------------------------------
# Deployment
# ---------------------------------------------------------------------------

class DeployRequest(BaseModel):
    project_id: str = Field(..., min_length=1)
    provider: DeployProvider = DeployProvider.VERCEL
    env_variables: dict[str, str] | None = None
    is_private: bool = True


class DeployResponse(BaseModel):
    success: bool
    deployment_id: str
    project_id: str
    repo_url: str | None = None
    deployment_url: str | None = None
    error: str | None = None


class DeploymentOut(BaseModel):
    id: str
    project_id: str
    provider: str
    status: DeploymentStatus
    url: str | None = None
    external_id: str | None = None
    error_message: str | None = None
    started_at: float
    completed_at: float | None = None


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------

class ProvidersOut(BaseModel):
    llm: list[str]
    deploy: list[str]
    default_llm: str


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    display_name: str = ""


class LoginRequest(BaseModel):
    email: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class UserOut(BaseModel):
    id: str
    email: str
    display_name: str
    role: UserRole


class LoginResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserOut


class RefreshResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


# ---------------------------------------------------------------------------
# Admin / audit
# ---------------------------------------------------------------------------

class AuditEntryOut(BaseModel):
    id: str
    user_id: str | None = None
    user_email: str | None = None
    action: str
    resource: str
    resource_id: str | None = None
    old_value: dict | list | None = None
    new_value: dict | list | None = None
    details: dict | None = None
    severity: str
    category: str
    ip_address: str | None = None
    user_agent: str | None = None
    request_id: str | None = None
    created_at: float


class AuditPage(BaseModel):
    items: list[AuditEntryOut]
    total: int
    page: int
    page_size: int
    total_pages: int


class UserErasureOut(BaseModel):
    user_id: str
    anonymized_audit_entries: int
    deleted_projects: int


class ExportedUser(BaseModel):
    id: str
    email: str
    display_name: str
    role: str
    created_at: float


class ExportedProject(BaseModel):
    id: str
    name: str
    description: str | None = None
    created_at: float


class ExportedAuditEntry(BaseModel):
    action: str
    resource: str
    created_at: float
    ip_address: str | None = None


class UserDataExport(BaseModel):
    """Data-subject access export for one user."""
    user: ExportedUser
    projects: list[ExportedProject]
    audit_logs: list[ExportedAuditEntry]


ProjectOut.model_rebuild()
