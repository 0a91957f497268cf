#  Project Scaffolder - Enums
#
#  Status and type enumerations used across the system.
#
#  Depends on: (none)
#  Used by:    models/schemas.py, services/*, routes/*, llm/*, deploy/*

from enum import Enum


class ProjectStatus(str, Enum):
    DRAFT = "DRAFT"
    GENERATING = "GENERATING"
    GENERATED = "GENERATED"
    DEPLOYING = "DEPLOYING"
    DEPLOYED = "DEPLOYED"
    FAILED = "FAILED"


class GenerationStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class DeploymentStatus(str, Enum):
    PENDING = "PENDING"
    BUILDING = "BUILDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"
    ENTERPRISE_ADMIN = "enterprise_admin"


class LLMProvider(str, Enum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GEMINI = "gemini"


class DeployProvider(str, Enum):
    VERCEL = "vercel"
    NETLIFY = "netlify"
    GITHUB_PAGES = "github-pages"


class TechCategory(str, Enum):
    FRONTEND = "frontend"
    BACKEND = "backend"
    DATABASE = "database"
    DEVOPS = "devops"
    OTHER = "other"


class VercelState(str, Enum):
    QUEUED = "QUEUED"
    BUILDING = "BUILDING"
    READY = "READY"
    ERROR = "ERROR"
    CANCELED = "CANCELED"


class AuditAction(str, Enum):
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    GENERATE = "GENERATE"
    DEPLOY = "DEPLOY"
    EXPORT = "EXPORT"


class AuditSeverity(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AuditCategory(str, Enum):
    DATA_ACCESS = "data_access"
    SYSTEM = "system"
    SECURITY = "security"
