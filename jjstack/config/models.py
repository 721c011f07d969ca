"""Pydantic models for config types."""

from typing import Optional
from pydantic import BaseModel, Field

class RepoConfig(BaseModel):
    """Repository configuration."""
    github_remote: Optional[str] = "origin"
    github_repo_owner: Optional[str] = None
    github_repo_name: Optional[str] = None
    default_branch: Optional[str] = None

    class Config:
        """Pydantic config."""
        extra = "allow"  # Allow extra fields for forward compatibility

class UserConfig(BaseModel):
    """User configuration."""
    auto_select_bookmark: bool = True

    class Config:
        """Pydantic config."""
        extra = "allow"  # Allow extra fields

class ToolConfig(BaseModel):
    """Tool configuration."""
    jj_binary: str = "jj"
    pretend: bool = False

    class Config:
        """Pydantic config."""
        extra = "allow"  # Allow extra fields

class JjStackConfig(BaseModel):
    """Full jj-stack configuration."""
    repo: RepoConfig = Field(default_factory=RepoConfig)
    user: UserConfig = Field(default_factory=UserConfig)
    tool: ToolConfig = Field(default_factory=ToolConfig)

    class Config:
        """Pydantic config."""
        extra = "allow"  # Allow extra fields
