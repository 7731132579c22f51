from sqlmodel import Field

from autofix.models.base import TimestampedModel


class Project(TimestampedModel, table=True):
    __tablename__ = "projects"

    slug: str = Field(primary_key=True)
    repo: str
    branch: str = Field(default="main")
    language: str
    framework: str
