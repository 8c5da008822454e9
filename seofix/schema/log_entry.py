"""
Log entry schema definition.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class LogEntry(BaseModel):
    """One JSON log line emitted by the loguru sink."""

    model_config = ConfigDict(from_attributes=True)

    asctime: datetime = Field(..., description="Timestamp of the log entry")
    levelname: str = Field(..., description="Log level name")
    logger: str | None = Field(default=None, description="Module that emitted the line")
    fix_session_id: str | None = Field(default=None, description="FixSession active when the line was logged")
    website_id: str | None = Field(default=None, description="Website being remediated")
    message: str = Field(..., description="Log message, truncated to LOG_MESSAGE_MAX_LEN")

    @field_serializer("asctime")
    def serialize_asctime(self, asctime: datetime) -> str:
        return asctime.strftime(r"%Y-%m-%d %H:%M:%S,%f")[:-3]
