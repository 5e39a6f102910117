from pydantic import BaseModel, Field, StrictStr


class RunRequest(BaseModel):
    code: StrictStr
    timeout_ms: int | None = Field(default=None, gt=0)
    memory_mb: int | None = Field(default=None, gt=0)


class RunResponse(BaseModel):
    stdout: str
    stderr: str
    success: bool
    execution_time_ms: int
    error: str | None = None
    truncated: bool = False
