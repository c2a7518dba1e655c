"""Print job result models."""

from datetime import datetime
from uuid import UUID, uuid4

from PIL import Image
from pydantic import BaseModel, ConfigDict, Field
from pydantic.json_schema import SkipJsonSchema

from phomemo_label.errors import PrintError
from phomemo_label.templates.dither import MonoBitmap


class PrintFailure(BaseModel):
    """Why a print job failed."""

    kind: str
    stage: str
    message: str
    field_id: str | None = None

    @classmethod
    def from_error(cls, error: PrintError) -> "PrintFailure":
        return cls(
            kind=error.kind,
            stage=error.stage,
            message=error.message,
            field_id=getattr(error, "field_id", None),
        )


class PrintResult(BaseModel):
    """Outcome of one print request.

    `frames_sent` counts frames the transport confirmed, so a failed job
    reports how far it got. Partial jobs are not resumable.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: UUID = Field(default_factory=uuid4)
    template_name: str
    printer_name: str | None = None
    success: bool
    frames_sent: int = 0
    frames_total: int = 0
    error: PrintFailure | None = None
    warnings: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    # Previews, only populated on request
    pixels: SkipJsonSchema[Image.Image | None] = Field(default=None, exclude=True)
    bitmap: SkipJsonSchema[MonoBitmap | None] = Field(default=None, exclude=True)
