"""REST API routes for Phomemo Label."""

import asyncio
import secrets
from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from phomemo_label.errors import PrintError, TransportError
from phomemo_label.models.job import PrintResult
from phomemo_label.models.printer import PrinterConfig
from phomemo_label.models.template import FieldMetadata, LabelTemplate, extract_text_fields
from phomemo_label.pipeline import preview_label, print_label

router = APIRouter(prefix="/api/v1", tags=["api"])

# These will be set by the app during startup
_app_state: dict[str, Any] = {}


def set_app_state(
    printers: dict,
    transports: dict,
    templates: dict,
    padding: float = 20.0,
    print_timeout: float | None = None,
    font_manager: Any = None,
    api_key: str | None = None,
) -> None:
    """Set application state references for the routes."""
    _app_state["printers"] = printers
    _app_state["transports"] = transports
    _app_state["templates"] = templates
    _app_state["padding"] = padding
    _app_state["print_timeout"] = print_timeout
    _app_state["font_manager"] = font_manager
    _app_state["api_key"] = api_key


async def verify_api_key(request: Request) -> None:
    """Verify API key if configured.

    API key can be provided via:
    - X-API-Key header
    - Authorization: Bearer <key> header

    If no API key is configured, all requests are allowed.
    """
    configured_key = _app_state.get("api_key")

    # No API key configured = open access
    if not configured_key:
        return

    provided_key = None
    if "X-API-Key" in request.headers:
        provided_key = request.headers["X-API-Key"]
    elif "Authorization" in request.headers:
        auth = request.headers["Authorization"]
        if auth.startswith("Bearer "):
            provided_key = auth[7:]

    if not provided_key or not secrets.compare_digest(provided_key, configured_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )


# Request/response models


class PrinterInfo(BaseModel):
    """Configured printer response."""

    name: str
    device: str
    connected: bool
    settings: PrinterConfig
    last_job_at: datetime | None = None


class TemplateInfo(BaseModel):
    """Template information response."""

    id: str
    name: str
    fields: list[FieldMetadata]
    field_defaults: dict[str, str]


class FieldsRequest(BaseModel):
    """SVG to inspect for fields."""

    svg: str


class FieldsResponse(BaseModel):
    """Fields discovered in an SVG."""

    fields: list[FieldMetadata]
    defaults: dict[str, str]


class LabelRequest(BaseModel):
    """A label to render: a loaded template by name, or inline SVG."""

    template: str | None = None
    svg: str | None = None
    fields: list[FieldMetadata] = Field(default_factory=list)
    values: dict[str, str] = Field(default_factory=dict)
    config: PrinterConfig | None = None


class PreviewRequest(LabelRequest):
    """Preview request body."""

    dithered: bool = True


class PrintRequest(LabelRequest):
    """Print request body."""

    printer: str


# Endpoints


@router.get("/printers", response_model=list[PrinterInfo])
async def list_printers() -> list[PrinterInfo]:
    """List all configured printers with their settings."""
    printers = _app_state.get("printers", {})
    transports = _app_state.get("transports", {})

    result = []
    for name, entry in printers.items():
        transport = transports.get(name)
        result.append(
            PrinterInfo(
                name=name,
                device=entry.connection.device,
                connected=bool(transport and transport.is_connected),
                settings=entry.settings,
                last_job_at=transport.last_job_at if transport else None,
            )
        )
    return result


@router.get("/templates", response_model=list[TemplateInfo])
async def list_templates() -> list[TemplateInfo]:
    """List all loaded templates."""
    templates = _app_state.get("templates", {})
    return [_template_to_info(t) for t in templates.values()]


@router.get("/templates/{name}", response_model=TemplateInfo)
async def get_template(name: str) -> TemplateInfo:
    """Get details of a specific template."""
    templates = _app_state.get("templates", {})

    if name not in templates:
        raise HTTPException(status_code=404, detail=f"Template '{name}' not found")

    return _template_to_info(templates[name])


@router.post("/fields", response_model=FieldsResponse)
async def discover_fields(request: FieldsRequest) -> FieldsResponse:
    """Discover the text fields of an SVG and their current contents."""
    try:
        fields, defaults = extract_text_fields(request.svg)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return FieldsResponse(fields=fields, defaults=defaults)


@router.post(
    "/preview",
    response_class=Response,
    responses={
        200: {"content": {"image/png": {}}, "description": "Label preview"},
        404: {"description": "Template not found"},
        422: {"description": "Invalid settings or template"},
    },
)
async def preview(request: PreviewRequest) -> Response:
    """Render a PNG preview of a label without printing it."""
    template = _resolve_template(request)
    config = request.config or PrinterConfig()

    try:
        png = await asyncio.to_thread(
            preview_label,
            template,
            request.values,
            config,
            dithered=request.dithered,
            padding=_app_state.get("padding", 20.0),
            font_manager=_app_state.get("font_manager"),
        )
    except PrintError as e:
        raise _http_error(e) from e

    return Response(content=png, media_type="image/png")


@router.post(
    "/print",
    response_model=PrintResult,
    responses={
        200: {"description": "Label printed"},
        404: {"description": "Template or printer not found"},
        422: {"description": "Invalid settings or template"},
        503: {"description": "Printer unavailable"},
    },
)
async def print_endpoint(request: PrintRequest) -> Any:
    """Render a label and send it to a printer.

    Failures still return a PrintResult body, with the status code set by
    the stage that failed.
    """
    printers = _app_state.get("printers", {})
    transports = _app_state.get("transports", {})

    if request.printer not in transports:
        raise HTTPException(status_code=404, detail=f"Printer '{request.printer}' not found")

    template = _resolve_template(request)
    config = request.config or printers[request.printer].settings

    result = await print_label(
        template,
        request.values,
        config,
        transports[request.printer],
        timeout=_app_state.get("print_timeout"),
        padding=_app_state.get("padding", 20.0),
        font_manager=_app_state.get("font_manager"),
    )

    if result.success:
        return result

    status_code = 422
    if result.error and result.error.stage in (TransportError.stage, "connect"):
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


def _resolve_template(request: LabelRequest) -> LabelTemplate:
    """Get the request's template, by name or from inline SVG."""
    if request.template:
        templates = _app_state.get("templates", {})
        if request.template not in templates:
            raise HTTPException(status_code=404, detail=f"Template '{request.template}' not found")
        return templates[request.template]

    if request.svg:
        try:
            return LabelTemplate.from_svg("inline", request.svg, request.fields)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=f"Invalid template: {e}") from e

    raise HTTPException(status_code=422, detail="Either 'template' or 'svg' is required")


def _http_error(error: PrintError) -> HTTPException:
    """Map a pipeline error to an HTTP error."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE if isinstance(error, TransportError) else 422
    return HTTPException(
        status_code=status_code,
        detail={"kind": error.kind, "stage": error.stage, "message": error.message},
    )


def _template_to_info(template: LabelTemplate) -> TemplateInfo:
    """Convert a LabelTemplate to TemplateInfo response."""
    return TemplateInfo(
        id=template.id,
        name=template.name,
        fields=template.fields,
        field_defaults=template.field_defaults,
    )
