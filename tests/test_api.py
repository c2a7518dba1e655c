"""Tests for API routes."""

import io

import pytest
from conftest import MockTransport
from fastapi.testclient import TestClient
from PIL import Image

from phomemo_label.api import routes as api_routes
from phomemo_label.app import create_app
from phomemo_label.models.printer import PrinterEntry, SerialConnection
from phomemo_label.models.template import FieldKind, FieldMetadata, LabelTemplate


@pytest.fixture
def shipping_template(label_svg: str) -> LabelTemplate:
    """Loaded template with a QR placeholder."""
    return LabelTemplate.from_svg("shipping", label_svg, [FieldMetadata(id="code", kind=FieldKind.QR)])


@pytest.fixture
def desk_printer() -> PrinterEntry:
    return PrinterEntry(name="desk", connection=SerialConnection(device="/dev/rfcomm0"))


def make_client(templates: dict, printers: dict, transports: dict, api_key: str | None = None):
    """Create a test client with the given state, restoring empty state afterwards."""
    api_routes.set_app_state(printers, transports, templates, print_timeout=5.0, api_key=api_key)
    client = TestClient(create_app())
    yield client
    api_routes.set_app_state({}, {}, {})


@pytest.fixture
def client(shipping_template: LabelTemplate, desk_printer: PrinterEntry, transport: MockTransport):
    """Client with one template and one mock printer."""
    yield from make_client(
        {shipping_template.name: shipping_template},
        {desk_printer.name: desk_printer},
        {desk_printer.name: transport},
    )


class TestAPIRoutes:
    """Test REST API route responses."""

    @pytest.fixture
    def empty_client(self):
        yield from make_client({}, {}, {})

    def test_list_printers_empty(self, empty_client: TestClient):
        """Test listing printers when none are configured."""
        response = empty_client.get("/api/v1/printers")
        assert response.status_code == 200
        assert response.json() == []

    def test_list_printers(self, client: TestClient):
        response = client.get("/api/v1/printers")
        assert response.status_code == 200
        [printer] = response.json()
        assert printer["name"] == "desk"
        assert printer["device"] == "/dev/rfcomm0"
        assert printer["connected"] is False
        assert printer["settings"]["device_model"] == "M110"

    def test_list_templates(self, client: TestClient):
        response = client.get("/api/v1/templates")
        assert response.status_code == 200
        [template] = response.json()
        assert template["name"] == "shipping"
        assert [f["id"] for f in template["fields"]] == ["title", "address", "code"]

    def test_get_template(self, client: TestClient):
        response = client.get("/api/v1/templates/shipping")
        assert response.status_code == 200
        assert response.json()["field_defaults"]["address"] == "Line one\nLine two"

    def test_get_missing_template(self, client: TestClient):
        response = client.get("/api/v1/templates/nope")
        assert response.status_code == 404


class TestFieldsRoute:
    """Tests for field discovery."""

    def test_discover_fields(self, client: TestClient, label_svg: str):
        response = client.post("/api/v1/fields", json={"svg": label_svg})

        assert response.status_code == 200
        data = response.json()
        assert [(f["id"], f["kind"]) for f in data["fields"]] == [("title", "text"), ("address", "multiline-text")]
        assert data["defaults"] == {"title": "Title", "address": "Line one\nLine two"}

    def test_malformed_svg(self, client: TestClient):
        response = client.post("/api/v1/fields", json={"svg": "<svg><text></svg>"})
        assert response.status_code == 422


class TestPreviewRoute:
    """Tests for PNG previews."""

    def test_preview_loaded_template(self, client: TestClient):
        response = client.post("/api/v1/preview", json={"template": "shipping", "values": {"title": "Hi"}})

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        image = Image.open(io.BytesIO(response.content))
        assert image.size == (319, 239)
        assert set(image.convert("L").tobytes()) <= {0, 255}

    def test_preview_inline_svg(self, client: TestClient, label_svg: str):
        response = client.post(
            "/api/v1/preview",
            json={
                "svg": label_svg,
                "fields": [{"id": "code", "kind": "qr"}],
                "values": {"code": "https://example.com"},
                "dithered": False,
                "config": {"orientation": "landscape"},
            },
        )

        assert response.status_code == 200
        assert Image.open(io.BytesIO(response.content)).size == (239, 319)

    def test_preview_missing_template(self, client: TestClient):
        response = client.post("/api/v1/preview", json={"template": "nope"})
        assert response.status_code == 404

    def test_preview_needs_template_or_svg(self, client: TestClient):
        response = client.post("/api/v1/preview", json={"values": {}})
        assert response.status_code == 422

    def test_preview_invalid_config(self, client: TestClient):
        response = client.post("/api/v1/preview", json={"template": "shipping", "config": {"speed": 9}})

        assert response.status_code == 422
        assert response.json()["detail"]["kind"] == "ConfigError"


class TestPrintRoute:
    """Tests for printing."""

    def test_print(self, client: TestClient, transport: MockTransport):
        response = client.post(
            "/api/v1/print",
            json={"printer": "desk", "template": "shipping", "values": {"title": "Parcel", "code": "ABC"}},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["frames_sent"] == data["frames_total"] == 6
        assert "pixels" not in data
        assert len(transport.written) == 6

    def test_print_unknown_printer(self, client: TestClient):
        response = client.post("/api/v1/print", json={"printer": "attic", "template": "shipping"})
        assert response.status_code == 404

    def test_print_invalid_config(self, client: TestClient, transport: MockTransport):
        response = client.post(
            "/api/v1/print",
            json={"printer": "desk", "template": "shipping", "config": {"darkness": 0}},
        )

        assert response.status_code == 422
        data = response.json()
        assert data["success"] is False
        assert data["error"]["stage"] == "config"
        assert transport.written == []

    def test_print_transport_failure(self, shipping_template: LabelTemplate, desk_printer: PrinterEntry):
        failing = MockTransport("desk", fail_at=2)
        for client in make_client(
            {shipping_template.name: shipping_template}, {desk_printer.name: desk_printer}, {"desk": failing}
        ):
            response = client.post("/api/v1/print", json={"printer": "desk", "template": "shipping"})

            assert response.status_code == 503
            data = response.json()
            assert data["error"]["kind"] == "WriteError"
            assert data["frames_sent"] == 2


class TestAPIKey:
    """Tests for optional API key protection."""

    @pytest.fixture
    def secured_client(self, shipping_template: LabelTemplate):
        yield from make_client({shipping_template.name: shipping_template}, {}, {}, api_key="s3cret")

    def test_missing_key_rejected(self, secured_client: TestClient):
        response = secured_client.get("/api/v1/templates")
        assert response.status_code == 401

    def test_wrong_key_rejected(self, secured_client: TestClient):
        response = secured_client.get("/api/v1/templates", headers={"X-API-Key": "guess"})
        assert response.status_code == 401

    def test_header_key(self, secured_client: TestClient):
        response = secured_client.get("/api/v1/templates", headers={"X-API-Key": "s3cret"})
        assert response.status_code == 200

    def test_bearer_token(self, secured_client: TestClient):
        response = secured_client.get("/api/v1/templates", headers={"Authorization": "Bearer s3cret"})
        assert response.status_code == 200

    def test_open_when_no_key_configured(self, client: TestClient):
        assert client.get("/api/v1/templates").status_code == 200
