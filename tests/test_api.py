"""
API Endpoint Tests for the XSLT Transformation Pipeline

Run with: pytest tests/test_api.py -v
"""

import pytest
from fastapi.testclient import TestClient

from api import MAX_UPLOAD_BYTES, create_app
from xsltflow_core.jobs import JobController
from xsltflow_core.storage import InMemoryDocumentStore

from conftest import CATALOG_XML, CATALOG_XSD, CATALOG_XSL, MISSING_INCLUDE_XSL

WAIT = 10


@pytest.fixture
def controller(config):
    controller = JobController(InMemoryDocumentStore(), config=config)
    yield controller
    controller.shutdown(wait=True)


@pytest.fixture
def client(controller):
    """Create test client over a fresh controller."""
    return TestClient(create_app(controller=controller))


def upload(client, *files):
    """Upload (name, text) pairs and return the response."""
    payload = [("files", (name, text.encode("utf-8"), "application/xml")) for name, text in files]
    return client.post("/api/v1/documents", files=payload)


@pytest.fixture
def catalog_ids(client):
    """Upload the catalog source and stylesheet; return their ids."""
    response = upload(client, ("catalog.xml", CATALOG_XML), ("catalog.xsl", CATALOG_XSL))
    ids = {doc["name"]: doc["id"] for doc in response.json()["uploaded"]}
    return ids["catalog.xml"], ids["catalog.xsl"]


class TestHealthEndpoint:
    """Tests for /api/v1/health endpoint."""

    def test_health_returns_status(self, client):
        """Health endpoint should report healthy with counts."""
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["documents"] == 0
        assert data["jobs"] == 0


class TestInfoEndpoint:
    """Tests for /api/v1/info endpoint."""

    def test_info_contains_engines(self, client):
        """Info should describe version, engines and matchers."""
        data = client.get("/api/v1/info").json()
        assert "version" in data
        assert data["engines"] == {"primary": "LxmlEngine", "fallback": "RestrictedLxmlEngine"}
        assert data["matchers"] == ["exact", "basename", "pattern-family"]
        assert data["config"]["fallback_enabled"] is True


class TestDocumentEndpoints:
    """Tests for /api/v1/documents endpoints."""

    def test_upload(self, client):
        """Uploaded documents are stored with an inferred kind."""
        response = upload(client, ("catalog.xml", CATALOG_XML), ("catalog.xsl", CATALOG_XSL))
        assert response.status_code == 200
        uploaded = response.json()["uploaded"]
        assert [(d["name"], d["kind"]) for d in uploaded] == [
            ("catalog.xml", "source"), ("catalog.xsl", "stylesheet")]

    def test_duplicate_upload_is_skipped(self, client):
        """A name already in the store is skipped."""
        upload(client, ("catalog.xml", CATALOG_XML))
        response = upload(client, ("catalog.xml", CATALOG_XML))
        assert response.json() == {"uploaded": [], "skipped": ["catalog.xml"]}

    def test_unsupported_extension(self, client):
        """Non XML/XSL/XSD files are rejected."""
        response = upload(client, ("notes.txt", "hello"))
        assert response.status_code == 400
        assert "Only XML, XSL, and XSD files are allowed" in response.json()["detail"]

    def test_result_extension_rejected(self, client):
        """Result kinds cannot be uploaded."""
        assert upload(client, ("page.html", "<html/>")).status_code == 400

    def test_too_large(self, client):
        """Files over the upload limit are rejected."""
        response = upload(client, ("big.xml", "<a>" + "x" * MAX_UPLOAD_BYTES + "</a>"))
        assert response.status_code == 400
        assert "too large" in response.json()["detail"]

    def test_validation_status(self, client, controller, catalog_ids):
        """Background checks eventually mark uploads valid."""
        source_id, _ = catalog_ids
        controller.document_checks.shutdown(wait=True)
        data = client.get(f"/api/v1/documents/{source_id}").json()
        assert data["validation_status"] == "valid"

    def test_list_filter_and_content(self, client, catalog_ids):
        """Documents can be listed by kind and downloaded."""
        source_id, stylesheet_id = catalog_ids
        listed = client.get("/api/v1/documents", params={"kind": "stylesheet"}).json()
        assert [d["id"] for d in listed] == [stylesheet_id]

        response = client.get(f"/api/v1/documents/{source_id}/content")
        assert response.status_code == 200
        assert response.content == CATALOG_XML.encode("utf-8")
        assert 'filename="catalog.xml"' in response.headers["content-disposition"]

    def test_delete(self, client, catalog_ids):
        """Deleting twice gives 404 the second time."""
        source_id, _ = catalog_ids
        assert client.delete(f"/api/v1/documents/{source_id}").status_code == 200
        assert client.delete(f"/api/v1/documents/{source_id}").status_code == 404
        assert client.get(f"/api/v1/documents/{source_id}").status_code == 404

    def test_generate_xsd(self, client, catalog_ids):
        """A starter XSD is generated and optionally saved."""
        source_id, _ = catalog_ids
        data = client.post(f"/api/v1/documents/{source_id}/generate-xsd", params={"save": "true"}).json()
        assert data["suggested_filename"] == "catalog.xsd"
        assert "xs:schema" in data["xsd_content"]
        saved = client.get(f"/api/v1/documents/{data['document_id']}").json()
        assert saved["kind"] == "schema"

    def test_generate_xsd_from_schema_rejected(self, client):
        """Schemas cannot be used as XSD samples."""
        schema_id = upload(client, ("catalog.xsd", CATALOG_XSD)).json()["uploaded"][0]["id"]
        assert client.post(f"/api/v1/documents/{schema_id}/generate-xsd").status_code == 400

    def test_analysis(self, client, catalog_ids):
        """Stylesheet analysis counts templates; sources are rejected."""
        source_id, stylesheet_id = catalog_ids
        data = client.get(f"/api/v1/documents/{stylesheet_id}/analysis").json()
        assert data["templates"] == 1
        assert data["output_method"] == "html"
        assert client.get(f"/api/v1/documents/{source_id}/analysis").status_code == 400

    def test_dependencies(self, client):
        """Dependency diagnostics list missing includes."""
        stylesheet_id = upload(client, ("main.xsl", MISSING_INCLUDE_XSL)).json()["uploaded"][0]["id"]
        data = client.get(f"/api/v1/documents/{stylesheet_id}/dependencies").json()
        assert data[0]["declared_path"] == "Missing.xsl"
        assert data[0]["status"] == "missing"


class TestTransformEndpoints:
    """Tests for /api/v1/transform and /api/v1/jobs endpoints."""

    def test_transform_and_fetch_result(self, client, controller, catalog_ids):
        """A job runs to completion and its result downloads as HTML."""
        source_id, stylesheet_id = catalog_ids
        response = client.post("/api/v1/transform", json={"source_id": source_id, "stylesheet_id": stylesheet_id})
        assert response.status_code == 200
        job_id = response.json()["id"]

        controller.wait(job_id, WAIT)
        job = client.get(f"/api/v1/jobs/{job_id}").json()
        assert job["status"] == "completed"
        assert job["progress"] == 100

        result = client.get(f"/api/v1/jobs/{job_id}/result")
        assert result.status_code == 200
        assert result.headers["content-type"].startswith("text/html")
        assert b"XSLT Basics" in result.content
        assert 'filename="catalog_transformed.html"' in result.headers["content-disposition"]

    def test_failed_job_has_no_result(self, client, controller, catalog_ids):
        """Failed jobs report their error; the result endpoint refuses."""
        source_id, _ = catalog_ids
        bad_id = upload(client, ("main.xsl", MISSING_INCLUDE_XSL)).json()["uploaded"][0]["id"]
        job_id = client.post("/api/v1/transform", json={"source_id": source_id, "stylesheet_id": bad_id}).json()["id"]

        controller.wait(job_id, WAIT)
        job = client.get(f"/api/v1/jobs/{job_id}").json()
        assert job["status"] == "failed"
        assert job["error_message"] == "Missing dependency: Missing.xsl"
        response = client.get(f"/api/v1/jobs/{job_id}/result")
        assert response.status_code == 400
        assert response.json()["detail"] == "Job not ready yet"

    def test_unknown_document(self, client, catalog_ids):
        """Unknown document ids give 404."""
        source_id, _ = catalog_ids
        response = client.post("/api/v1/transform", json={"source_id": source_id, "stylesheet_id": "nope"})
        assert response.status_code == 404

    def test_schema_flag_without_schema(self, client, catalog_ids):
        """validate_schema without schema_id gives 400."""
        source_id, stylesheet_id = catalog_ids
        response = client.post("/api/v1/transform", json={
            "source_id": source_id, "stylesheet_id": stylesheet_id, "validate_schema": True})
        assert response.status_code == 400

    def test_unknown_job(self, client):
        """Unknown job ids give 404."""
        assert client.get("/api/v1/jobs/missing").status_code == 404
        assert client.get("/api/v1/jobs/missing/result").status_code == 404

    def test_list_jobs_and_dashboard(self, client, controller, catalog_ids):
        """Jobs are listed by status and counted on the dashboard."""
        source_id, stylesheet_id = catalog_ids
        job_id = client.post("/api/v1/transform", json={"source_id": source_id, "stylesheet_id": stylesheet_id}).json()["id"]
        controller.wait(job_id, WAIT)

        assert [j["id"] for j in client.get("/api/v1/jobs", params={"status": "completed"}).json()] == [job_id]
        assert client.get("/api/v1/jobs", params={"status": "bogus"}).status_code == 400

        stats = client.get("/api/v1/dashboard").json()
        assert stats["total_jobs"] == 1
        assert stats["completed"] == 1
