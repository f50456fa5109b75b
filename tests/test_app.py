"""
Tests for the reconciliation HTTP API.
"""

import io
import json
from decimal import Decimal

from PIL import Image

from app import MAX_FILES, create_app
from expense_reconciliation.models import (
    BatchSettings, ConnectionTestResult, ExpenseCategory, InvoiceDetails, InvoiceRecord,
    RecognitionConfig, RecognitionError, RecognitionErrorType
)
from expense_reconciliation.recognition import BaseRecognizer


API_CONFIG = {"endpoint": "https://api.example.com/v1", "api_key": "sk-test-1234567890",
              "model": "vision-model"}


def png_bytes():
    buffer = io.BytesIO()
    Image.new("RGB", (120, 80), color="white").save(buffer, format="PNG")
    return buffer.getvalue()


class FakeRecognizer(BaseRecognizer):
    """Returns a taxi invoice per page, or raises the configured error."""

    def __init__(self, error=None):
        super().__init__("FakeRecognizer")
        self.error = error
        self.pages = []

    def recognize(self, page, config, timeout):
        self.pages.append(page.display_name)
        if self.error is not None:
            raise self.error
        return InvoiceRecord(date="2024-03-15", amount=Decimal("42.50"), confidence=95,
                             invoice=InvoiceDetails(category=ExpenseCategory.TAXI))

    def test_connection(self, config, timeout):
        return ConnectionTestResult(success=True, message="Connection OK", response_time=0.1)


class TestReconciliationAPI:
    """Test cases for the Flask API."""

    def setup_method(self):
        """Setup test environment."""
        self.recognizer = FakeRecognizer()
        self.app = self._build_app(self.recognizer)
        self.client = self.app.test_client()

    def _build_app(self, recognizer, recognition_config=None):
        app = create_app(recognizer=recognizer,
                         settings=BatchSettings(retry_attempts=1, retry_base_delay=0),
                         recognition_config=recognition_config)
        app.config['DEFAULT_RECOGNITION_CONFIG'] = recognition_config
        app.config['TESTING'] = True
        return app

    def _post_files(self, path, files, field='files', api_config=API_CONFIG):
        data = {field: files}
        if api_config is not None:
            data['api_config'] = json.dumps(api_config)
        return self.client.post(path, data=data, content_type='multipart/form-data')

    def test_health(self):
        """Test health endpoint."""
        response = self.client.get('/health')

        assert response.status_code == 200
        assert response.get_json() == {"status": "healthy"}

    def test_connection_ok(self):
        """Test connection check with a valid config."""
        response = self.client.post('/api/test-connection', json={"api_config": API_CONFIG})

        assert response.status_code == 200
        assert response.get_json()['success'] is True

    def test_connection_invalid_config(self):
        """Test connection check rejects a short key."""
        config = dict(API_CONFIG, api_key="short")

        response = self.client.post('/api/test-connection', json={"apiConfig": config})

        assert response.status_code == 400
        assert response.get_json()['error'] == \
            "Invalid API configuration: API key must be at least 10 characters"

    def test_connection_requires_json(self):
        """Test a non-JSON body is rejected."""
        response = self.client.post('/api/test-connection', data="nope")

        assert response.status_code == 400

    def test_recognize_single_file(self):
        """Test single-file recognition."""
        response = self._post_files('/api/recognize', (io.BytesIO(png_bytes()), "ride.png"), field='file')

        assert response.status_code == 200
        record = response.get_json()['record']
        assert record['document_type'] == "invoice"
        assert record['file_name'] == "ride.png"
        assert record['amount'] == "42.50"

    def test_recognize_requires_config(self):
        """Test missing api_config without a default."""
        response = self._post_files('/api/recognize', (io.BytesIO(png_bytes()), "ride.png"),
                                    field='file', api_config=None)

        assert response.status_code == 400
        assert response.get_json()['error'] == "api_config is required"

    def test_recognize_uses_default_config(self):
        """Test the configured default is used when a request carries none."""
        app = self._build_app(self.recognizer, RecognitionConfig.from_dict(API_CONFIG))

        response = app.test_client().post(
            '/api/recognize', data={'file': (io.BytesIO(png_bytes()), "ride.png")},
            content_type='multipart/form-data')

        assert response.status_code == 200

    def test_recognize_passes_upstream_status(self):
        """Test recognition errors keep the upstream status code."""
        error = RecognitionError(RecognitionErrorType.API_KEY_INVALID, False, "Unauthorized", 401)
        client = self._build_app(FakeRecognizer(error=error)).test_client()

        response = client.post('/api/recognize',
                               data={'file': (io.BytesIO(png_bytes()), "ride.png"),
                                     'api_config': json.dumps(API_CONFIG)},
                               content_type='multipart/form-data')

        assert response.status_code == 401
        assert response.get_json()['error'] == "API key is invalid, check the configuration"

    def test_recognize_unsupported_type(self):
        """Test non-image uploads are rejected."""
        response = self._post_files('/api/recognize', (io.BytesIO(b"hello"), "notes.txt"), field='file')

        assert response.status_code == 400
        assert response.get_json()['error'] == \
            "Unsupported file format, upload PDF, PNG, JPG or JPEG files"

    def test_batch_process(self):
        """Test a batch with one unreadable file."""
        files = [(io.BytesIO(png_bytes()), "a.png"), (io.BytesIO(b"not an image"), "b.png")]

        response = self._post_files('/api/batch-process', files)

        assert response.status_code == 200
        body = response.get_json()
        assert [r['file_name'] for r in body['records']] == ["a.png", "b.png"]
        assert body['records'][1]['status'] == "error"
        assert [f['file_name'] for f in body['file_errors']] == ["b.png"]
        assert len(body['sorting']['suggested_order']) == 2
        assert set(body) == {'records', 'pairing', 'sorting', 'warnings', 'file_errors'}

    def test_batch_all_failed(self):
        """Test a batch where every file fails."""
        error = RecognitionError(RecognitionErrorType.API_KEY_INVALID, False, "Unauthorized", 401)
        client = self._build_app(FakeRecognizer(error=error)).test_client()

        response = client.post('/api/batch-process',
                               data={'files': [(io.BytesIO(png_bytes()), "a.png")],
                                     'api_config': json.dumps(API_CONFIG)},
                               content_type='multipart/form-data')

        assert response.status_code == 500
        body = response.get_json()
        assert body['file_errors'][0]['file_name'] == "a.png"
        assert "API key is invalid" in body['file_errors'][0]['error']

    def test_batch_requires_files(self):
        """Test an empty upload."""
        response = self.client.post('/api/batch-process', data={'api_config': json.dumps(API_CONFIG)},
                                    content_type='multipart/form-data')

        assert response.status_code == 400
        assert response.get_json()['error'] == "No files uploaded"

    def test_batch_file_limit(self):
        """Test the per-request file limit."""
        files = [(io.BytesIO(b"x"), f"f{i}.png") for i in range(MAX_FILES + 1)]

        response = self._post_files('/api/batch-process', files)

        assert response.status_code == 400
        assert "Too many files" in response.get_json()['error']
        assert self.recognizer.pages == []

    def test_pair_sort_and_detect(self):
        """Test the JSON endpoints over already recognized documents."""
        documents = [
            {"id": "inv-1", "document_type": "invoice", "date": "2024-03-15", "amount": "50.00",
             "invoice": {"category": "taxi", "vendor": "DiDi"}},
            {"id": "trip-1", "document_type": "trip_sheet", "date": "2024-03-15", "amount": "50.00",
             "trip_details": {"platform": "滴滴出行"}},
            {"id": "inv-2", "document_type": "invoice", "date": "2024-03-16", "amount": "300",
             "invoice": {"category": "hotel"}},
        ]

        pairing = self.client.post('/api/pair', json={"documents": documents}).get_json()
        assert [(p['invoice_id'], p['trip_sheet_id']) for p in pairing['pairs']] == [("inv-1", "trip-1")]
        assert pairing['unmatched_invoices'] == ["inv-2"]

        sorting = self.client.post('/api/sort', json={"documents": documents, "pairs": pairing})
        assert sorting.status_code == 200
        assert sorted(sorting.get_json()['suggested_order']) == ["inv-1", "inv-2", "trip-1"]

        detected = self.client.post('/api/detect-anomalies', json={"documents": documents, "pairs": pairing})
        assert detected.status_code == 200
        assert isinstance(detected.get_json()['warnings'], list)

    def test_detect_duplicates(self):
        """Test duplicate invoices are reported."""
        documents = [
            {"id": f"inv-{i}", "document_type": "invoice", "date": "2024-03-15", "amount": "88",
             "invoice": {"category": "other"}}
            for i in range(2)
        ]

        response = self.client.post('/api/detect-anomalies', json={"documents": documents})

        warnings = response.get_json()['warnings']
        assert any(w['type'] == "duplicate" and w['document_ids'] == ["inv-0", "inv-1"] for w in warnings)

    def test_invalid_documents(self):
        """Test malformed document lists."""
        missing = self.client.post('/api/pair', json={})
        unknown = self.client.post('/api/pair', json={"documents": [{"document_type": "receipt"}]})

        assert missing.status_code == 400
        assert unknown.status_code == 400
        assert "Unknown document type" in unknown.get_json()['error']
