import sys
import os
import json
import logging
import functools
from typing import Any, Dict, List, Optional

from flask import Flask, current_app, jsonify, request

from expense_reconciliation.anomalies import AnomalyDetector
from expense_reconciliation.batch import BatchOrchestrator, retry_with_backoff
from expense_reconciliation.config import (
    ConfigurationValidator, load_batch_settings, load_recognition_config
)
from expense_reconciliation.error_messages import (
    get_user_friendly_message, http_status_for, sanitize_error
)
from expense_reconciliation.matching import PairMatcher
from expense_reconciliation.models import (
    BatchError, BatchFile, BatchSettings, FileErrorType, FileProcessingError, MediaKind,
    PairingResult, RecognitionConfig, Record, ReconciliationError, ValidationError
)
from expense_reconciliation.recognition import BaseRecognizer, OpenAIRecognizer, PageLoader
from expense_reconciliation.sequencing import DocumentSorter

logger = logging.getLogger('expense_api')

MAX_FILES = 50
ALLOWED_MIME_TYPES = ('image/jpeg', 'image/jpg', 'image/png', 'application/pdf')
ALLOWED_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.pdf')


def configure_logging(level: Optional[str] = None):
    """Send all log records to stdout; safe to call more than once."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, (level or os.environ.get('LOG_LEVEL', 'INFO')).upper(),
                                 logging.INFO))
    if not any(getattr(h, '_expense_api', False) for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handler._expense_api = True
        root_logger.addHandler(handler)


# --- Request parsing helpers ---

def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _recognition_config(raw: Any) -> RecognitionConfig:
    """Build and validate the recognition config sent with a request."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            raise ValidationError("api_config is not valid JSON")

    if raw is None:
        config = current_app.config.get('DEFAULT_RECOGNITION_CONFIG')
        if config is None:
            raise ValidationError("api_config is required")
    else:
        config = RecognitionConfig.from_dict(raw)

    result = current_app.config['VALIDATOR'].validate_recognition_config(config)
    result.raise_if_invalid("API configuration")
    return config


def _form_recognition_config() -> RecognitionConfig:
    return _recognition_config(request.form.get('api_config') or request.form.get('apiConfig'))


def _media_kind_for(upload) -> MediaKind:
    file_name = upload.filename or ""
    mime_type = upload.mimetype
    if mime_type in ALLOWED_MIME_TYPES:
        return MediaKind.from_mime_type(mime_type, file_name)
    if file_name.lower().endswith(ALLOWED_EXTENSIONS):
        return MediaKind.from_mime_type(None, file_name)
    raise FileProcessingError(FileErrorType.UNSUPPORTED_FORMAT, file_name,
                              f"Unsupported file type {mime_type or 'unknown'}, only PDF, PNG and JPG are accepted")


def _batch_file(upload) -> BatchFile:
    return BatchFile(file_name=upload.filename or "upload",
                     content=upload.read(),
                     media_kind=_media_kind_for(upload))


def _records(data: Dict[str, Any]) -> List[Record]:
    documents = data.get('documents')
    if not isinstance(documents, list):
        raise ValidationError("documents must be a list")
    return [Record.from_dict(document) for document in documents]


def _pairing(data: Dict[str, Any]) -> Optional[PairingResult]:
    raw = data.get('pairs')
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValidationError("pairs must be an object")
    try:
        return PairingResult.from_dict(raw)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise ValidationError(f"Invalid pairs data: {e}")


def create_app(recognizer: Optional[BaseRecognizer] = None,
               settings: Optional[BatchSettings] = None,
               recognition_config: Optional[RecognitionConfig] = None) -> Flask:
    """
    Create the reconciliation API.

    Args:
        recognizer: Recognition collaborator (OpenAI-compatible client by default)
        settings: Batch settings (read from the environment by default)
        recognition_config: Fallback config for requests without api_config
    """
    configure_logging()

    settings = settings or load_batch_settings()
    if recognition_config is None:
        recognition_config = load_recognition_config()

    app = Flask(__name__)
    app.config['MAX_CONTENT_LENGTH'] = MAX_FILES * settings.max_file_size_mb * 1024 * 1024
    app.config['BATCH_SETTINGS'] = settings
    app.config['RECOGNIZER'] = recognizer or OpenAIRecognizer()
    app.config['VALIDATOR'] = ConfigurationValidator()
    app.config['DEFAULT_RECOGNITION_CONFIG'] = recognition_config

    logger.info(f"Expense API created (concurrency {settings.max_concurrency}, "
                f"default endpoint {'set' if recognition_config else 'not set'})")

    @app.errorhandler(ReconciliationError)
    def handle_reconciliation_error(error):
        status = http_status_for(error)
        body = {"error": get_user_friendly_message(error)}
        if isinstance(error, BatchError):
            body["file_errors"] = [failure.to_dict() for failure in error.file_errors]

        if status >= 500:
            logger.error(f"{request.path} failed: {sanitize_error(error)}")
        else:
            logger.warning(f"{request.path} rejected: {sanitize_error(error)}")
        return jsonify(body), status

    @app.route('/health', methods=['GET'])
    def health_check():
        """Health check endpoint."""
        return jsonify({"status": "healthy"}), 200

    @app.route('/api/test-connection', methods=['POST'])
    def test_connection():
        data = _json_body()
        config = _recognition_config(data.get('api_config', data.get('apiConfig')))
        result = current_app.config['RECOGNIZER'].test_connection(
            config, current_app.config['BATCH_SETTINGS'].request_timeout)
        logger.info(f"/api/test-connection: {config.endpoint} -> {'ok' if result.success else 'failed'}")
        return jsonify(result.to_dict())

    @app.route('/api/recognize', methods=['POST'])
    def recognize():
        """Recognize the first page of a single uploaded file."""
        upload = request.files.get('file')
        if upload is None:
            raise ValidationError("No file uploaded")

        config = _form_recognition_config()
        batch_settings = current_app.config['BATCH_SETTINGS']
        batch_file = _batch_file(upload)

        pages = PageLoader.from_settings(batch_settings).load_pages(batch_file)
        page = pages[0]
        record = retry_with_backoff(
            functools.partial(current_app.config['RECOGNIZER'].recognize, page, config,
                              batch_settings.request_timeout),
            max_retries=batch_settings.retry_attempts,
            base_delay=batch_settings.retry_base_delay,
            description=f"Recognize {page.display_name}"
        )
        record.file_name = page.display_name
        record.file_type = page.source_type
        return jsonify({"record": record.to_dict()})

    @app.route('/api/batch-process', methods=['POST'])
    def batch_process():
        uploads = request.files.getlist('files')
        if not uploads:
            raise ValidationError("No files uploaded")
        if len(uploads) > MAX_FILES:
            raise ValidationError(f"Too many files: {len(uploads)} (maximum {MAX_FILES})")

        config = _form_recognition_config()
        files = [_batch_file(upload) for upload in uploads]

        orchestrator = BatchOrchestrator(current_app.config['RECOGNIZER'],
                                         settings=current_app.config['BATCH_SETTINGS'])
        result = orchestrator.process_batch(files, config)
        return jsonify(result.to_dict())

    @app.route('/api/pair', methods=['POST'])
    def pair():
        records = _records(_json_body())
        return jsonify(PairMatcher().pair_documents(records).to_dict())

    @app.route('/api/sort', methods=['POST'])
    def sort():
        data = _json_body()
        records = _records(data)
        return jsonify(DocumentSorter().sort_documents(records, _pairing(data)).to_dict())

    @app.route('/api/detect-anomalies', methods=['POST'])
    def detect_anomalies():
        data = _json_body()
        records = _records(data)
        warnings = AnomalyDetector().detect_anomalies(records, _pairing(data))
        return jsonify({"warnings": [warning.to_dict() for warning in warnings]})

    return app


app = create_app()

if __name__ == '__main__':
    # For local development
    app.run(debug=True, host='0.0.0.0', port=int(os.environ.get('PORT', 8088)))
