import tempfile

import pytest

from report_core.agents.correction import FALLBACK_TEXT
from report_core.api import service
from report_core.domain.exceptions import ValidationError


def _settings(root):
    class Cfg:
        openai_api_key = "k"
        openai_base_url = "https://api.openai.com/v1"
        http_timeout = 1.0
        storage_root = root
        default_model = "report-chat"
        embedding_model = "report-embed"
        retrieval_k = 8
        crime_element_k = 5
        correction_assistant_id = None
        poll_interval = 0.5
        max_poll_attempts = 600
        poll_deadline_seconds = None

    return Cfg()


def _embedding_client(vector):
    class Resp:
        status_code = 200

        def json(self):
            return {"data": [{"embedding": vector}]}

    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, *a, **kw):
            return Resp()

    return Client


def test_ingest_reference_and_get_messages(monkeypatch):
    with tempfile.TemporaryDirectory() as d:
        svc = service.build_services(_settings(d))
        monkeypatch.setattr(service, "_services", svc)
        monkeypatch.setattr("httpx.Client", _embedding_client([1.0] + [0.0] * 1535))

        cid = service.ingest_reference("CALCRIM 1800 petty theft")

        assert len(svc.corpus) == 1
        assert svc.corpus.get_chunks_by_ids([cid])[0].text == "CALCRIM 1800 petty theft"
        assert service.get_messages("s1") == []
        with pytest.raises(ValidationError):
            service.ingest_reference("")


def test_correction_missing_assistant_id_is_logged(monkeypatch):
    errors = []

    class RecordingLogger:
        def error(self, msg, extra=None):
            errors.append((msg, extra))

    with tempfile.TemporaryDirectory() as d:
        svc = service.build_services(_settings(d))
        monkeypatch.setattr(service, "_services", svc)
        monkeypatch.setattr(service, "logger", RecordingLogger())
        with pytest.raises(ValidationError) as exc_info:
            service.correction("Suspect fled.")

    assert exc_info.value.code == "MISSING_ASSISTANT_ID"
    assert len(errors) == 1
    assert errors[0][0].startswith("Correction failed")


def test_correction_uses_configured_poller(monkeypatch):
    class Assistant:
        def create_thread(self):
            return "thread-1"

        def post_message(self, thread_id, content, role="user"):
            return "msg-1"

        def start_run(self, thread_id, assistant_id):
            assert assistant_id == "asst-1"
            return "run-1"

        def get_run_status(self, thread_id, run_id):
            return "failed"

    with tempfile.TemporaryDirectory() as d:
        cfg = _settings(d)
        cfg.correction_assistant_id = "asst-1"
        svc = service.build_services(cfg)
        svc.assistant_client = Assistant()
        monkeypatch.setattr(service, "_services", svc)

        assert service.correction("Suspect fled.") == FALLBACK_TEXT
