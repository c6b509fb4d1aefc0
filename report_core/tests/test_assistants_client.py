import pytest

from report_core.domain.exceptions import ApiError, UpstreamServiceError
from report_core.providers.assistants_client import OpenAIAssistantClient


class SettingsStub:
    openai_api_key = "k"
    http_timeout = 1.0
    openai_base_url = "https://api.openai.com/v1/"


class Resp:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code
        self.text = "error body"

    def json(self):
        return self._payload


def _patch(monkeypatch, responses, calls):
    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def request(self, method, url, headers=None, **kwargs):
            calls.append({"method": method, "url": url, "headers": headers, **kwargs})
            return responses.pop(0)

    monkeypatch.setattr("httpx.Client", Client)


def test_submit_flow_calls(monkeypatch):
    calls = []
    _patch(monkeypatch, [Resp({"id": "thread_1"}), Resp({"id": "msg_1"}), Resp({"id": "run_1"})], calls)
    client = OpenAIAssistantClient(SettingsStub())

    assert client.create_thread() == "thread_1"
    assert client.post_message("thread_1", "report text") == "msg_1"
    assert client.start_run("thread_1", "asst_1") == "run_1"

    assert calls[0]["url"] == "https://api.openai.com/v1/threads"
    assert calls[0]["headers"]["OpenAI-Beta"] == "assistants=v2"
    assert calls[1]["json"] == {"role": "user", "content": "report text"}
    assert calls[2]["json"] == {"assistant_id": "asst_1"}


def test_status_and_messages(monkeypatch):
    calls = []
    messages = {
        "data": [
            {
                "id": "msg_2",
                "role": "assistant",
                "created_at": 5,
                "content": [
                    {"type": "text", "text": {"value": "Corrected ", "annotations": []}},
                    {"type": "image_file", "image_file": {"file_id": "f"}},
                    {"type": "text", "text": {"value": "report."}},
                ],
            }
        ]
    }
    _patch(monkeypatch, [Resp({"status": "in_progress"}), Resp(messages)], calls)
    client = OpenAIAssistantClient(SettingsStub())

    assert client.get_run_status("thread_1", "run_1") == "in_progress"
    result = client.list_messages("thread_1", after="msg_1", order="asc")

    assert len(result) == 1
    assert result[0].text == "Corrected report."
    assert result[0].created_at == 5
    assert calls[1]["params"] == {"order": "asc", "after": "msg_1"}


def test_errors(monkeypatch):
    _patch(monkeypatch, [Resp({}, status_code=404)], [])
    with pytest.raises(ApiError):
        OpenAIAssistantClient(SettingsStub()).get_run_status("t", "r")

    _patch(monkeypatch, [Resp({})], [])
    with pytest.raises(UpstreamServiceError):
        OpenAIAssistantClient(SettingsStub()).create_thread()
