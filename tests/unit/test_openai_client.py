"""
Unit tests for the OpenAI-compatible provider client using httpx.MockTransport.
"""

import json

import httpx
import pytest

from curation.core.config import ProviderConfig
from curation.core.exceptions import ProviderError, ProviderTimeoutError
from tuning.openai_client import OpenAIFineTuningClient, encode_jsonl
from tuning.schema import ProviderJobState


RECORDS = [
    {"messages": [{"role": "system", "content": "sys"}, {"role": "user", "content": "hi"}]},
    {"messages": [{"role": "system", "content": "sys"}, {"role": "user", "content": "yo"}]},
]


def _client(handler):
    cfg = ProviderConfig(base_url="https://provider.test/v1", api_key="sk-test", timeout_seconds=5)
    http = httpx.Client(base_url=cfg.base_url, transport=httpx.MockTransport(handler))
    return OpenAIFineTuningClient(cfg, client=http)


def test_submit_uploads_file_then_creates_job():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/v1/files":
            return httpx.Response(200, json={"id": "file-1"})
        if request.url.path == "/v1/fine_tuning/jobs":
            return httpx.Response(200, json={"id": "ftjob-1", "status": "validating_files"})
        return httpx.Response(404, json={"error": {"message": "nope"}})

    with _client(handler) as client:
        handle = client.submit("security-ft-1.jsonl", RECORDS, "base-model", {"n_epochs": 3})

    assert handle == "ftjob-1"
    upload, create = seen
    assert upload.headers["Authorization"] == "Bearer sk-test"
    upload_body = upload.read()
    assert b"security-ft-1.jsonl" in upload_body
    assert b"fine-tune" in upload_body
    assert json.loads(create.read()) == {
        "training_file": "file-1",
        "model": "base-model",
        "hyperparameters": {"n_epochs": 3},
    }


def test_encode_jsonl_one_record_per_line():
    lines = encode_jsonl(RECORDS).decode("utf-8").strip().split("\n")

    assert len(lines) == 2
    assert json.loads(lines[0]) == RECORDS[0]


@pytest.mark.parametrize(
    "raw, state",
    [
        ("validating_files", ProviderJobState.QUEUED),
        ("queued", ProviderJobState.QUEUED),
        ("running", ProviderJobState.RUNNING),
        ("succeeded", ProviderJobState.SUCCEEDED),
        ("failed", ProviderJobState.FAILED),
        ("cancelled", ProviderJobState.CANCELLED),
        ("paused", ProviderJobState.UNKNOWN),
    ],
)
def test_get_status_normalizes_state(raw, state):
    def handler(request):
        return httpx.Response(200, json={"id": "ftjob-1", "status": raw})

    status = _client(handler).get_status("ftjob-1")

    assert status.state == state
    assert status.raw_status == raw


def test_get_status_reports_model_and_error():
    def handler(request):
        assert request.url.path == "/v1/fine_tuning/jobs/ftjob-9"
        return httpx.Response(
            200,
            json={
                "id": "ftjob-9",
                "status": "failed",
                "fine_tuned_model": None,
                "error": {"message": "Training file has invalid lines"},
            },
        )

    status = _client(handler).get_status("ftjob-9")

    assert status.state == ProviderJobState.FAILED
    assert status.error == "Training file has invalid lines"


def test_error_status_raises_provider_error_with_detail():
    def handler(request):
        return httpx.Response(400, json={"error": {"message": "invalid model"}})

    with pytest.raises(ProviderError, match="invalid model"):
        _client(handler).submit("f.jsonl", RECORDS, "bad-model")


def test_timeout_raises_provider_timeout_error():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(ProviderTimeoutError):
        _client(handler).get_status("ftjob-1")


def test_transport_failure_raises_provider_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ProviderError) as excinfo:
        _client(handler).get_status("ftjob-1")
    assert not isinstance(excinfo.value, ProviderTimeoutError)


def test_missing_job_id_is_an_error():
    def handler(request):
        if request.url.path == "/v1/files":
            return httpx.Response(200, json={"id": "file-1"})
        return httpx.Response(200, json={"status": "queued"})

    with pytest.raises(ProviderError):
        _client(handler).submit("f.jsonl", RECORDS, "base-model")


def test_complete_returns_message_content():
    def handler(request):
        body = json.loads(request.read())
        assert body["model"] == "ft:model"
        assert body["temperature"] == 0
        return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": "malware"}}]})

    assert _client(handler).complete("ft:model", [{"role": "user", "content": "hi"}]) == "malware"


def test_complete_without_choices_is_an_error():
    def handler(request):
        return httpx.Response(200, json={"choices": []})

    with pytest.raises(ProviderError):
        _client(handler).complete("ft:model", [{"role": "user", "content": "hi"}])
