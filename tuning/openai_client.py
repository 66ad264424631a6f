"""
OpenAI-compatible fine-tuning provider over HTTP.

Endpoints used:
- POST /files                 (multipart upload, purpose=fine-tune)
- POST /fine_tuning/jobs      (create job)
- GET  /fine_tuning/jobs/{id} (status)
- POST /chat/completions      (inference with the resulting model)

Every request is bounded by ProviderConfig.timeout_seconds. No call is retried.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

from curation.core.config import ProviderConfig, config
from curation.core.exceptions import ProviderError, ProviderTimeoutError

from .provider import FineTuningProvider
from .schema import ProviderJobStatus, normalize_state

logger = logging.getLogger("tuning.openai")


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return response.text[:500]


def encode_jsonl(records: Sequence[Mapping[str, Any]]) -> bytes:
    lines = [json.dumps(record, sort_keys=True, ensure_ascii=False) for record in records]
    return ("\n".join(lines) + "\n").encode("utf-8")


class OpenAIFineTuningClient(FineTuningProvider):
    """
    Synchronous httpx client for OpenAI-style fine-tuning APIs.
    """

    def __init__(
        self,
        provider_config: Optional[ProviderConfig] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.config = provider_config or config.provider
        self._headers: Dict[str, str] = {}
        if self.config.api_key:
            self._headers["Authorization"] = f"Bearer {self.config.api_key}"
        self._client = client or httpx.Client(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "OpenAIFineTuningClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._client.request(
                method,
                path,
                headers=self._headers,
                timeout=self.config.timeout_seconds,
                **kwargs,
            )
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(
                f"{method} {path} timed out after {self.config.timeout_seconds}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"{method} {path} failed: {exc}") from exc

        if response.status_code >= 400:
            raise ProviderError(
                f"{method} {path} returned {response.status_code}: {_error_detail(response)}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(f"{method} {path} returned a non-JSON body") from exc
        if not isinstance(payload, dict):
            raise ProviderError(f"{method} {path} returned unexpected payload")
        return payload

    def upload_training_file(self, file_name: str, records: Sequence[Mapping[str, Any]]) -> str:
        uploaded = self._request(
            "POST",
            "/files",
            data={"purpose": "fine-tune"},
            files={"file": (file_name, encode_jsonl(records), "application/jsonl")},
        )
        file_id = uploaded.get("id")
        if not file_id:
            raise ProviderError("File upload response is missing an id")
        logger.info("Uploaded training file %s as %s (%d records)", file_name, file_id, len(records))
        return str(file_id)

    def submit(
        self,
        file_name: str,
        records: Sequence[Mapping[str, Any]],
        base_model: str,
        hyperparameters: Optional[Mapping[str, Any]] = None,
    ) -> str:
        file_id = self.upload_training_file(file_name, records)

        body: Dict[str, Any] = {"training_file": file_id, "model": base_model}
        if hyperparameters:
            body["hyperparameters"] = dict(hyperparameters)

        created = self._request("POST", "/fine_tuning/jobs", json=body)
        handle = created.get("id")
        if not handle:
            raise ProviderError("Fine-tuning job response is missing an id")
        logger.info("Created provider fine-tuning job %s on %s", handle, base_model)
        return str(handle)

    def get_status(self, handle: str) -> ProviderJobStatus:
        payload = self._request("GET", f"/fine_tuning/jobs/{handle}")
        raw_status = payload.get("status")

        error = payload.get("error")
        error_message: Optional[str] = None
        if isinstance(error, dict):
            error_message = error.get("message") or None
        elif isinstance(error, str) and error:
            error_message = error

        return ProviderJobStatus(
            handle=handle,
            state=normalize_state(raw_status),
            raw_status=raw_status,
            fine_tuned_model=payload.get("fine_tuned_model"),
            error=error_message,
        )

    def complete(self, model_id: str, messages: List[Dict[str, str]]) -> str:
        payload = self._request(
            "POST",
            "/chat/completions",
            json={"model": model_id, "messages": messages, "temperature": 0},
        )
        try:
            content = payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError("Chat completion response has no message content") from exc
        return content or ""
