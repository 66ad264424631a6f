"""
Local LoRA fine-tuning provider.

Runs training jobs in a worker thread on this machine and reports their
progress through the same status contract as hosted providers. The
fine-tuned model id is the adapter output directory.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence
from uuid import uuid4

from curation.core.config import ProviderConfig, config
from curation.core.exceptions import ProviderError

from .config import LocalModelConfig
from .provider import FineTuningProvider
from .schema import ProviderJobState, ProviderJobStatus
from .training.config import LoraTrainingConfig
from .training.dataset import write_training_file

logger = logging.getLogger("tuning.local")


def _run_training(training_config: LoraTrainingConfig) -> str:
    from .training.train_lora import train_lora

    return train_lora(training_config)


class LocalLoraProvider(FineTuningProvider):
    """
    In-process provider backed by transformers + peft.

    Notes:
    - max_workers=1 trains one adapter at a time; later submissions queue.
    - The base model is provider_config.local_model_path when set, otherwise
      the base_model passed to submit().
    """

    def __init__(
        self,
        provider_config: Optional[ProviderConfig] = None,
        max_workers: int = 1,
    ) -> None:
        self.config = provider_config or config.provider
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="lora-train")
        self._jobs: Dict[str, Future] = {}
        self._base_models: Dict[str, str] = {}
        self._models: Dict[str, Any] = {}

    def submit(
        self,
        file_name: str,
        records: Sequence[Mapping[str, Any]],
        base_model: str,
        hyperparameters: Optional[Mapping[str, Any]] = None,
    ) -> str:
        handle = f"local-{uuid4().hex[:12]}"
        job_dir = Path(self.config.local_output_dir) / handle
        model_path = self.config.local_model_path or base_model

        try:
            dataset_path = write_training_file(job_dir / file_name, records)
        except OSError as exc:
            raise ProviderError(f"Could not write training file: {exc}") from exc

        training_config = LoraTrainingConfig(
            model_path=model_path,
            dataset_path=str(dataset_path),
            output_dir=str(job_dir / "adapter"),
        ).with_hyperparameters(hyperparameters or {})

        self._base_models[training_config.output_dir] = model_path
        self._jobs[handle] = self._executor.submit(_run_training, training_config)
        logger.info("Queued local LoRA job %s (%d records, base=%s)", handle, len(records), model_path)
        return handle

    def get_status(self, handle: str) -> ProviderJobStatus:
        future = self._jobs.get(handle)
        if future is None:
            raise ProviderError(f"Unknown local job handle: {handle}")

        if future.cancelled():
            return ProviderJobStatus(handle=handle, state=ProviderJobState.CANCELLED, raw_status="cancelled")
        if future.running():
            return ProviderJobStatus(handle=handle, state=ProviderJobState.RUNNING, raw_status="running")
        if not future.done():
            return ProviderJobStatus(handle=handle, state=ProviderJobState.QUEUED, raw_status="queued")

        exc = future.exception()
        if exc is not None:
            return ProviderJobStatus(
                handle=handle,
                state=ProviderJobState.FAILED,
                raw_status="failed",
                error=f"{type(exc).__name__}: {exc}",
            )
        return ProviderJobStatus(
            handle=handle,
            state=ProviderJobState.SUCCEEDED,
            raw_status="succeeded",
            fine_tuned_model=future.result(),
        )

    def complete(self, model_id: str, messages: List[Dict[str, str]]) -> str:
        model = self._models.get(model_id)
        if model is None:
            base = self._base_models.get(model_id) or self.config.local_model_path
            if not base:
                raise ProviderError(f"No base model known for adapter {model_id}")
            from .inference import LocalChatModel

            model = LocalChatModel(config=LocalModelConfig(model_path=base, adapter_path=model_id))
            self._models[model_id] = model

        try:
            return model.chat(messages)
        except Exception as exc:
            raise ProviderError(f"Local inference failed for {model_id}: {exc}") from exc
