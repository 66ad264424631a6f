"""
Local causal LM wrapper with LoRA adapter support.

Loads lazily on first use. Base weights stay unchanged; the adapter is
attached on top for inference only.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Dict, List, Optional

from peft import PeftModel
from transformers import AutoModelForCausalLM, AutoTokenizer

from .config import LocalModelConfig
from .training.dataset import render_chat

logger = logging.getLogger("tuning.inference")


@dataclass
class LocalChatModel:
    """
    Deterministic local chat model.

    Generation uses do_sample=False; only newly generated tokens are decoded.
    """

    config: LocalModelConfig
    _tokenizer: Optional[AutoTokenizer] = None
    _model: Optional[AutoModelForCausalLM] = None

    def load(self) -> None:
        if self._model is not None and self._tokenizer is not None:
            return
        import torch

        device = "cuda" if torch.cuda.is_available() else "cpu"
        logger.info(
            "Loading base model from %s (local_files_only=%s, device=%s)",
            self.config.model_path,
            self.config.local_files_only,
            device,
        )
        self._tokenizer = AutoTokenizer.from_pretrained(
            self.config.model_path, local_files_only=self.config.local_files_only
        )
        self._model = AutoModelForCausalLM.from_pretrained(
            self.config.model_path, local_files_only=self.config.local_files_only
        )
        if self.config.adapter_path:
            logger.info("Attaching LoRA adapter from %s", self.config.adapter_path)
            self._model = PeftModel.from_pretrained(
                self._model,
                self.config.adapter_path,
                is_trainable=False,
            )
        self._model.to(device)
        self._model.eval()

    def generate(self, prompt: str) -> str:
        if self._model is None or self._tokenizer is None:
            self.load()

        inputs = self._tokenizer(prompt, return_tensors="pt", truncation=True)
        inputs = {k: v.to(self._model.device) for k, v in inputs.items()}
        prompt_length = inputs["input_ids"].shape[1]

        output_ids = self._model.generate(
            **inputs,
            max_new_tokens=self.config.max_new_tokens,
            do_sample=False,
            top_p=self.config.top_p,
            repetition_penalty=self.config.repetition_penalty,
            eos_token_id=self._tokenizer.eos_token_id,
            pad_token_id=self._tokenizer.eos_token_id,
        )
        return self._tokenizer.decode(output_ids[0][prompt_length:], skip_special_tokens=True).strip()

    def chat(self, messages: List[Dict[str, str]]) -> str:
        if self._tokenizer is None:
            self.load()
        prompt = render_chat(messages, tokenizer=self._tokenizer, add_generation_prompt=True)
        return self.generate(prompt)
