"""
Dataset utilities for local LoRA fine-tuning.

Training files are JSONL, one {"messages": [...]} object per line, the same
shape hosted providers accept.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

_ROLE_TAGS = {
    "system": "<|system|>",
    "user": "<|user|>",
    "assistant": "<|assistant|>",
}


def write_training_file(path: Union[str, Path], records: Sequence[Mapping[str, Any]]) -> Path:
    """
    Write records as JSONL, creating parent directories.
    """

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w", encoding="utf-8") as f:
        for record in records:
            f.write(json.dumps(record, sort_keys=True, ensure_ascii=False))
            f.write("\n")
    return target


def load_training_records(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """
    Load JSONL training records from disk.

    Each line must be a JSON object with a "messages" list. Blank lines are
    skipped.
    """

    records: List[Dict[str, Any]] = []
    with open(path, "r", encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            if not line.strip():
                continue
            payload = json.loads(line)
            if not isinstance(payload, dict) or not isinstance(payload.get("messages"), list):
                raise ValueError(f"{path}:{line_number}: expected an object with a 'messages' list")
            records.append(payload)
    return records


def render_chat(
    messages: Sequence[Mapping[str, str]],
    tokenizer: Optional[Any] = None,
    add_generation_prompt: bool = False,
) -> str:
    """
    Render a message list to training/inference text.

    Uses the tokenizer's chat template when it has one, otherwise a plain
    role-tagged layout.
    """

    if tokenizer is not None and getattr(tokenizer, "chat_template", None):
        return tokenizer.apply_chat_template(
            [dict(m) for m in messages],
            tokenize=False,
            add_generation_prompt=add_generation_prompt,
        )

    parts = []
    for message in messages:
        tag = _ROLE_TAGS.get(message.get("role", ""), "<|user|>")
        parts.append(f"{tag}\n{message.get('content', '')}")
    if add_generation_prompt:
        parts.append(_ROLE_TAGS["assistant"])
    return "\n".join(parts) + ("\n" if add_generation_prompt else "")
