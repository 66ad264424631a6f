"""
Structural validation of training example batches.

Validation is total: malformed input is classified as invalid with an
attributable issue, never raised. Each issue records the index of the example
in the input batch and, where applicable, the offending message.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from curation.conversation.schema import MessageRole
from curation.core.config import ExampleConfig, config

from .schema import TrainingExample


@dataclass(frozen=True)
class ValidationIssue:
    """
    Single validation failure.

    Fields:
    - example_index: position of the example in the validated batch
    - code: stable machine-readable reason
    - message: human-readable description
    - message_index: offending message position, when the issue is per-message
    """

    example_index: int
    code: str
    message: str
    message_index: Optional[int] = None

    def __str__(self) -> str:
        if self.message_index is None:
            return f"example {self.example_index}: {self.message}"
        return f"example {self.example_index}, message {self.message_index}: {self.message}"


@dataclass
class ValidationReport:
    valid: List[Any] = field(default_factory=list)
    invalid: List[Any] = field(default_factory=list)
    errors: List[ValidationIssue] = field(default_factory=list)

    def errors_for(self, example_index: int) -> List[ValidationIssue]:
        return [e for e in self.errors if e.example_index == example_index]

    def summary(self) -> Dict[str, int]:
        return {
            "total": len(self.valid) + len(self.invalid),
            "valid": len(self.valid),
            "invalid": len(self.invalid),
            "errors": len(self.errors),
        }


def _extract_messages(example: Any) -> Tuple[Optional[List[Any]], Optional[str]]:
    if isinstance(example, TrainingExample):
        return example.to_messages(), None
    if isinstance(example, Mapping):
        messages = example.get("messages")
        if isinstance(messages, list):
            return messages, None
        return None, "example has no 'messages' list"
    return None, f"unsupported example type: {type(example).__name__}"


def validate_example(
    example: Any, index: int, example_config: Optional[ExampleConfig] = None
) -> List[ValidationIssue]:
    """
    Return every structural issue found in a single example.
    """

    cfg = example_config or config.examples
    messages, problem = _extract_messages(example)
    if messages is None:
        return [ValidationIssue(index, "malformed_example", problem or "malformed example")]

    issues: List[ValidationIssue] = []

    if len(messages) < cfg.min_messages:
        issues.append(
            ValidationIssue(
                index,
                "too_few_messages",
                f"expected at least {cfg.min_messages} messages, got {len(messages)}",
            )
        )

    for position, message in enumerate(messages):
        if not isinstance(message, Mapping):
            issues.append(ValidationIssue(index, "malformed_message", "message is not an object", position))
            continue

        role = message.get("role")
        content = message.get("content")

        if position == 0 and role != MessageRole.SYSTEM.value:
            issues.append(
                ValidationIssue(index, "missing_system_role", f"first message role is {role!r}, expected 'system'", 0)
            )

        if not isinstance(content, str):
            issues.append(ValidationIssue(index, "malformed_message", "message content is not text", position))
            continue

        length = len(content)
        if length < cfg.min_content_length:
            issues.append(
                ValidationIssue(
                    index,
                    "content_too_short",
                    f"content too short ({length} < {cfg.min_content_length} characters)",
                    position,
                )
            )
        elif length >= cfg.max_content_length:
            issues.append(
                ValidationIssue(
                    index,
                    "content_too_long",
                    f"content too long ({length} >= {cfg.max_content_length} characters)",
                    position,
                )
            )

    return issues


def validate_batch(
    examples: Iterable[Any], example_config: Optional[ExampleConfig] = None
) -> ValidationReport:
    """
    Split a batch into valid and invalid examples.

    len(valid) + len(invalid) always equals the number of inputs, and every
    invalid example has at least one entry in errors.
    """

    report = ValidationReport()
    for index, example in enumerate(examples):
        issues = validate_example(example, index, example_config)
        if issues:
            report.invalid.append(example)
            report.errors.extend(issues)
        else:
            report.valid.append(example)
    return report
