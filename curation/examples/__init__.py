"""
Training example module: formatting and structural validation.

Pipeline:

    Conversation + ClassificationRecord
        ↓
    ExampleFormatter (curation/examples/formatter.py) → TrainingExample
        ↓
    validate_batch (curation/examples/validator.py) → ValidationReport
"""

from .formatter import ExampleFormatter
from .prompt import SYSTEM_PROMPT_TEMPLATE, build_system_prompt
from .schema import TrainingExample
from .validator import ValidationIssue, ValidationReport, validate_batch, validate_example

__all__ = [
    "ExampleFormatter",
    "SYSTEM_PROMPT_TEMPLATE",
    "build_system_prompt",
    "TrainingExample",
    "ValidationIssue",
    "ValidationReport",
    "validate_batch",
    "validate_example",
]
