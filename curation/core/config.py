"""
Application configuration for the security fine-tuning curator.

Provides environment-aware settings with conservative defaults. All relevance,
trigger and validation thresholds are configurable to avoid hard-coded
"magic numbers".
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClassifierConfig(BaseModel):
	"""
	Thresholds for the keyword classifier.

	Rationale:
	- min_messages rejects short exchanges that carry too little signal.
	- relevance_threshold is a strict lower bound on confidence.
	- min_keyword_matches requires at least two distinct vocabulary hits.
	"""

	min_messages: int = Field(3, ge=1, description="Minimum messages to classify")
	relevance_threshold: float = Field(
		0.3, ge=0.0, le=1.0, description="Confidence must exceed this value"
	)
	min_keyword_matches: int = Field(
		2, ge=1, description="Minimum distinct vocabulary terms required"
	)


class ExampleConfig(BaseModel):
	"""
	Structural limits for training examples.

	Notes:
	- min_content_length is inclusive, max_content_length is exclusive.
	- min_messages counts the system message.
	"""

	min_messages: int = Field(2, ge=1)
	min_content_length: int = Field(10, ge=0)
	max_content_length: int = Field(4000, ge=1)


class TrainingTriggerConfig(BaseModel):
	"""
	Job trigger and batch assembly configuration.

	Notes:
	- minimum_job_threshold: qualifying unclaimed records needed to start a job.
	- trigger_confidence_threshold: inclusive confidence floor for qualifying records.
	- batch_size: upper bound on records claimed per job.
	- min_valid_examples: jobs with fewer valid examples fail instead of submitting.
	- lease_ttl_seconds: expiry of the trigger lease held during one invocation.
	"""

	model_config = ConfigDict(protected_namespaces=())

	minimum_job_threshold: int = Field(50, ge=1)
	trigger_confidence_threshold: float = Field(0.5, ge=0.0, le=1.0)
	batch_size: int = Field(100, ge=1, le=10000)
	min_valid_examples: int = Field(10, ge=1)
	lease_ttl_seconds: int = Field(900, ge=1)

	model_type: str = Field("security-assistant", description="Logical model family")
	base_model: str = Field("gpt-4o-mini-2024-07-18", description="Provider base model id")
	job_name_prefix: str = Field("security-ft")
	hyperparameters: Dict[str, Any] = Field(
		default_factory=lambda: {
			"n_epochs": 3,
			"batch_size": 4,
			"learning_rate_multiplier": 1.0,
		}
	)


class EvaluationConfig(BaseModel):
	"""
	Held-out evaluation configuration.
	"""

	min_confidence: float = Field(0.8, ge=0.0, le=1.0)
	sample_size: int = Field(20, ge=1, le=1000)
	evaluation_type: str = "accuracy"


class ProviderConfig(BaseModel):
	"""
	Fine-tuning provider connection settings.

	Notes:
	- timeout_seconds bounds every provider call, including status polls.
	- backend selects the provider implementation: 'openai' or 'local'.
	"""

	backend: str = Field("openai", description="Provider backend: 'openai' or 'local'")
	base_url: str = Field("https://api.openai.com/v1")
	api_key: Optional[str] = Field(None, description="Bearer token for the provider API")
	timeout_seconds: float = Field(30.0, gt=0.0, le=600.0)
	local_model_path: Optional[str] = Field(None, description="Base model dir for local LoRA")
	local_output_dir: Path = Field(Path("artifacts/lora"))


class Config(BaseSettings):
	"""
	Global configuration with environment overrides.
	"""

	model_config = SettingsConfigDict(
		env_prefix="SECTUNE_",
		env_file=".env",
		env_nested_delimiter="__",
		extra="ignore",
	)

	log_level: str = Field("INFO", description="Default logging level")
	logs_dir: Path = Field(Path("logs"), description="Directory for log files")
	database_url: str = Field("sqlite:///curation.db", description="SQLAlchemy URL")

	classifier: ClassifierConfig = ClassifierConfig()
	examples: ExampleConfig = ExampleConfig()
	training: TrainingTriggerConfig = TrainingTriggerConfig()
	evaluation: EvaluationConfig = EvaluationConfig()
	provider: ProviderConfig = ProviderConfig()

	def model_post_init(self, __context: object) -> None:
		self.logs_dir.mkdir(parents=True, exist_ok=True)


config = Config()
