"""
LoRA fine-tuning on chat-format training files.

Parameter-efficient training only: adapters are written to output_dir and the
base model weights stay unchanged.
"""

from __future__ import annotations

import json
import logging
from typing import Dict, List

import torch
from datasets import Dataset
from peft import LoraConfig, get_peft_model
from transformers import AutoModelForCausalLM, AutoTokenizer, Trainer, TrainingArguments

from .config import LoraTrainingConfig
from .dataset import load_training_records, render_chat

logger = logging.getLogger("tuning.training")


def _tokenize_records(tokenizer, records: List[Dict], max_length: int) -> Dataset:
    rows = []
    for record in records:
        text = render_chat(record["messages"], tokenizer=tokenizer)
        encoded = tokenizer(
            text,
            truncation=True,
            max_length=max_length,
            padding="max_length",
        )
        rows.append(
            {
                "input_ids": encoded["input_ids"],
                "attention_mask": encoded["attention_mask"],
                "labels": encoded["input_ids"].copy(),
            }
        )
    return Dataset.from_list(rows)


def train_lora(config: LoraTrainingConfig) -> str:
    """
    Run LoRA training and save adapters to output_dir.

    Returns:
        The adapter directory, used as the fine-tuned model id.
    """

    torch.manual_seed(config.seed)

    records = load_training_records(config.dataset_path)
    if not records:
        raise ValueError(f"No training records found in {config.dataset_path}")

    tokenizer = AutoTokenizer.from_pretrained(config.model_path)
    if tokenizer.pad_token is None:
        tokenizer.pad_token = tokenizer.eos_token
    model = AutoModelForCausalLM.from_pretrained(config.model_path)

    lora = LoraConfig(
        r=config.lora_r,
        lora_alpha=config.lora_alpha,
        target_modules=config.target_modules,
        lora_dropout=config.lora_dropout,
        bias="none",
        task_type="CAUSAL_LM",
    )
    model = get_peft_model(model, lora)

    train_dataset = _tokenize_records(tokenizer, records, config.max_seq_length)
    logger.info("Training LoRA adapter on %d records from %s", len(records), config.dataset_path)

    args = TrainingArguments(
        output_dir=config.output_dir,
        per_device_train_batch_size=config.per_device_train_batch_size,
        gradient_accumulation_steps=config.gradient_accumulation_steps,
        num_train_epochs=config.num_train_epochs,
        learning_rate=config.learning_rate,
        weight_decay=config.weight_decay,
        warmup_steps=config.warmup_steps,
        logging_steps=10,
        save_strategy="no",
        fp16=torch.cuda.is_available(),
        report_to=[],
    )

    trainer = Trainer(model=model, args=args, train_dataset=train_dataset)
    trainer.train()
    model.save_pretrained(config.output_dir)
    logger.info("Saved LoRA adapter to %s", config.output_dir)
    return config.output_dir


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="LoRA fine-tuning on chat JSONL")
    parser.add_argument("--config", required=True, help="Path to JSON config file")
    args = parser.parse_args()

    with open(args.config, "r", encoding="utf-8") as f:
        cfg = LoraTrainingConfig(**json.load(f))

    train_lora(cfg)
