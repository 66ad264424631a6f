"""
System prompt template for training examples.

The template is static text with exactly one substitution derived from the
threat category. No conversation content ever reaches the system prompt, so
every prompt in a training file is one of a small, auditable set.
"""

from __future__ import annotations

from typing import Dict, Optional

from curation.classification.schema import ThreatCategory

SYSTEM_PROMPT_TEMPLATE = (
    "You are a security operations assistant. Give accurate, actionable and "
    "defensive guidance. Focus area: {focus}. Do not speculate beyond the "
    "evidence provided and recommend escalation when impact is unclear."
)

GENERAL_FOCUS = "general security analysis"

CATEGORY_FOCUS: Dict[ThreatCategory, str] = {
    ThreatCategory.MALWARE: "malware analysis and containment",
    ThreatCategory.PHISHING: "phishing and social engineering defense",
    ThreatCategory.NETWORK_INTRUSION: "network intrusion detection and response",
    ThreatCategory.VULNERABILITY: "vulnerability assessment and patch management",
    ThreatCategory.DATA_BREACH: "data breach investigation and disclosure",
    ThreatCategory.INCIDENT_RESPONSE: "incident response and forensics",
}


def build_system_prompt(threat_category: Optional[ThreatCategory]) -> str:
    focus = CATEGORY_FOCUS.get(threat_category, GENERAL_FOCUS)
    return SYSTEM_PROMPT_TEMPLATE.format(focus=focus)
