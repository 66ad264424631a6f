"""
Fixed vocabulary tables for the keyword classifier.

Matching is plain substring containment on lower-cased text, so entries may be
word stems ("impersonat", "exfiltrat"). Confidence thresholds are calibrated
against these tables; changing them changes classifier behavior.
"""

from __future__ import annotations

from typing import Dict, Tuple

from .schema import ThreatCategory

CATEGORY_PATTERNS: Dict[ThreatCategory, Tuple[str, ...]] = {
    ThreatCategory.MALWARE: (
        "malware",
        "virus",
        "trojan",
        "ransomware",
        "worm",
        "spyware",
        "rootkit",
        "backdoor",
        "keylogger",
        "botnet",
        "quarantine",
    ),
    ThreatCategory.PHISHING: (
        "phishing",
        "spoof",
        "credential harvest",
        "social engineering",
        "impersonat",
        "suspicious email",
        "malicious link",
    ),
    ThreatCategory.NETWORK_INTRUSION: (
        "intrusion",
        "firewall",
        "port scan",
        "lateral movement",
        "ddos",
        "brute force",
        "command and control",
        "unauthorized login",
    ),
    ThreatCategory.VULNERABILITY: (
        "vulnerability",
        "cve",
        "exploit",
        "zero-day",
        "patch",
        "buffer overflow",
        "sql injection",
        "xss",
        "privilege escalation",
    ),
    ThreatCategory.DATA_BREACH: (
        "breach",
        "data leak",
        "exfiltrat",
        "pii",
        "unauthorized access",
        "leaked credentials",
    ),
    ThreatCategory.INCIDENT_RESPONSE: (
        "incident",
        "forensic",
        "containment",
        "remediation",
        "indicator of compromise",
        "triage",
        "siem",
    ),
}

GENERAL_KEYWORDS: Tuple[str, ...] = (
    "security",
    "threat",
    "attack",
    "hash",
    "encryption",
    "authentication",
    "password",
    "antivirus",
    "payload",
    "hacker",
    "compromise",
    "sandbox",
    "mitre",
    "cyber",
)


def _build_vocabulary() -> Tuple[str, ...]:
    terms = list(GENERAL_KEYWORDS)
    for patterns in CATEGORY_PATTERNS.values():
        for pattern in patterns:
            if pattern not in terms:
                terms.append(pattern)
    return tuple(terms)


SECURITY_KEYWORDS: Tuple[str, ...] = _build_vocabulary()
