# Pipeline nodes
from .evidence import EvidenceCollector, collect_evidence, get_default_collector
from .hypotheses import generate_hypotheses, generate_hypothesis_evidence
from .synthesis import synthesize_market_validation, synthesize_report

__all__ = [
    "EvidenceCollector",
    "collect_evidence",
    "get_default_collector",
    "generate_hypotheses",
    "generate_hypothesis_evidence",
    "synthesize_market_validation",
    "synthesize_report",
]
