"""Supermajority consensus over a round of agent results."""

import logging
from collections.abc import Iterable

from discovery.models import AgentResult, AgreementEntry, ConsensusResult, Role, Theory

logger = logging.getLogger(__name__)


def compute_consensus(
    results: Iterable[AgentResult],
    agree_threshold: int = 70,
    discovery_threshold: float = 95.0,
) -> ConsensusResult:
    """Share of non-skeptic agents whose agreement reaches agree_threshold.

    Failed results never count. The skeptic is listed in `agreements` but is
    excluded from both numerator and denominator.
    """
    entries: list[AgreementEntry] = []
    eligible: list[int] = []
    for result in results:
        if not result.success:
            continue
        skeptic = result.role is Role.SKEPTIC
        entries.append(
            AgreementEntry(
                agent_key=result.agent_key,
                agent_name=result.agent_name,
                agreement=result.agreement,
                skeptic=skeptic,
            )
        )
        if not skeptic:
            eligible.append(result.agreement)

    if not eligible:
        return ConsensusResult(agree_count=0, total=0, percent=0.0, average=0.0, is_discovery=False, agreements=entries)

    agree_count = sum(1 for a in eligible if a >= agree_threshold)
    percent = agree_count / len(eligible) * 100
    consensus = ConsensusResult(
        agree_count=agree_count,
        total=len(eligible),
        percent=percent,
        average=sum(eligible) / len(eligible),
        is_discovery=percent >= discovery_threshold,
        agreements=entries,
    )
    logger.info("Consensus: %d/%d agents agree (%.1f%%)", agree_count, len(eligible), percent)
    return consensus


def best_theory(theories: Iterable[Theory]) -> Theory | None:
    """Highest agreement wins; the earliest theory wins ties."""
    best: Theory | None = None
    for theory in theories:
        if best is None or theory.agreement > best.agreement:
            best = theory
    return best
