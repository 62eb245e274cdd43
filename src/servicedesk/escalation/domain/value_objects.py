"""
Escalation Value Objects
========================

Immutable escalation chain for one organization.
"""

import re
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from servicedesk.tickets.domain import Team

# Tier token in a team name: "Support N1", "N2-Network". "CN1" is not a token.
TIER_PATTERN = re.compile(r"(?<![A-Za-z])N(\d+)(?!\d)")


def tier_of(team_name: str) -> Optional[int]:
    match = TIER_PATTERN.search(team_name)
    return int(match.group(1)) if match else None


@dataclass(frozen=True)
class EscalationPolicy:
    """
    Ordered escalation levels for an organization, lowest tier first.

    Each level holds one or more team ids. A ticket escalates from its
    team's level to the first team of the next level.
    """
    org_id: str
    levels: Tuple[Tuple[str, ...], ...]
    source: str = "explicit"

    @classmethod
    def from_chain(cls, org_id: str, team_ids: Sequence[str]) -> "EscalationPolicy":
        """Explicit chain from configuration: one team per level."""
        return cls(org_id=org_id, levels=tuple((team_id,) for team_id in team_ids))

    @classmethod
    def derive_from_team_names(cls, org_id: str, teams: Iterable[Team]) -> "EscalationPolicy":
        """
        Chain inferred from tier tokens in team names (N1 < N2 < N3).

        Inactive teams and teams without a tier token are left out.
        """
        by_tier: Dict[int, List[str]] = defaultdict(list)
        for team in teams:
            if not team.is_active:
                continue
            tier = tier_of(team.name)
            if tier is not None:
                by_tier[tier].append(team.id)

        levels = tuple(tuple(by_tier[tier]) for tier in sorted(by_tier))
        return cls(org_id=org_id, levels=levels, source="derived")

    def level_of(self, team_id: str) -> Optional[int]:
        for index, level in enumerate(self.levels):
            if team_id in level:
                return index
        return None

    def next_team(self, team_id: str) -> Optional[str]:
        """First team of the level above ``team_id``, or None at the top or off-chain."""
        above = self.teams_above(team_id)
        return above[0] if above else None

    def teams_above(self, team_id: str) -> Tuple[str, ...]:
        """First team of every level above ``team_id``, nearest first."""
        level = self.level_of(team_id)
        if level is None:
            return ()
        return tuple(members[0] for members in self.levels[level + 1:])
