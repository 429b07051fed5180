"""
Team membership sample application showcasing UnitORM persistence contexts.
"""

from .demo import bootstrap_factory, disband_team, remove_team, run_demo, seed_team, team_roster
from .models import Member, Team

__all__ = [
    "Member",
    "Team",
    "bootstrap_factory",
    "disband_team",
    "remove_team",
    "run_demo",
    "seed_team",
    "team_roster",
]
