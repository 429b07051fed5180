"""
Utility helpers for running the UnitORM team example end-to-end.
"""

from __future__ import annotations

from typing import Any, Dict, List

from unitorm.backends import ConnectionConfig
from unitorm.persistence import PersistenceContext, PersistenceContextFactory

from .models import Member, Team


def bootstrap_factory(url: str = "memory://team_example") -> PersistenceContextFactory:
    """
    Create a context factory and ensure the team schema exists.
    """

    return PersistenceContextFactory.from_config(ConnectionConfig(url=url), models=(Team, Member))


def seed_team(factory: PersistenceContextFactory, size: int = 3, team_name: str = "teamName") -> int:
    """
    Persist one team and ``size`` members referencing it; return the team id.
    """

    def work(context: PersistenceContext) -> int:
        team = Team(team_name=team_name)
        context.persist(team)
        for index in range(size):
            member = Member(first_name=f"user{index}", second_name="", age=22, team=team)
            context.persist(member)
        return team.id

    return factory.run_in_transaction(work)


def team_roster(factory: PersistenceContextFactory, team_id: int) -> List[Dict[str, Any]]:
    """
    Load a team with its members and render them as dictionaries.
    """

    context = factory.create_context()
    try:
        team = context.find(Team, team_id)
        if team is None:
            return []
        return [member.to_dict() for member in team.members]
    finally:
        context.close()


def disband_team(factory: PersistenceContextFactory, team_id: int) -> None:
    """
    Remove every member from the team; orphan removal deletes them on commit.
    """

    def work(context: PersistenceContext) -> None:
        team = context.find(Team, team_id)
        if team is not None:
            team.members.clear()

    factory.run_in_transaction(work)


def remove_team(factory: PersistenceContextFactory, team_id: int) -> None:
    """
    Remove a team; the remove cascades to its members.
    """

    def work(context: PersistenceContext) -> None:
        team = context.find(Team, team_id)
        if team is not None:
            context.remove(team)

    factory.run_in_transaction(work)


def run_demo(url: str = "memory://team_example") -> Dict[str, Any]:
    """
    Seed a team, read it back, disband it and report what is left.
    """

    factory = bootstrap_factory(url)
    try:
        team_id = seed_team(factory)
        roster = team_roster(factory, team_id)
        disband_team(factory, team_id)
        remaining = team_roster(factory, team_id)
        return {"team_id": team_id, "roster": roster, "remaining": remaining}
    finally:
        factory.close()


if __name__ == "__main__":
    from unitorm.utils import configure_logging

    configure_logging()
    outcome = run_demo()
    for entry in outcome["roster"]:
        print(f"{entry['first_name']} (age {entry['age']})")
    print(f"{len(outcome['remaining'])} members left after disbanding")
