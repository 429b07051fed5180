"""
Data models for the UnitORM team example.
"""

from __future__ import annotations

from unitorm.core import Cascade, IntegerField, ManyToOne, Model, OneToMany, StringField


class Member(Model):
    first_name = StringField(nullable=False, max_length=120, db_column="FIRST_NAME")
    second_name = StringField(nullable=False, max_length=120, db_column="SECOND_NAME")
    age = IntegerField(db_column="AGE")
    team = ManyToOne("Team", db_column="TEAM_ID")

    class Meta:
        table = "MEMBER"


class Team(Model):
    team_name = StringField(nullable=False, max_length=120)
    members = OneToMany(Member, mapped_by="team", cascade=Cascade.ALL, orphan_removal=True)
