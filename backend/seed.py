import asyncio
import os
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from app.models import Club, ClubMember, Competition, User
from app.routers.auth import issue_token
from app.schemas import RuleSet

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL environment variable is required")
if DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)

engine = create_async_engine(DATABASE_URL, echo=False, pool_pre_ping=True)
Session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

CLUB_ID = "demo-club"
ADMIN_ID = "demo-admin"
MEMBERS = [
    ("demo-admin", "Demo Admin"),
    ("aiko-tanaka", "Aiko Tanaka"),
    ("ben-okafor", "Ben Okafor"),
    ("chen-wei", "Chen Wei"),
    ("dana-kowalski", "Dana Kowalski"),
    ("emil-strand", "Emil Strand"),
    ("fatima-haddad", "Fatima Haddad"),
    ("gus-moreno", "Gus Moreno"),
    ("hana-sato", "Hana Sato"),
]


async def main():
    async with Session() as s:
        existing_users = {x.id for x in (await s.execute(select(User))).scalars().all()}
        for uid, name in MEMBERS:
            if uid not in existing_users:
                s.add(User(id=uid, display_name=name))
        await s.commit()

        if await s.get(Club, CLUB_ID) is None:
            s.add(Club(id=CLUB_ID, name="Demo Club", default_rules=RuleSet().model_dump()))
            await s.commit()

        existing_members = {
            x.user_id
            for x in (
                await s.execute(select(ClubMember).where(ClubMember.club_id == CLUB_ID))
            ).scalars().all()
        }
        for uid, name in MEMBERS:
            if uid not in existing_members:
                s.add(
                    ClubMember(
                        club_id=CLUB_ID,
                        user_id=uid,
                        role="admin" if uid == ADMIN_ID else "member",
                        display_name_cache=name,
                    )
                )
        await s.commit()

        # sample competitions
        competitions = [
            Competition(
                id="demo-league",
                club_id=CLUB_ID,
                name="Demo League",
                type="championship",
                status="active",
                rules_mode="inherit",
                validation_enabled=True,
                participant_user_ids=[],
                total_rounds=0,
                last_completed_round=0,
            ),
            Competition(
                id="demo-open",
                club_id=CLUB_ID,
                name="Demo Open",
                type="tournament",
                status="active",
                rules_mode="override",
                override_rules={"uma": [30, 10, -10, -30]},
                validation_enabled=True,
                participant_user_ids=[uid for uid, _ in MEMBERS[1:]],
                total_rounds=3,
                pairing_algorithm="performance_swiss",
                last_completed_round=0,
            ),
        ]
        for competition in competitions:
            if await s.get(Competition, competition.id) is None:
                s.add(competition)
        await s.commit()

    # Tokens for local testing; requires JWT_SECRET to be set.
    for uid, _ in MEMBERS:
        print(f"{uid}: {issue_token(uid, expires_in=7 * 24 * 3600)}")


if __name__ == "__main__":
    asyncio.run(main())
