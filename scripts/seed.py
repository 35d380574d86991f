"""Seed a development database with an admin, users, posts, comments and reactions."""
import argparse
import asyncio
import logging
import random
import time
from datetime import datetime, timedelta, timezone

from sqlalchemy import insert

from quickblog.database import Base, async_session, engine
from quickblog.models import (
    ROLE_ADMIN,
    STATUS_DRAFT,
    STATUS_PUBLISHED,
    Comment,
    Post,
    post_dislikes,
    post_likes,
)
from quickblog.services.user_service import create_user

logger = logging.getLogger("seed")

CATEGORIES = ["General", "Technology", "Travel", "Food", "Lifestyle", "Education"]


async def seed(small: bool = False, password: str = "password123") -> None:
    num_users = 5 if small else 25
    num_posts = 20 if small else 500
    max_comments = 2 if small else 5

    logger.info("Seeding: %d users, %d posts", num_users, num_posts)
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        admin = await create_user(session, "admin", "admin@example.com", password, role=ROLE_ADMIN)
        users = [admin]
        for i in range(num_users):
            users.append(
                await create_user(session, f"user_{i:03d}", f"user_{i:03d}@example.com", password)
            )

        posts = []
        for i in range(num_posts):
            created = datetime.now(timezone.utc) - timedelta(days=random.randint(0, 365))
            post = Post(
                title=f"Post {i}: notes on {random.choice(CATEGORIES).lower()}",
                subtitle=f"A short write-up, number {i}",
                content=f"<p>This is the body of post {i}.</p>" * 10,
                category=random.sample(CATEGORIES, k=random.randint(1, 2)),
                status=STATUS_PUBLISHED if random.random() > 0.1 else STATUS_DRAFT,
                author_id=random.choice(users).id,
                created_at=created,
            )
            session.add(post)
            posts.append(post)
        await session.flush()

        total_comments = 0
        for post in posts:
            count = random.randint(0, max_comments)
            for _ in range(count):
                session.add(
                    Comment(
                        content="Thanks for sharing, this was useful.",
                        post_id=post.id,
                        author_id=random.choice(users).id,
                    )
                )
            post.comment_count = count
            total_comments += count

            # A user reacts at most once per post, so likes and dislikes stay disjoint.
            reactors = random.sample(users, k=random.randint(0, len(users) // 2))
            for user in reactors:
                table = post_likes if random.random() > 0.25 else post_dislikes
                await session.execute(insert(table).values(post_id=post.id, user_id=user.id))
        await session.commit()

    logger.info(
        "Seeding complete in %.1fs: %d users, %d posts, %d comments",
        time.perf_counter() - start,
        len(users),
        num_posts,
        total_comments,
    )


def main():
    parser = argparse.ArgumentParser(description="Seed the Quickblog database")
    parser.add_argument("--small", action="store_true", help="Use a small dataset")
    parser.add_argument("--password", default="password123", help="Password for every seeded account")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    asyncio.run(seed(small=args.small, password=args.password))


if __name__ == "__main__":
    main()
