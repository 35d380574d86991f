"""
Direct post_service tests - listing, visibility, ownership and the
like/dislike toggles, without HTTP in the way.
"""
import pytest
from sqlalchemy.exc import InvalidRequestError
from sqlalchemy.ext.asyncio import AsyncSession

from quickblog.cache import cache
from quickblog.exceptions import Forbidden, InvalidId, NotFound, ValidationError
from quickblog.models import ROLE_ADMIN, Post
from quickblog.schemas import PostCreate, PostUpdate
from quickblog.services import post_service


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _create(db, identity, make_upload, title="A post", **fields):
    data = PostCreate(title=title, content=fields.pop("content", "<p>Body</p>"), **fields)
    return await post_service.create_post(db, identity, data, make_upload())


async def _draft(db, identity, make_upload, title="Draft post"):
    post = await _create(db, identity, make_upload, title=title)
    return await post_service.update_post(db, identity, post["id"], PostUpdate(status="Draft"))


# ---------------------------------------------------------------------------
# create_post
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_post_publishes_and_stores_thumbnail(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    post = await _create(
        db_session, alice, make_upload, title="Hello", subtitle="Sub", category=["Tech"]
    )
    assert post["status"] == "Published"
    assert post["author"] == {"id": alice.id, "username": "alice", "role": "user"}
    assert post["category"] == ["Tech"]
    assert post["thumbnail"].startswith("/uploads/thumbnail-")
    assert post["thumbnail"].endswith(".png")
    assert post["likes"] == [] and post["dislikes"] == []
    assert post["comment_count"] == 0
    assert post["created_at"] is not None


@pytest.mark.asyncio
async def test_create_post_default_category(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    post = await _create(db_session, alice, make_upload)
    assert post["category"] == ["General"]


@pytest.mark.asyncio
async def test_create_post_requires_thumbnail(db_session: AsyncSession, make_identity):
    alice = await make_identity("alice")
    with pytest.raises(ValidationError, match="Thumbnail image is required"):
        await post_service.create_post(
            db_session, alice, PostCreate(title="No image", content="Body"), None
        )


@pytest.mark.asyncio
async def test_create_post_rejects_non_image(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    with pytest.raises(ValidationError):
        await post_service.create_post(
            db_session,
            alice,
            PostCreate(title="Bad image", content="Body"),
            make_upload(filename="notes.txt", content_type="text/plain"),
        )


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_published_empty(db_session: AsyncSession):
    result = await post_service.list_published(db_session)
    assert result.items == []
    assert result.total_count == 0
    assert result.total_pages == 0


@pytest.mark.asyncio
async def test_list_published_pagination(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    for i in range(5):
        await _create(db_session, alice, make_upload, title=f"Post {i}")

    result = await post_service.list_published(db_session, page=2, limit=2)
    assert len(result.items) == 2
    assert result.total_pages == 3
    assert result.total_count == 5
    assert result.page == 2


@pytest.mark.asyncio
async def test_list_published_newest_first(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    ids = [(await _create(db_session, alice, make_upload, title=f"Post {i}"))["id"] for i in range(3)]

    result = await post_service.list_published(db_session, page=1, limit=10)
    assert [p["id"] for p in result.items] == list(reversed(ids))


@pytest.mark.asyncio
async def test_list_published_excludes_drafts(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    await _create(db_session, alice, make_upload, title="Visible")
    await _draft(db_session, alice, make_upload, title="Hidden")

    result = await post_service.list_published(db_session, limit=10)
    assert result.total_count == 1
    assert all(p["status"] == "Published" for p in result.items)


@pytest.mark.asyncio
async def test_list_published_caps_limit(db_session: AsyncSession, monkeypatch):
    monkeypatch.setattr(post_service.settings, "MAX_PAGE_SIZE", 3)
    result = await post_service.list_published(db_session, page=1, limit=500)
    assert result.limit == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("page,limit", [(0, 5), (1, 0), (-1, 5), ("1", 5)])
async def test_list_published_rejects_bad_pagination(db_session: AsyncSession, page, limit):
    with pytest.raises(ValidationError):
        await post_service.list_published(db_session, page=page, limit=limit)


@pytest.mark.asyncio
async def test_list_by_author_includes_drafts(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    bob = await make_identity("bob")
    await _create(db_session, alice, make_upload, title="Published")
    await _draft(db_session, alice, make_upload)
    await _create(db_session, bob, make_upload, title="Bob's")

    result = await post_service.list_by_author(db_session, alice, alice.id)
    assert result.total_count == 2
    assert {p["status"] for p in result.items} == {"Published", "Draft"}


@pytest.mark.asyncio
async def test_list_by_author_forbidden_for_other_user(db_session: AsyncSession, make_identity):
    alice = await make_identity("alice")
    bob = await make_identity("bob")
    with pytest.raises(Forbidden):
        await post_service.list_by_author(db_session, bob, alice.id)


@pytest.mark.asyncio
async def test_list_by_author_allowed_for_admin(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    admin = await make_identity("root", role=ROLE_ADMIN)
    await _draft(db_session, alice, make_upload)

    result = await post_service.list_by_author(db_session, admin, alice.id)
    assert result.total_count == 1


@pytest.mark.asyncio
async def test_list_all_includes_every_status(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    await _create(db_session, alice, make_upload)
    await _draft(db_session, alice, make_upload)

    result = await post_service.list_all(db_session)
    assert result.total_count == 2


# ---------------------------------------------------------------------------
# get_post
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_post_anonymous(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    created = await _create(db_session, alice, make_upload, title="Public")
    post = await post_service.get_post(db_session, created["id"])
    assert post["title"] == "Public"


@pytest.mark.asyncio
async def test_get_post_not_found(db_session: AsyncSession):
    with pytest.raises(NotFound):
        await post_service.get_post(db_session, 99999)


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ["abc", "12x", "0", "-3", "", "99999999999999999999", 2**31])
async def test_get_post_invalid_id(db_session: AsyncSession, raw):
    with pytest.raises(InvalidId):
        await post_service.get_post(db_session, raw)


@pytest.mark.asyncio
async def test_get_draft_visibility(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    bob = await make_identity("bob")
    admin = await make_identity("root", role=ROLE_ADMIN)
    draft = await _draft(db_session, alice, make_upload)

    with pytest.raises(Forbidden):
        await post_service.get_post(db_session, draft["id"])
    with pytest.raises(Forbidden):
        await post_service.get_post(db_session, draft["id"], bob)

    assert (await post_service.get_post(db_session, draft["id"], alice))["status"] == "Draft"
    assert (await post_service.get_post(db_session, draft["id"], admin))["status"] == "Draft"


# ---------------------------------------------------------------------------
# update_post / set_status
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_post_only_given_fields(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    created = await _create(db_session, alice, make_upload, title="Old", subtitle="Keep me")

    updated = await post_service.update_post(
        db_session, alice, created["id"], PostUpdate(title="New")
    )
    assert updated["title"] == "New"
    assert updated["subtitle"] == "Keep me"
    assert updated["content"] == created["content"]
    assert updated["thumbnail"] == created["thumbnail"]


@pytest.mark.asyncio
async def test_update_post_replaces_thumbnail(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    created = await _create(db_session, alice, make_upload)

    updated = await post_service.update_post(
        db_session,
        alice,
        created["id"],
        PostUpdate(),
        make_upload(filename="new.gif", content_type="image/gif"),
    )
    assert updated["thumbnail"] != created["thumbnail"]
    assert updated["thumbnail"].endswith(".gif")


@pytest.mark.asyncio
async def test_update_post_forbidden_for_other_user(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    bob = await make_identity("bob")
    created = await _create(db_session, alice, make_upload)

    with pytest.raises(Forbidden):
        await post_service.update_post(db_session, bob, created["id"], PostUpdate(title="Mine now"))


@pytest.mark.asyncio
async def test_update_post_allowed_for_admin(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    admin = await make_identity("root", role=ROLE_ADMIN)
    created = await _create(db_session, alice, make_upload)

    updated = await post_service.update_post(
        db_session, admin, created["id"], PostUpdate(title="Moderated")
    )
    assert updated["title"] == "Moderated"
    assert updated["author"]["id"] == alice.id


@pytest.mark.asyncio
async def test_update_missing_post(db_session: AsyncSession, make_identity):
    alice = await make_identity("alice")
    with pytest.raises(NotFound):
        await post_service.update_post(db_session, alice, 99999, PostUpdate(title="Ghost"))


@pytest.mark.asyncio
async def test_set_status(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    created = await _create(db_session, alice, make_upload)

    assert (await post_service.set_status(db_session, created["id"], "Draft"))["status"] == "Draft"
    with pytest.raises(ValidationError):
        await post_service.set_status(db_session, created["id"], "Archived")


# ---------------------------------------------------------------------------
# delete_post
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_delete_post_by_author(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    created = await _create(db_session, alice, make_upload)

    await post_service.delete_post(db_session, alice, created["id"])
    with pytest.raises(NotFound):
        await post_service.get_post(db_session, created["id"])


@pytest.mark.asyncio
async def test_delete_post_by_admin(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    admin = await make_identity("root", role=ROLE_ADMIN)
    created = await _create(db_session, alice, make_upload)

    await post_service.delete_post(db_session, admin, created["id"])
    with pytest.raises(NotFound):
        await post_service.get_post(db_session, created["id"])


@pytest.mark.asyncio
async def test_delete_post_forbidden_for_other_user(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    bob = await make_identity("bob")
    created = await _create(db_session, alice, make_upload)

    with pytest.raises(Forbidden):
        await post_service.delete_post(db_session, bob, created["id"])
    assert (await post_service.get_post(db_session, created["id"]))["id"] == created["id"]


@pytest.mark.asyncio
async def test_delete_missing_post(db_session: AsyncSession, make_identity):
    alice = await make_identity("alice")
    with pytest.raises(NotFound):
        await post_service.delete_post(db_session, alice, 99999)


# ---------------------------------------------------------------------------
# Reactions
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_toggle_like_twice_restores_membership(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    bob = await make_identity("bob")
    created = await _create(db_session, alice, make_upload)

    liked = await post_service.toggle_like(db_session, bob, created["id"])
    assert liked["likes"] == [bob.id]
    unliked = await post_service.toggle_like(db_session, bob, created["id"])
    assert unliked["likes"] == []
    assert unliked["dislikes"] == []


@pytest.mark.asyncio
async def test_like_then_dislike_moves_user(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    bob = await make_identity("bob")
    created = await _create(db_session, alice, make_upload)

    post = await post_service.toggle_like(db_session, bob, created["id"])
    assert (post["likes"], post["dislikes"]) == ([bob.id], [])
    post = await post_service.toggle_dislike(db_session, bob, created["id"])
    assert (post["likes"], post["dislikes"]) == ([], [bob.id])
    post = await post_service.toggle_like(db_session, bob, created["id"])
    assert (post["likes"], post["dislikes"]) == ([bob.id], [])


@pytest.mark.asyncio
async def test_reaction_sequences_stay_disjoint(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    bob = await make_identity("bob")
    carol = await make_identity("carol")
    created = await _create(db_session, alice, make_upload)

    sequence = [
        (bob, post_service.toggle_like),
        (carol, post_service.toggle_dislike),
        (bob, post_service.toggle_dislike),
        (carol, post_service.toggle_dislike),
        (carol, post_service.toggle_like),
        (bob, post_service.toggle_dislike),
        (alice, post_service.toggle_like),
    ]
    for who, action in sequence:
        post = await action(db_session, who, created["id"])
        assert not set(post["likes"]) & set(post["dislikes"])

    assert post["likes"] == sorted([carol.id, alice.id])
    assert post["dislikes"] == []


@pytest.mark.asyncio
async def test_toggle_missing_post(db_session: AsyncSession, make_identity):
    bob = await make_identity("bob")
    with pytest.raises(NotFound):
        await post_service.toggle_like(db_session, bob, 99999)
    with pytest.raises(NotFound):
        await post_service.toggle_dislike(db_session, bob, 99999)


@pytest.mark.asyncio
async def test_toggle_returns_author(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    bob = await make_identity("bob")
    created = await _create(db_session, alice, make_upload)

    post = await post_service.toggle_dislike(db_session, bob, created["id"])
    assert post["author"]["username"] == "alice"


@pytest.mark.asyncio
async def test_unloaded_relationships_raise_instead_of_querying(db_session: AsyncSession, make_identity, make_upload):
    alice = await make_identity("alice")
    created = await _create(db_session, alice, make_upload)
    post = await db_session.get(Post, created["id"])
    with pytest.raises(InvalidRequestError):
        post.comments

    # Deletion does not need the unloaded comment collection.
    await post_service.delete_post(db_session, alice, created["id"])
    with pytest.raises(NotFound):
        await post_service.get_post(db_session, created["id"])


# ---------------------------------------------------------------------------
# Feed cache invalidation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_feed_invalidated_after_commit_not_before(db_session: AsyncSession, make_identity, make_upload, monkeypatch):
    calls = []

    async def record():
        calls.append("invalidate")

    monkeypatch.setattr(cache, "invalidate_feed", record)
    alice = await make_identity("alice")
    await _create(db_session, alice, make_upload)
    assert calls == []

    await db_session.commit()
    await cache.invalidate_if_stale(db_session)
    assert calls == ["invalidate"]

    # The flag is consumed by the first commit.
    await cache.invalidate_if_stale(db_session)
    assert calls == ["invalidate"]


# ---------------------------------------------------------------------------
# parse_id
# ---------------------------------------------------------------------------

def test_parse_id_accepts_digit_strings_and_ints():
    assert post_service.parse_id("42") == 42
    assert post_service.parse_id(7) == 7


def test_parse_id_rejects_bools():
    with pytest.raises(InvalidId):
        post_service.parse_id(True)


def test_parse_id_range_matches_integer_column():
    assert post_service.parse_id(str(2**31 - 1)) == 2**31 - 1
    with pytest.raises(InvalidId):
        post_service.parse_id(str(2**31))
