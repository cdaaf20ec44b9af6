import pytest

from cityfix.core.errors import IssueNotFound, RemoteStoreError
from cityfix.models.issue import IssueCategory, IssuePriority, IssueStatus
from cityfix.models.user import UserRole
from cityfix.schemas.issue import IssueIn, IssueLocation
from cityfix.services.realtime import DELETE, INSERT, ISSUE_COMMENTS, ISSUES, UPDATE


def _issue(**overrides):
    data = dict(
        title="Broken streetlight",
        description="Dark corner at night",
        category=IssueCategory.electricity,
        priority=IssuePriority.medium,
        location=IssueLocation(latitude=40.7, longitude=-74.0, address="5th Ave"),
        images=[],
        user_id="user-1",
    )
    data.update(overrides)
    return IssueIn(**data)


@pytest.fixture
def events(feed):
    seen = []
    feed.subscribe(seen.append)
    return seen


@pytest.mark.asyncio
async def test_list_is_newest_first(backend):
    first = await backend.create_issue(_issue(title="first"))
    second = await backend.create_issue(_issue(title="second"))

    assert [r.id for r in await backend.list_issues()] == [second.id, first.id]


@pytest.mark.asyncio
async def test_list_filters(backend):
    await backend.create_issue(_issue(category=IssueCategory.road, user_id="user-1"))
    water = await backend.create_issue(_issue(category=IssueCategory.water, user_id="user-2"))
    await backend.update_issue(water.id, {"status": "resolved"})

    assert [r.id for r in await backend.list_issues(category=IssueCategory.water)] == [water.id]
    assert [r.id for r in await backend.list_issues(status=IssueStatus.resolved)] == [water.id]
    assert [r.id for r in await backend.list_issues(user_id="user-2")] == [water.id]
    assert await backend.list_issues(priority=IssuePriority.critical) == []


@pytest.mark.asyncio
async def test_vote_is_idempotent_per_user(backend):
    issue = await backend.create_issue(_issue())

    await backend.vote(issue.id, "user-2")
    await backend.vote(issue.id, "user-2")
    await backend.vote(issue.id, "user-3")

    record = await backend.get_issue(issue.id)
    assert record.votes == 2
    assert record.voter_ids == ["user-2", "user-3"]


@pytest.mark.asyncio
async def test_missing_issue_raises_not_found(backend):
    with pytest.raises(IssueNotFound) as exc:
        await backend.get_issue("nope")
    assert exc.value.issue_id == "nope"

    for call in (
        backend.update_issue("nope", {"title": "x"}),
        backend.delete_issue("nope"),
        backend.vote("nope", "user-1"),
        backend.create_comment("nope", "user-1", "hi"),
    ):
        with pytest.raises(IssueNotFound):
            await call


@pytest.mark.asyncio
async def test_unknown_column_is_rejected(backend):
    issue = await backend.create_issue(_issue())

    with pytest.raises(RemoteStoreError, match="Unknown issue column"):
        await backend.update_issue(issue.id, {"severity": "high"})
    assert (await backend.get_issue(issue.id)).title == "Broken streetlight"


@pytest.mark.asyncio
async def test_update_location_and_timestamp(backend):
    issue = await backend.create_issue(_issue())

    updated = await backend.update_issue(issue.id, {
        "location": {"latitude": 1.5, "longitude": 2.5, "address": "Elm St"},
        "priority": "critical",
    })

    assert updated.location == IssueLocation(latitude=1.5, longitude=2.5, address="Elm St")
    assert updated.priority is IssuePriority.critical
    assert updated.updated_at > issue.updated_at
    assert updated.created_at == issue.created_at


@pytest.mark.asyncio
async def test_comments_oldest_first_with_author(backend, add_profile):
    add_profile("admin-1", "Dana Admin", UserRole.admin)
    issue = await backend.create_issue(_issue())

    await backend.create_comment(issue.id, "admin-1", "On it")
    await backend.create_comment(issue.id, "ghost", "Any news?")
    comments = await backend.list_comments(issue.id)

    assert [c.content for c in comments] == ["On it", "Any news?"]
    assert comments[0].user.name == "Dana Admin"
    assert comments[0].user.role == "admin"
    assert comments[1].user is None


@pytest.mark.asyncio
async def test_delete_removes_comments_and_votes(backend):
    issue = await backend.create_issue(_issue())
    await backend.create_comment(issue.id, "user-2", "hi")
    await backend.vote(issue.id, "user-2")

    await backend.delete_issue(issue.id)

    assert await backend.list_comments(issue.id) == []
    assert await backend.list_issues() == []


@pytest.mark.asyncio
async def test_writes_publish_change_events(backend, feed, events):
    issue = await backend.create_issue(_issue())
    await backend.update_issue(issue.id, {"title": "Fixed?"})
    await backend.vote(issue.id, "user-2")
    await backend.vote(issue.id, "user-2")
    comment = await backend.create_comment(issue.id, "user-2", "hi")
    await backend.delete_issue(issue.id)
    await feed.drain()

    assert [(e.table, e.kind) for e in events] == [
        (ISSUES, INSERT),
        (ISSUES, UPDATE),
        (ISSUES, UPDATE),
        (ISSUE_COMMENTS, INSERT),
        (ISSUES, DELETE),
    ]
    assert events[3].record_id == comment.id
    assert events[3].issue_id == issue.id


@pytest.mark.asyncio
async def test_comment_subscription_is_scoped_to_issue(backend, feed):
    a = await backend.create_issue(_issue(title="a"))
    b = await backend.create_issue(_issue(title="b"))
    seen = []
    backend.subscribe_comments(a.id, seen.append)

    await backend.create_comment(b.id, "user-1", "not for a")
    await backend.create_comment(a.id, "user-1", "for a")
    await feed.drain()

    assert [e.issue_id for e in seen] == [a.id]
