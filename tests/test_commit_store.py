import pytest

from core.errors import DuplicateCommitError, InvalidCursorError
from models.commit import Commit, SummaryStatus
from services.commit_store import CommitStore
from helpers import REPO, at, run_with_db


def make_commit(sha, minutes=0, repository=REPO, **extra) -> Commit:
    return Commit(
        sha=sha,
        repository=repository,
        message=f"feat: {sha}\n\nbody",
        author="Dana",
        author_email="dana@example.com",
        url=f"https://github.com/{repository}/commit/{sha}",
        timestamp=at(minutes),
        **extra,
    )


def test_insert_and_find_by_sha_and_repo():
    async def scenario(factory):
        async with factory() as session:
            store = CommitStore(session)
            inserted = await store.insert(make_commit("a" * 40))
            found = await store.find_by_sha_and_repo("a" * 40, REPO)
            other_repo = await store.find_by_sha_and_repo("a" * 40, "acme/other")
            by_id = await store.get_by_id(inserted.id)
            return inserted, found, other_repo, by_id

    inserted, found, other_repo, by_id = run_with_db(scenario)
    assert found.id == inserted.id
    assert by_id.summary_status == SummaryStatus.pending
    assert other_repo is None


def test_same_sha_in_two_repositories_is_allowed():
    async def scenario(factory):
        async with factory() as session:
            store = CommitStore(session)
            await store.insert(make_commit("b" * 40))
            await store.insert(make_commit("b" * 40, repository="acme/other"))
            return len(await store.list_by_repository(REPO)), len(await store.list_by_repository("acme/other"))

    assert run_with_db(scenario) == (1, 1)


def test_duplicate_insert_raises_duplicate_commit_error():
    async def scenario(factory):
        async with factory() as session:
            store = CommitStore(session)
            await store.insert(make_commit("c" * 40))
            with pytest.raises(DuplicateCommitError):
                await store.insert(make_commit("c" * 40))
            return await store.list_by_repository(REPO)

    assert len(run_with_db(scenario)) == 1


def test_update_summary_never_leaves_completed():
    async def scenario(factory):
        async with factory() as session:
            store = CommitStore(session)
            commit = await store.insert(make_commit("d" * 40))
            first = await store.update_summary(commit.id, "Adds a feature.", SummaryStatus.completed)
            second = await store.update_summary(commit.id, None, SummaryStatus.failed)
            return first, second, await store.get_by_id(commit.id)

    first, second, commit = run_with_db(scenario)
    assert first is True
    assert second is False
    assert commit.summary_status == SummaryStatus.completed
    assert commit.summary == "Adds a feature."


def test_failed_commit_can_be_completed_later():
    async def scenario(factory):
        async with factory() as session:
            store = CommitStore(session)
            commit = await store.insert(make_commit("e" * 40))
            await store.update_summary(commit.id, None, SummaryStatus.failed)
            await store.update_summary(commit.id, "Retried.", SummaryStatus.completed, title="Retry it")
            return await store.get_by_id(commit.id)

    commit = run_with_db(scenario)
    assert commit.summary_status == SummaryStatus.completed
    assert commit.title == "Retry it"


def test_delete_all_for_repository_leaves_other_repositories():
    async def scenario(factory):
        async with factory() as session:
            store = CommitStore(session)
            for i in range(3):
                await store.insert(make_commit(f"{i}" * 40, minutes=i))
            await store.insert(make_commit("f" * 40, repository="acme/other"))
            deleted = await store.delete_all_for_repository(REPO)
            return deleted, await store.list_by_repository(REPO), await store.list_by_repository("acme/other")

    deleted, remaining, others = run_with_db(scenario)
    assert deleted == 3
    assert remaining == []
    assert len(others) == 1


def test_list_ordered_by_timestamp_pages_newest_first():
    async def scenario(factory):
        async with factory() as session:
            store = CommitStore(session)
            for i in range(5):
                await store.insert(make_commit(f"{i}" * 40, minutes=i * 10))
            pages = []
            cursor = None
            while True:
                page, cursor, is_done = await store.list_ordered_by_timestamp(cursor, limit=2)
                pages.append([c.sha[0] for c in page])
                if is_done:
                    return pages, cursor

    pages, last_cursor = run_with_db(scenario)
    assert pages == [["4", "3"], ["2", "1"], ["0"]]
    assert last_cursor is None


def test_pagination_handles_equal_timestamps():
    async def scenario(factory):
        async with factory() as session:
            store = CommitStore(session)
            for i in range(4):
                await store.insert(make_commit(f"{i}" * 40, minutes=5))
            first, cursor, _ = await store.list_ordered_by_timestamp(None, limit=3)
            second, _, done = await store.list_ordered_by_timestamp(cursor, limit=3)
            return first, second, done

    first, second, done = run_with_db(scenario)
    assert len({c.id for c in first + second}) == 4
    assert done is True


def test_invalid_cursor_raises():
    async def scenario(factory):
        async with factory() as session:
            with pytest.raises(InvalidCursorError):
                await CommitStore(session).list_ordered_by_timestamp("not-a-cursor", limit=2)

    run_with_db(scenario)


def test_assign_version_never_overwrites():
    async def scenario(factory):
        async with factory() as session:
            store = CommitStore(session)
            await store.insert(make_commit("1" * 40, minutes=1))
            await store.insert(make_commit("2" * 40, minutes=2))
            first = await store.assign_version(REPO, ["1" * 40], "v1.0")
            second = await store.assign_version(REPO, ["1" * 40, "2" * 40], "v1.1")
            return first, second, await store.list_by_version("v1.0"), await store.list_by_version("v1.1")

    first, second, v10, v11 = run_with_db(scenario)
    assert (first, second) == (1, 1)
    assert [c.sha for c in v10] == ["1" * 40]
    assert [c.sha for c in v11] == ["2" * 40]
