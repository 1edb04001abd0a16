"""Tests for the tag store client."""
import pytest

from tests.fakes import transport_error
from thoughtflow.exceptions import AuthError, ConflictError, ErrorCode, TransportError, ValidationError
from thoughtflow.models.schema import TAG_COLOR_PATTERN, StatusLevel
from thoughtflow.services.status import StaticIdentity
from thoughtflow.services.tag_service import TagService


@pytest.fixture
def service(tag_store, identity, sink):
    return TagService(tag_store, identity, sink=sink)


@pytest.mark.anyio
async def test_list_tags_sorted_and_owner_scoped(service, tag_store):
    tag_store.add("zeta", "user-1")
    tag_store.add("alpha", "user-1")
    tag_store.add("beta", "someone-else")

    names = [t.name for t in await service.list_tags()]

    assert names == ["alpha", "zeta"]


@pytest.mark.anyio
async def test_search_is_case_insensitive(service, tag_store):
    tag_store.add("Work", "user-1")
    tag_store.add("homework", "user-1")
    tag_store.add("ideas", "user-1")

    names = [t.name for t in await service.search_tags("WORK")]

    assert names == ["Work", "homework"]
    assert len(await service.search_tags("")) == 3


@pytest.mark.anyio
async def test_create_tag_assigns_color_and_notifies(service, tag_store, sink):
    tag = await service.create_tag("  reading  ")

    assert tag.name == "reading"
    assert tag.owner_id == "user-1"
    assert TAG_COLOR_PATTERN.match(tag.color)
    assert tag_store.calls_to("create_tag") == [("create_tag", "reading")]
    [event] = sink.events
    assert event.level is StatusLevel.INFO
    assert event.description == 'Tag "reading" created successfully'


@pytest.mark.anyio
async def test_blank_name_rejected_without_calling_store(service, tag_store):
    with pytest.raises(ValidationError) as exc_info:
        await service.create_tag("   ")
    assert exc_info.value.code is ErrorCode.TAG_NAME_REQUIRED
    assert tag_store.entered.get("create_tag") is None


@pytest.mark.anyio
async def test_duplicate_name_conflicts(service, tag_store):
    tag_store.add("ideas", "user-1")
    with pytest.raises(ConflictError):
        await service.create_tag("ideas")


@pytest.mark.anyio
async def test_names_are_case_sensitive(service, tag_store):
    tag_store.add("ideas", "user-1")
    tag = await service.create_tag("Ideas")
    assert tag.name == "Ideas"


@pytest.mark.anyio
async def test_get_or_create_reuses_existing(service, tag_store):
    existing = tag_store.add("ideas", "user-1")

    tag = await service.get_or_create("ideas")

    assert tag == existing
    assert tag_store.calls_to("create_tag") == []


@pytest.mark.anyio
async def test_get_or_create_recovers_from_race(service, tag_store):
    # The tag appears between the lookup and the create
    original_create = tag_store.create_tag

    async def racing_create(owner_id, name, color):
        tag_store.add(name, owner_id)
        return await original_create(owner_id, name, color)

    tag_store.create_tag = racing_create

    tag = await service.get_or_create("ideas")

    assert tag.name == "ideas"
    assert len(tag_store.tags) == 1


@pytest.mark.anyio
async def test_transport_errors_propagate(service, tag_store):
    tag_store.fail_next["list_tags"] = transport_error("list_tags")
    with pytest.raises(TransportError):
        await service.list_tags()


@pytest.mark.anyio
async def test_signed_out_owner_rejected(tag_store, sink):
    service = TagService(tag_store, StaticIdentity(None), sink=sink)
    with pytest.raises(AuthError):
        await service.create_tag("ideas")
