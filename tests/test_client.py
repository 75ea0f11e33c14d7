import pytest

from outlook_mcp_client.errors import AuthenticationRequiredError, ToolCallError

from conftest import json_result, text_result


@pytest.mark.asyncio
async def test_list_messages_twice_hits_cache(client, session):
    first = await client.list_mail_messages(top=10)
    second = await client.list_mail_messages(top=10)
    assert first == second
    assert session.calls_to("list-mail-messages") == [{"top": 10}]
    await client.disconnect()


@pytest.mark.asyncio
async def test_read_after_ttl_calls_server_again(client, session, clock):
    await client.list_mail_messages()
    clock.advance(5 * 60)
    await client.list_mail_messages()
    assert len(session.calls_to("list-mail-messages")) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("method,args,tool,ttl", [
    ("list_mail_folders", (), "list-mail-folders", 3600),
    ("list_calendars", (), "list-calendars", 3600),
    ("get_mail_message", ("m1",), "get-mail-message", 900),
    ("get_calendar_event", ("e1",), "get-calendar-event", 900),
    ("get_calendar_view", ("2025-01-01", "2025-01-31"), "get-calendar-view", 900),
    ("list_calendar_events", (), "list-calendar-events", 900),
    ("list_contacts", (), "list-outlook-contacts", 900),
    ("list_mail_folder_messages", ("f1",), "list-mail-folder-messages", 300),
    ("list_tasks", (), "list-tasks", 300),
    ("search", ("budget",), "search", 300),
])
async def test_read_ttl_tiers(client, session, clock, method, args, tool, ttl):
    read = getattr(client, method)
    await read(*args)
    clock.advance(ttl - 1)
    await read(*args)
    assert len(session.calls_to(tool)) == 1
    clock.advance(1)
    await read(*args)
    assert len(session.calls_to(tool)) == 2


@pytest.mark.asyncio
async def test_send_mail_invalidates_message_lists(client, session):
    await client.list_mail_messages()
    await client.list_mail_messages(top=5)
    await client.send_mail("a@b.com", "hi", "body")
    after = await client.list_mail_messages()

    assert session.calls_to("send-mail") == [{"to": "a@b.com", "subject": "hi", "body": "body"}]
    assert len(session.calls_to("list-mail-messages")) == 3
    assert after["call"] == 3
    assert client.cache.keys() == ["mail_messages"]


@pytest.mark.asyncio
async def test_move_message_invalidates_lists_folders_and_detail(client, session):
    await client.list_mail_messages()
    await client.list_mail_folder_messages("inbox")
    await client.get_mail_message("m1")
    await client.get_mail_message("m2")
    await client.list_mail_folders()

    await client.move_mail_message("m1", "archive")

    assert session.calls_to("move-mail-message") == [{"messageId": "m1", "destinationFolderId": "archive"}]
    assert client.cache.keys() == ['mail_folders', 'mail_message:{"id":"m2"}']


@pytest.mark.asyncio
async def test_delete_message_invalidates_lists_and_detail(client, session):
    await client.get_mail_message("m1")
    await client.list_mail_folder_messages("inbox", top=5)
    await client.delete_mail_message("m1")
    assert client.cache.keys() == []
    await client.get_mail_message("m1")
    assert len(session.calls_to("get-mail-message")) == 2


@pytest.mark.asyncio
async def test_create_draft_invalidates_folder_listings(client, session):
    await client.list_mail_folder_messages("drafts")
    await client.list_mail_messages()
    await client.create_draft_email("a@b.com", "draft", "body", cc="c@d.com")
    assert session.calls_to("create-draft-email") == [
        {"to": "a@b.com", "subject": "draft", "body": "body", "cc": "c@d.com"}
    ]
    assert client.cache.keys() == ["mail_messages"]


@pytest.mark.asyncio
async def test_event_writes_invalidate_event_caches(client, session):
    await client.list_calendar_events()
    await client.get_calendar_view("2025-01-01", "2025-01-31")
    await client.create_calendar_event("Standup", "2025-01-02T09:00", "2025-01-02T09:15", location="Room 1")
    assert client.cache.keys() == []
    assert session.calls_to("create-calendar-event") == [{
        "subject": "Standup", "start": "2025-01-02T09:00", "end": "2025-01-02T09:15", "location": "Room 1",
    }]


@pytest.mark.asyncio
async def test_update_event_invalidates_every_detail_entry_of_the_event(client, session):
    await client.get_calendar_event("e1")
    await client.get_calendar_event("e1", calendar_id="work")
    await client.get_calendar_event("e2")
    await client.list_calendars()

    await client.update_calendar_event("e1", subject="Renamed")

    assert session.calls_to("update-calendar-event") == [{"eventId": "e1", "subject": "Renamed"}]
    assert client.cache.keys() == ['calendar_event:{"id":"e2"}', "calendars"]


@pytest.mark.asyncio
async def test_delete_event(client, session):
    await client.get_calendar_event("e1", calendar_id="work")
    await client.delete_calendar_event("e1", calendar_id="work")
    assert session.calls_to("delete-calendar-event") == [{"eventId": "e1", "calendarId": "work"}]
    assert client.cache.keys() == []


@pytest.mark.asyncio
async def test_unset_options_are_omitted_from_arguments(client, session):
    await client.list_mail_messages(top=10, order_by="receivedDateTime desc")
    await client.list_mail_folder_messages("f1", skip=20)
    await client.get_calendar_view("2025-01-01", "2025-01-31")
    await client.list_tasks(list_id="tl1")
    await client.search("budget", entity_types="message,event")

    assert session.calls_to("list-mail-messages") == [{"top": 10, "orderBy": "receivedDateTime desc"}]
    assert session.calls_to("list-mail-folder-messages") == [{"mailFolderId": "f1", "skip": 20}]
    assert session.calls_to("get-calendar-view") == [
        {"startDateTime": "2025-01-01", "endDateTime": "2025-01-31"}
    ]
    assert session.calls_to("list-tasks") == [{"listId": "tl1"}]
    assert session.calls_to("search") == [{"query": "budget", "entityTypes": "message,event"}]


@pytest.mark.asyncio
async def test_disable_cache_makes_every_read_hit_the_server(client, session):
    client.disable_cache()
    await client.list_mail_messages(top=10)
    await client.list_mail_messages(top=10)
    assert len(session.calls_to("list-mail-messages")) == 2
    assert client.get_cache_stats()["enabled"] is False

    client.enable_cache()
    await client.list_mail_messages(top=10)
    await client.list_mail_messages(top=10)
    assert len(session.calls_to("list-mail-messages")) == 3


@pytest.mark.asyncio
async def test_401_error_raises_auth_required_and_blocks_further_calls(client, session):
    session.on("list-calendars", lambda args: text_result("401 Unauthorized", is_error=True))

    with pytest.raises(AuthenticationRequiredError) as exc_info:
        await client.list_calendars()
    assert str(exc_info.value).startswith("AUTHENTICATION_REQUIRED: 401 Unauthorized")

    with pytest.raises(AuthenticationRequiredError):
        await client.list_contacts()
    assert session.calls_to("list-outlook-contacts") == []
    assert client.cache.keys() == []


@pytest.mark.asyncio
async def test_generic_error_is_not_cached(client, session):
    session.on("get-mail-message", lambda args: text_result("ErrorItemNotFound", is_error=True))
    with pytest.raises(ToolCallError, match="^ErrorItemNotFound$"):
        await client.get_mail_message("missing")
    assert client.cache.keys() == []


@pytest.mark.asyncio
async def test_configured_auth_vocabulary(config, cache, factory, session):
    from outlook_mcp_client.client import OutlookClient

    config = config.model_copy(update={"auth_error_markers": ["session_gone"]})
    client = OutlookClient(config, cache=cache, session_factory=factory)
    session.on("send-mail", lambda args: text_result("401 from relay", is_error=True))
    session.on("list-tasks", lambda args: text_result("SESSION_GONE", is_error=True))

    with pytest.raises(ToolCallError):
        await client.send_mail("a@b.com", "s", "b")
    with pytest.raises(AuthenticationRequiredError):
        await client.list_tasks()
    await client.disconnect()


@pytest.mark.asyncio
async def test_plain_text_results_are_returned_as_text(client, session):
    session.on("send-mail", lambda args: text_result("Mail sent successfully"))
    assert await client.send_mail("a@b.com", "s", "b") == "Mail sent successfully"


@pytest.mark.asyncio
async def test_auth_commands_skip_preflight(client, session):
    session.authenticated = False
    session.on("login", lambda args: json_result({"message": "Visit https://microsoft.com/devicelogin"}))
    client.skip_auth_check = True

    result = await client.login()

    assert result == {"message": "Visit https://microsoft.com/devicelogin"}
    assert session.calls_to("verify-login") == []


@pytest.mark.asyncio
async def test_list_tools(client):
    client.skip_auth_check = True
    tools = await client.list_tools()
    assert tools == [
        {"name": "list-mail-messages", "description": "List messages"},
        {"name": "send-mail", "description": "Send mail"},
    ]
    await client.disconnect()


@pytest.mark.asyncio
async def test_many_operations_share_one_session(client, factory):
    await client.list_mail_messages()
    await client.list_calendars()
    await client.send_mail("a@b.com", "s", "b")
    assert factory.opened == 1
    await client.disconnect()
    assert factory.closed == 1


@pytest.mark.asyncio
async def test_empty_optional_strings_are_not_sent(client, session):
    await client.send_mail("a@b.com", "s", "b", cc="")
    await client.search("budget", entity_types="")
    assert session.calls_to("send-mail") == [{"to": "a@b.com", "subject": "s", "body": "b"}]
    assert session.calls_to("search") == [{"query": "budget"}]
