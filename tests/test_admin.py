from __future__ import annotations

import pytest

from conftest import ADMIN_ID
from gatebot.domain.models import Feature, InboundEvent
from gatebot.services.access import AccessController
from gatebot.services.accounts import AccountRepository
from gatebot.services.admin import AdminService
from gatebot.services.exceptions import Unauthorized
from gatebot.services.pipeline import RequestPipeline
from gatebot.services.usage import UsageLedger

ADMIN = str(ADMIN_ID)


@pytest.mark.asyncio
async def test_non_admin_is_rejected_without_side_effects(session, make_services, transport):
    services = make_services()
    admin = AdminService(session, services, transport)

    with pytest.raises(Unauthorized):
        await admin.approve("42", "77")
    with pytest.raises(Unauthorized):
        admin.set_public_mode("42", True)
    with pytest.raises(Unauthorized):
        await admin.broadcast("42", "hello")

    assert await AccountRepository(session, services.settings).get("77") is None
    assert services.policy.public_mode is False
    assert transport.texts == []


@pytest.mark.asyncio
async def test_approve_and_list(session, make_services, transport):
    services = make_services()
    admin = AdminService(session, services, transport)

    await admin.approve(ADMIN, "77", 2)
    await admin.approve(ADMIN, "78")

    approved = await admin.list_approved(ADMIN)
    assert {account.chat_id for account in approved} == {"77", "78"}
    assert (await AccessController(session, services.policy, services.settings).authorize("77")).allowed


@pytest.mark.asyncio
async def test_admin_cannot_revoke_itself(session, make_services, transport):
    services = make_services()

    await RequestPipeline(session, services, transport).handle(
        InboundEvent(chat_id=ADMIN, command="remove", args=ADMIN)
    )

    assert transport.last_text() == "⛔ Admin only command."
    assert services.policy.is_admin(ADMIN)
    assert (await AccessController(session, services.policy, services.settings).authorize(ADMIN)).allowed


@pytest.mark.asyncio
async def test_approve_command_notifies_target(session, make_services, transport):
    services = make_services()
    pipeline = RequestPipeline(session, services, transport)

    await pipeline.handle(InboundEvent(chat_id=ADMIN, command="approve", args="77 12"))

    assert transport.texts[0][0] == ADMIN
    assert transport.texts[0][1].startswith("✅ User 77 approved until")
    assert transport.texts[1] == ("77", "🎉 You have been approved to use this bot for 12 hours.", {})


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "args, expected",
    [("abc", "numeric user id"), ("77 -3", "positive number"), ("77 soon", "positive number")],
)
async def test_approve_command_validates_arguments(session, make_services, transport, args, expected):
    services = make_services()

    await RequestPipeline(session, services, transport).handle(
        InboundEvent(chat_id=ADMIN, command="approve", args=args)
    )

    assert expected in transport.last_text()
    assert await AccountRepository(session, services.settings).get("77") is None


@pytest.mark.asyncio
async def test_revoke_and_missing_target(session, make_services, transport):
    services = make_services()
    pipeline = RequestPipeline(session, services, transport)
    await pipeline.admin.approve(ADMIN, "77")

    await pipeline.handle(InboundEvent(chat_id=ADMIN, command="remove", args="77"))
    assert transport.last_text() == "🗑 Access removed for 77."
    await pipeline.handle(InboundEvent(chat_id=ADMIN, command="remove", args="555"))
    assert transport.last_text() == "⚠️ User 555 not found."

    decision = await AccessController(session, services.policy, services.settings).authorize("77")
    assert not decision.allowed


@pytest.mark.asyncio
async def test_public_mode_toggle(session, make_services, transport, generator):
    services = make_services()
    pipeline = RequestPipeline(session, services, transport)

    await pipeline.handle(InboundEvent(chat_id=ADMIN, command="public"))
    await pipeline.handle(InboundEvent(chat_id="42", text="hello"))
    assert len(generator.calls) == 1

    await pipeline.handle(InboundEvent(chat_id=ADMIN, command="mode"))
    assert transport.last_text() == "🔓 Current mode: PUBLIC"

    await pipeline.handle(InboundEvent(chat_id=ADMIN, command="private"))
    await pipeline.handle(InboundEvent(chat_id="43", text="hello"))
    assert len(generator.calls) == 1
    assert "not approved" in transport.last_text()


@pytest.mark.asyncio
async def test_broadcast_tallies_failures(session, make_services, transport):
    services = make_services()
    admin = AdminService(session, services, transport)
    for chat_id in ("77", "78", "79"):
        await admin.approve(ADMIN, chat_id)
    transport.unreachable.add("78")

    result = await admin.broadcast(ADMIN, "maintenance tonight")

    assert (result.sent, result.failed) == (2, 1)
    assert sorted(chat for chat, text, _ in transport.texts if text == "maintenance tonight") == ["77", "79"]


@pytest.mark.asyncio
async def test_broadcast_command_requires_text(session, make_services, transport):
    services = make_services()

    await RequestPipeline(session, services, transport).handle(
        InboundEvent(chat_id=ADMIN, command="broadcast", args="  ")
    )

    assert transport.last_text() == "⚠️ Provide the text to broadcast."


@pytest.mark.asyncio
async def test_usage_report(session, make_services, transport):
    services = make_services()
    admin = AdminService(session, services, transport)
    busy = await admin.approve(ADMIN, "77")
    await admin.approve(ADMIN, "78")
    ledger = UsageLedger(session, services.settings)
    await ledger.commit(busy, 40)
    await ledger.try_consume(busy, Feature.SEARCH, 10)

    report = await admin.usage_report(ADMIN)

    rows = {row.chat_id: row for row in report.rows}
    assert rows["77"].requests_today == 1
    assert rows["77"].tokens_used_today == 40
    assert rows["77"].feature_usage[Feature.SEARCH.value] == 1
    assert rows["78"].requests_today == 0

    pipeline = RequestPipeline(session, services, transport)
    await pipeline.handle(InboundEvent(chat_id=ADMIN, command="usage"))
    text = transport.last_text()
    assert "77: 1 requests, 40 tokens (search=1)" in text
    assert "78:" not in text
