"""
Case Warden - Moderation Engine Tests
=====================================

Tests for automod enforcement, penalties, escalation and case workflows.
"""

import pytest

from src.core.database import ActionType, AuditType, CaseCategory, CaseStatus
from src.core.errors import (
    CaseNotFound,
    EmptyMessage,
    MemberNotResolvable,
    NotificationError,
    NotModeratable,
)

from tests.conftest import GUILD_ID, LOG_CHANNEL_ID, MODERATOR_ID, STAFF_ROLE_ID, USER_ID


STAFF_MENTION = f"<@&{STAFF_ROLE_ID}>"


def log_calls(platform):
    """(channel_id, content, notice) for every send_log_message call."""
    calls = []
    for call in platform.send_log_message.call_args_list:
        channel = call.args[0] if call.args else call.kwargs.get("channel_id")
        calls.append((channel, call.kwargs.get("content"), call.kwargs.get("notice")))
    return calls


# =============================================================================
# Dashboard Penalties
# =============================================================================

class TestPenalties:
    """Tests for warn/timeout/kick/ban and escalation."""

    @pytest.mark.asyncio
    async def test_warn_records_and_notifies(self, engine, platform):
        """Test a dashboard warning is recorded, DMed and logged without a ping."""
        result = await engine.warn(GUILD_ID, USER_ID, MODERATOR_ID, "mod#0001", "Be nice")

        assert result.action.type is ActionType.WARN
        assert result.action.source == "dashboard"
        assert result.action.moderator_id == MODERATOR_ID
        assert result.case.user_tag == f"member{USER_ID}"

        platform.send_direct_message.assert_awaited_once_with(
            USER_ID, "You received a warning in Syria. Reason: Be nice"
        )
        [(channel, content, notice)] = log_calls(platform)
        assert channel == LOG_CHANNEL_ID
        assert content is None
        assert notice.title == "⚠️ Member Warned"
        assert notice.footer == f"Case {result.case.id}"

    @pytest.mark.asyncio
    async def test_three_warnings_escalate_to_timeout(self, engine, store, platform):
        """Test the third warning adds an automatic timeout and escalates the case."""
        for _ in range(3):
            result = await engine.warn(GUILD_ID, USER_ID, MODERATOR_ID, "mod#0001", "Spam")

        case = await store.get_case(result.case.id)
        assert case.status is CaseStatus.ESCALATED
        assert [a.type for a in case.actions] == [
            ActionType.WARN, ActionType.WARN, ActionType.WARN, ActionType.TIMEOUT,
        ]
        escalated = case.actions[-1]
        assert escalated.source == "auto-escalation"
        assert escalated.moderator_id is None
        assert escalated.duration_minutes == 10
        assert escalated.metadata == {"escalated_from": "warn"}
        assert case.audit_log[-1].status is CaseStatus.ESCALATED
        assert case.audit_log[-1].note == "Escalated after 3 warnings."

        platform.timeout_member.assert_awaited_once_with(
            GUILD_ID, USER_ID, 10, "Auto-timeout after 3 warnings."
        )
        totals = await store.get_user_totals(GUILD_ID, USER_ID)
        assert (totals.warnings, totals.timeouts, totals.bans) == (3, 1, 0)

    @pytest.mark.asyncio
    async def test_escalation_chains_two_hops(self, engine, store, platform, config_provider):
        """Test one warning can escalate to a timeout and then a ban."""
        config_provider.update({"escalation": {"warn_threshold": 1, "timeout_threshold": 1}})

        await engine.warn(GUILD_ID, USER_ID, MODERATOR_ID, "mod#0001", "Spam")

        platform.timeout_member.assert_awaited_once()
        platform.ban_member.assert_awaited_once()
        totals = await store.get_user_totals(GUILD_ID, USER_ID)
        assert (totals.warnings, totals.timeouts, totals.bans) == (1, 1, 1)

    @pytest.mark.asyncio
    async def test_failed_escalation_keeps_original_action(self, engine, store, platform):
        """Test a refused escalation is logged and the warning stands."""
        platform.timeout_member.side_effect = NotModeratable()

        for _ in range(3):
            result = await engine.warn(GUILD_ID, USER_ID, MODERATOR_ID, "mod#0001", "Spam")

        case = await store.get_case(result.case.id)
        assert case.status is CaseStatus.OPEN
        totals = await store.get_user_totals(GUILD_ID, USER_ID)
        assert (totals.warnings, totals.timeouts) == (3, 0)

    @pytest.mark.asyncio
    async def test_platform_refusal_records_nothing(self, engine, store, platform):
        """Test a penalty the platform refuses is never recorded."""
        platform.kick_member.side_effect = NotModeratable()

        with pytest.raises(NotModeratable):
            await engine.kick(GUILD_ID, USER_ID, MODERATOR_ID, "mod#0001", "Raid")

        assert await store.get_recent_cases() == []
        platform.send_direct_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dm_failure_is_swallowed(self, engine, platform):
        """Test a blocked DM does not stop the penalty."""
        platform.send_direct_message.side_effect = NotificationError()

        result = await engine.timeout(GUILD_ID, USER_ID, MODERATOR_ID, "mod#0001", "Cool off", 30)

        assert result.action.duration_minutes == 30
        platform.timeout_member.assert_awaited_once_with(GUILD_ID, USER_ID, 30, "Cool off")

    @pytest.mark.asyncio
    async def test_timeout_defaults_duration(self, engine, platform):
        """Test a timeout without a duration uses auto_timeout_minutes."""
        result = await engine.timeout(GUILD_ID, USER_ID, MODERATOR_ID, "mod#0001", "Cool off")
        assert result.action.duration_minutes == 10
        platform.send_direct_message.assert_awaited_once_with(
            USER_ID, "You have been timed out in Syria for 10 minutes. Reason: Cool off"
        )

    @pytest.mark.asyncio
    async def test_unresolvable_member(self, engine, platform, store):
        """Test a warning for an unknown member raises MemberNotResolvable."""
        platform.resolve_member.side_effect = None
        platform.resolve_member.return_value = None

        with pytest.raises(MemberNotResolvable):
            await engine.warn(GUILD_ID, USER_ID, MODERATOR_ID, "mod#0001", "Spam")
        assert await store.get_recent_cases() == []

    @pytest.mark.asyncio
    async def test_ban_member_who_left(self, engine, platform):
        """Test a ban only needs the guild to resolve."""
        platform.resolve_member.side_effect = None
        platform.resolve_member.return_value = None

        result = await engine.ban(GUILD_ID, USER_ID, MODERATOR_ID, "mod#0001", "Raid")

        assert result.action.type is ActionType.BAN
        assert result.case.user_tag is None
        platform.ban_member.assert_awaited_once_with(GUILD_ID, USER_ID, "Raid")

    @pytest.mark.asyncio
    async def test_no_log_channel(self, engine, platform, config_provider):
        """Test nothing is posted without a log channel."""
        config_provider.update({"alerts": {"log_channel_id": None}})
        await engine.warn(GUILD_ID, USER_ID, MODERATOR_ID, "mod#0001", "Spam")
        platform.send_log_message.assert_not_awaited()


# =============================================================================
# Automod
# =============================================================================

class TestAutomod:
    """Tests for handle_message()."""

    @pytest.mark.asyncio
    async def test_link_violation(self, engine, store, platform, make_message):
        """Test a link is deleted and warned with the rule as source."""
        message = make_message("buy now https://spam.example")

        result = await engine.handle_message(message)

        assert result.action_taken is True
        assert [v.type for v in result.violations] == ["links"]
        platform.delete_message.assert_awaited_once_with("6000", message.message_id)

        case = (await store.get_recent_cases())[0]
        action = case.actions[0]
        assert action.source == "links"
        assert action.moderator_id is None
        assert action.reason == "Link sharing is restricted in this server."
        assert action.metadata["evidence"]["message_id"] == message.message_id

        [(_, content, _notice)] = log_calls(platform)
        assert content == STAFF_MENTION

    @pytest.mark.asyncio
    async def test_delete_failure_still_warns(self, engine, platform, make_message):
        """Test a failed delete does not block the warning."""
        platform.delete_message.side_effect = NotModeratable()
        result = await engine.handle_message(make_message("fuck this"))
        assert result.action_taken is True
        assert result.violations[0].type == "profanity"

    @pytest.mark.asyncio
    async def test_clean_message(self, engine, platform, make_message):
        """Test a clean message does nothing."""
        result = await engine.handle_message(make_message("good morning"))
        assert result.action_taken is False
        assert result.violations == []
        platform.delete_message.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides", [
        {"has_authority": True},
        {"is_bot": True},
        {"guild_id": None},
    ])
    async def test_skipped_authors(self, engine, platform, make_message, overrides):
        """Test staff, bots and DMs are never scanned."""
        result = await engine.handle_message(make_message("https://spam.example", **overrides))
        assert result.action_taken is False
        platform.delete_message.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("scope, overrides", [
        ({"user_allow": [USER_ID]}, {}),
        ({"channel_allow": ["6000"]}, {}),
        ({"role_allow": ["77"]}, {"role_ids": frozenset({"77"})}),
    ])
    async def test_allow_lists(self, engine, config_provider, make_message, scope, overrides):
        """Test allow-listed users, channels and roles bypass automod."""
        config_provider.update({"scopes": scope})
        message = make_message("https://spam.example", **overrides)

        assert engine.should_bypass(message) is True
        result = await engine.handle_message(message)
        assert result.action_taken is False

    @pytest.mark.asyncio
    async def test_spam_timeout(self, engine, store, platform, make_message, clock):
        """Test the ninth message in a minute triggers a spam timeout."""
        results = []
        for i in range(9):
            results.append(await engine.handle_message(make_message(f"hi {i}"), now=clock.now + i))

        assert all(not r.action_taken for r in results[:8])
        assert results[8].action_taken is True
        assert results[8].violations[0].type == "spam"
        platform.timeout_member.assert_awaited_once()
        assert platform.timeout_member.await_args.args[2] == 10

        action = (await store.get_recent_cases())[0].actions[0]
        assert action.source == "spam-detector"
        assert action.metadata["spam"]["messages"] == 9
        assert "evidence" in action.metadata

    @pytest.mark.asyncio
    async def test_failed_spam_timeout(self, engine, store, platform, make_message, clock):
        """Test a refused spam timeout reports no action taken."""
        platform.timeout_member.side_effect = NotModeratable()

        for i in range(9):
            result = await engine.handle_message(make_message(f"hi {i}"), now=clock.now + i)

        assert result.action_taken is False
        assert result.violations[0].type == "spam"
        assert await store.get_recent_cases() == []

    @pytest.mark.asyncio
    async def test_config_change_clears_spam_windows(self, engine, config_provider, make_message, clock):
        """Test new limits start from empty windows."""
        await engine.handle_message(make_message("hi"), now=clock.now)
        assert len(engine.spam) == 1

        config_provider.update({"spam": {"messages_per_minute": 20}})

        assert len(engine.spam) == 0


# =============================================================================
# Case Workflows
# =============================================================================

class TestCaseWorkflows:
    """Tests for member, moderator and support workflows."""

    @pytest.mark.asyncio
    async def test_moderator_reply_relayed_by_dm(self, engine, store, platform):
        """Test a dashboard reply is appended and sent to the member."""
        case = (await store.ensure_member_case(GUILD_ID, USER_ID, initial_message="help")).case

        message = await engine.post_moderator_message(GUILD_ID, case.id, " On it ", MODERATOR_ID, "mod#0001")

        assert message.body == "On it"
        updated = await store.get_case(case.id)
        assert updated.status is CaseStatus.OPEN
        platform.send_direct_message.assert_awaited_once_with(
            USER_ID, "Message from the moderators of Syria: On it"
        )

    @pytest.mark.asyncio
    async def test_moderator_reply_errors(self, engine):
        """Test empty replies and unknown cases raise."""
        with pytest.raises(EmptyMessage):
            await engine.post_moderator_message(GUILD_ID, "missing", "  ")
        with pytest.raises(CaseNotFound):
            await engine.post_moderator_message(GUILD_ID, "missing", "hello")

    @pytest.mark.asyncio
    async def test_member_message_opens_case(self, engine, platform):
        """Test a member message opens a case and pings staff."""
        result = await engine.post_member_message(GUILD_ID, USER_ID, "I want to appeal", "member2000", "Syria")

        assert result.message.body == "I want to appeal"
        assert result.case.status is CaseStatus.PENDING_RESPONSE
        [(channel, content, notice)] = log_calls(platform)
        assert channel == LOG_CHANNEL_ID
        assert content.startswith(STAFF_MENTION)
        assert "New case update from member2000 in Syria" in content
        assert notice is None

    @pytest.mark.asyncio
    async def test_member_message_empty(self, engine):
        """Test an empty member message is ignored."""
        assert await engine.post_member_message(GUILD_ID, USER_ID, "   ") is None

    @pytest.mark.asyncio
    async def test_dm_routed_to_active_case(self, engine):
        """Test a DM lands on the member's active case."""
        case = (await engine.warn(GUILD_ID, USER_ID, MODERATOR_ID, "mod#0001", "Spam")).case

        result = await engine.route_member_direct_message(
            USER_ID, "Sorry", attachment_urls=["https://cdn.example/a.png"], user_tag="member2000"
        )

        assert result.case.id == case.id
        assert result.message.via == "dm"
        assert result.message.body == "Sorry\n\nAttachment: https://cdn.example/a.png"
        assert result.case.status is CaseStatus.PENDING_RESPONSE

    @pytest.mark.asyncio
    async def test_dm_opens_case_in_shared_guild(self, engine, platform):
        """Test a DM without a case opens one in the first shared guild."""
        result = await engine.route_member_direct_message(USER_ID, "Hello?", user_tag="member2000")

        assert result.case.guild_id == GUILD_ID
        assert result.case.guild_name == "Syria"
        assert result.message.body == "Hello?"
        platform.member_guilds.assert_awaited_once_with(USER_ID)

    @pytest.mark.asyncio
    async def test_dm_without_shared_guild(self, engine, platform, store):
        """Test a DM from a stranger is dropped."""
        platform.member_guilds.return_value = []

        assert await engine.route_member_direct_message(USER_ID, "Hello?") is None
        assert await engine.route_member_direct_message(USER_ID, "   ") is None
        assert await store.get_recent_cases() == []

    @pytest.mark.asyncio
    async def test_dm_after_closed_case_opens_new_case(self, engine, platform):
        """Test a DM never lands on a closed case; a fresh pending case is opened."""
        closed = (await engine.warn(GUILD_ID, USER_ID, MODERATOR_ID, "mod#0001", "Spam")).case
        await engine.set_case_status(GUILD_ID, closed.id, "closed")
        platform.send_log_message.reset_mock()

        result = await engine.route_member_direct_message(USER_ID, "Can we talk?", user_tag="member2000")

        assert result.case.id != closed.id
        assert result.case.guild_id == GUILD_ID
        assert result.case.status is CaseStatus.PENDING_RESPONSE
        assert result.message.body == "Can we talk?"
        assert len((await engine.get_case(closed.id)).messages) == len(closed.messages)

        pending = await engine.list_cases_for_guild(GUILD_ID, status="pending-response")
        assert [c.id for c in pending] == [result.case.id]
        [(_, content, _)] = log_calls(platform)
        assert content.startswith(STAFF_MENTION)
        platform.member_guilds.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_member_message_is_one_store_write(self, engine, store):
        """Test a member message on an existing case adds one message and one audit entry."""
        case = (await engine.warn(GUILD_ID, USER_ID, MODERATOR_ID, "mod#0001", "Spam")).case

        result = await engine.post_member_message(GUILD_ID, USER_ID, "I disagree", "member2000", "Syria")

        updated = await store.get_case(case.id)
        assert result.case.id == case.id
        assert len(updated.audit_log) == len(case.audit_log) + 1
        assert updated.audit_log[-1].type is AuditType.MESSAGE
        assert updated.audit_log[-1].status is CaseStatus.PENDING_RESPONSE
        assert updated.messages[-1].body == "I disagree"

        fresh = await engine.post_member_message(GUILD_ID, "2001", "Hello", "member2001", "Syria")
        assert [e.type for e in fresh.case.audit_log] == [AuditType.CREATED]
        assert fresh.message.body == "Hello"

    @pytest.mark.asyncio
    async def test_support_request(self, engine, platform):
        """Test a support ticket opens a new case and posts intake."""
        first = await engine.open_support_request(
            GUILD_ID,
            USER_ID,
            topic_id="billing",
            topic_label="Billing",
            reason="I was double charged",
            intake_channel_id="8000",
        )

        assert first.created is True
        assert first.intake_channel_id == "8000"
        case = first.case
        assert case.category is CaseCategory.TICKET
        assert case.status is CaseStatus.PENDING_RESPONSE
        assert case.subject == "Ticket: Billing"
        assert case.ticket_type == "billing"
        assert first.message.body == "I was double charged"

        intake = [n for (channel, _, n) in log_calls(platform) if channel == "8000"]
        assert len(intake) == 1
        assert intake[0].title == "New support ticket"
        assert intake[0].description == "I was double charged"

        second = await engine.open_support_request(GUILD_ID, USER_ID, topic_label="Billing")
        assert second.case.id != case.id
        assert second.message.body == "Member opened a support ticket."

        tickets = await engine.list_cases_for_guild(GUILD_ID, category="ticket")
        assert [c.id for c in tickets if c.is_active] == [second.case.id]
        assert (await engine.get_case(case.id)).status is CaseStatus.CLOSED

    @pytest.mark.asyncio
    async def test_moderation_request_keeps_one_active_case(self, engine):
        """Test a moderation request after a warning leaves one active moderation case."""
        warned = (await engine.warn(GUILD_ID, USER_ID, MODERATOR_ID, "mod#0001", "Spam")).case

        request = await engine.open_support_request(GUILD_ID, USER_ID, category="moderation", reason="Appeal")

        cases = await engine.list_cases_for_guild(GUILD_ID, category="moderation")
        assert [c.id for c in cases if c.is_active] == [request.case.id]
        assert (await engine.get_case(warned.id)).status is CaseStatus.CLOSED

        follow_up = await engine.warn(GUILD_ID, USER_ID, MODERATOR_ID, "mod#0001", "Spam again")
        assert follow_up.case.id == request.case.id

    @pytest.mark.asyncio
    async def test_open_member_case(self, engine):
        """Test opening a moderation case from the dashboard."""
        case = await engine.open_member_case(GUILD_ID, USER_ID, reason="Follow-up")
        assert case.category is CaseCategory.MODERATION
        assert case.subject == "Follow-up"
        assert (await engine.open_member_case(GUILD_ID, USER_ID)).id == case.id

    @pytest.mark.asyncio
    async def test_dashboard_updates(self, engine, clock):
        """Test status, assignee and SLA wrappers record the moderator."""
        case = await engine.open_member_case(GUILD_ID, USER_ID)

        closed = await engine.set_case_status(GUILD_ID, case.id, "closed", MODERATOR_ID, "mod#0001", note="Done")
        assert closed.audit_log[-1].actor_type == "moderator"
        assert closed.audit_log[-1].actor_id == MODERATOR_ID

        assigned = await engine.set_case_assignee(GUILD_ID, case.id, MODERATOR_ID, "mod#0001", "Mod")
        assert assigned.assignee.display_name == "Mod"
        cleared = await engine.set_case_assignee(GUILD_ID, case.id, None)
        assert cleared.assignee is None

        sla = await engine.set_case_sla(GUILD_ID, case.id, clock.now + 3600, MODERATOR_ID)
        assert sla.sla.due_at == clock.now + 3600

    @pytest.mark.asyncio
    async def test_case_details(self, engine):
        """Test details carry SLA state and member totals."""
        result = await engine.warn(GUILD_ID, USER_ID, MODERATOR_ID, "mod#0001", "Spam")

        details = await engine.get_case_details(GUILD_ID, result.case.id)

        assert details["id"] == result.case.id
        assert details["sla_state"] == "none"
        assert details["totals"]["warnings"] == 1
        assert await engine.get_case_details("9999", result.case.id) is None

    @pytest.mark.asyncio
    async def test_delete_and_reads(self, engine):
        """Test delete plus the read passthroughs."""
        result = await engine.warn(GUILD_ID, USER_ID, MODERATOR_ID, "mod#0001", "Spam")
        assert len(await engine.list_cases_for_guild(GUILD_ID)) == 1
        assert (await engine.get_stats()).warnings == 1

        await engine.delete_case(GUILD_ID, result.case.id, MODERATOR_ID)

        assert await engine.get_case(result.case.id) is None
        assert await engine.get_recent_cases() == []
        assert (await engine.get_user_totals(GUILD_ID, USER_ID)).cases == 0
