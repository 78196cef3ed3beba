import pytest

from services.link_moderator import LinkModerator, check_message, has_status_mention

GROUP = "120363000000000001@g.us"
MEMBER = "923001112223"


@pytest.fixture
def moderator(settings_store, warnings_store):
    return LinkModerator(settings=settings_store, warnings=warnings_store, warning_limit=3)


def test_whatsapp_group_link_is_deleted():
    result = check_message("join us https://chat.whatsapp.com/AbC123xyz")
    assert result.blocked and result.should_delete
    assert result.violation_type == "whatsapp_group"


def test_channel_link_is_stripped_from_repost():
    result = check_message("news: https://whatsapp.com/channel/0029VaXyz now")
    assert result.violation_type == "whatsapp_channel"
    assert result.clean_message == "news: https://[Channel Link Removed] now"


@pytest.mark.parametrize("text, name", [
    ("see https://instagram.com/someone", "Instagram"),
    ("https://www.facebook.com/page", "Facebook"),
    ("t.me/joinchat/abc", "Telegram"),
    ("vm.tiktok.com/xyz", "TikTok"),
])
def test_social_links_are_blocked(text, name):
    result = check_message(text)
    assert result.violation_type == "social_media"
    assert name in result.warning_message


@pytest.mark.parametrize("text", [
    "lecture: https://www.youtube.com/watch?v=abc",
    "https://youtu.be/abc",
    "CS101 handout please",
    "",
])
def test_allowed_messages(text):
    assert not check_message(text).blocked


def test_status_mentions():
    assert has_status_mention("plz check my status")
    assert has_status_mention("Status dekho sab")
    assert not has_status_mention("what is the status of the quiz?")


def test_warnings_accumulate_until_removal(moderator, warnings_store):
    first = moderator.evaluate(GROUP, MEMBER, "t.me/spam")
    assert first.warnings == 1 and not first.should_remove
    second = moderator.evaluate(GROUP, MEMBER, "check my status")
    assert second.violation_type == "status_mention"
    assert second.warnings == 2
    assert moderator.get_warnings(GROUP, MEMBER) == 2

    third = moderator.evaluate(GROUP, MEMBER, "chat.whatsapp.com/Invite1")
    assert third.should_remove
    assert moderator.get_warnings(GROUP, MEMBER) == 0
    assert not warnings_store.has(f"{GROUP}.{MEMBER}")


def test_clean_message_does_not_count(moderator):
    assert not moderator.evaluate(GROUP, MEMBER, "hello everyone").blocked
    assert moderator.get_warnings(GROUP, MEMBER) == 0


def test_disabled_group_is_not_moderated(moderator, settings_store):
    settings_store.set(f"{GROUP}.antilink", False)
    assert not moderator.evaluate(GROUP, MEMBER, "chat.whatsapp.com/Invite1").blocked


def test_reset_warnings(moderator):
    moderator.evaluate(GROUP, MEMBER, "fb.me/x")
    assert moderator.reset_warnings(GROUP, MEMBER)
    assert moderator.get_warnings(GROUP, MEMBER) == 0


def test_sender_id_formats_share_one_warning_count(moderator):
    moderator.evaluate(GROUP, f"{MEMBER}@c.us", "fb.me/x")
    moderator.evaluate(GROUP, f"{MEMBER}:7@s.whatsapp.net", "fb.me/x")
    assert moderator.get_warnings(GROUP, MEMBER) == 2


def test_group_warning_limit_overrides_default(moderator):
    moderator.set_warning_limit(GROUP, 1)
    result = moderator.evaluate(GROUP, MEMBER, "t.me/spam")
    assert result.should_remove
    assert result.warning_limit == 1
    assert moderator.get_warning_limit("other@g.us") == 3


@pytest.mark.parametrize("limit", [0, 11])
def test_warning_limit_must_be_between_one_and_ten(moderator, limit):
    with pytest.raises(ValueError):
        moderator.set_warning_limit(GROUP, limit)
    assert moderator.get_warning_limit(GROUP) == 3


def test_list_and_reset_all_warnings(moderator):
    moderator.evaluate(GROUP, MEMBER, "fb.me/x")
    moderator.evaluate(GROUP, "923004445556", "fb.me/x")
    moderator.evaluate(GROUP, "923004445556", "fb.me/x")
    moderator.evaluate("other@g.us", MEMBER, "fb.me/x")

    assert moderator.list_warnings(GROUP) == {MEMBER: 1, "923004445556": 2}
    assert moderator.reset_all_warnings(GROUP) == 2
    assert moderator.list_warnings(GROUP) == {}
    assert moderator.get_warnings("other@g.us", MEMBER) == 1
