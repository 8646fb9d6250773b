"""
Tests de la difusión de items nuevos.
"""
import random
from unittest.mock import AsyncMock

import pytest

from zotsync.application.services.broadcast_dispatcher import (
    BROADCAST_VARIANTS,
    BroadcastDispatcher,
    BroadcastItem,
    choose_representative,
    discord_new_item,
    telegram_new_items,
    twitter_new_item,
    twitter_new_items,
)
from zotsync.core.config import Settings
from zotsync.core.container import build_dispatcher
from zotsync.shared.constants.sync_constants import (
    BroadcastAction,
    BroadcastChannel,
    DeliveryStatus,
)
from zotsync.shared.exceptions.sync import BroadcastException


def _item(n: int, featured: bool = False, **data) -> BroadcastItem:
    base = {
        "title": f"Video {n}",
        "date": "2021",
        "runningTime": "45:22",
        "url": "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        "archiveLocation": f"https://airtable.com/tblTEST/viwTEST/rec{n:014d}",
        "callNumber": str(n),
        "creators": [{"creatorType": "contributor", "firstName": "Ada", "lastName": "Lovelace"}],
        "extra": "Topic: Glaciology\nTags: ice, snow",
    }
    base.update(data)
    return BroadcastItem(data=base, featured=featured)


def test_every_channel_action_pair_has_a_formatter():
    assert set(BROADCAST_VARIANTS) == {
        (channel, action) for channel in BroadcastChannel for action in BroadcastAction
    }


def test_select_action_by_count():
    assert BroadcastDispatcher.select_action(1) == BroadcastAction.NEW_ITEM
    assert BroadcastDispatcher.select_action(7) == BroadcastAction.NEW_ITEMS


def test_featured_item_is_representative():
    items = [_item(1), _item(2, featured=True), _item(3)]
    assert choose_representative(items).data["title"] == "Video 2"


def test_representative_without_featured_comes_from_batch():
    items = [_item(n) for n in range(5)]
    chosen = choose_representative(items, random.Random(3))
    assert chosen in items


def test_discord_embed_contents():
    topics = {"Glaciology": {"color": "c2f5e9", "channelId": "123"}}

    message = discord_new_item(_item(1), 1, topics)

    assert message["content"].endswith("<#123>")
    embed = message["embeds"][0]
    assert embed["title"] == "Video 1 (2021) [45:22]"
    assert embed["color"] == int("c2f5e9", 16)
    assert embed["image"]["url"] == "http://i3.ytimg.com/vi/dQw4w9WgXcQ/hqdefault.jpg"
    fields = {f["name"]: f["value"] for f in embed["fields"]}
    assert fields["Topic"] == "Glaciology"
    assert fields["Presenter(s)"] == "Ada Lovelace"
    assert fields["Tags"] == "ice, snow"


def test_telegram_batch_message_escapes_html():
    message = telegram_new_items(_item(1, title="Rocks & <Ice>"), 4, {})

    assert message["text"].startswith("4 new submissions, including:")
    assert "Rocks &amp; &lt;Ice&gt;" in message["text"]



def test_tweet_for_single_item_carries_topic_hashtags():
    item = _item(1, extra="Topic: The Anthropocene")

    text = twitter_new_item(item, 1, {})["text"]

    assert text.startswith('New submission! Just added "Video 1" https://www.youtube.com/watch?v=dQw4w9WgXcQ (45:22)')
    assert "#esovdb #esovdbsubmissions" in text
    assert text.endswith("#anthropocene")


def test_tweet_without_known_topic_has_no_topic_hashtags():
    text = twitter_new_item(_item(1), 1, {})["text"]

    assert text.endswith("#earthscience #geology")


def test_batch_tweet_only_carries_total():
    text = twitter_new_items(_item(1), 7, {})["text"]

    assert text.startswith("Just added 7 items to the ESOVDB.")
    assert "Video 1" not in text

@pytest.mark.asyncio
async def test_single_item_uses_new_item_on_every_channel():
    discord = AsyncMock()
    telegram = AsyncMock()
    twitter = AsyncMock()
    dispatcher = BroadcastDispatcher({
        BroadcastChannel.DISCORD: discord,
        BroadcastChannel.TELEGRAM: telegram,
        BroadcastChannel.TWITTER: twitter,
    })

    outcomes = await dispatcher.dispatch([_item(1)])

    assert [o.action for o in outcomes] == [BroadcastAction.NEW_ITEM] * 3
    assert [o.channel for o in outcomes] == [
        BroadcastChannel.DISCORD,
        BroadcastChannel.TELEGRAM,
        BroadcastChannel.TWITTER,
    ]
    assert all(o.delivered for o in outcomes)
    action, message = discord.await_args.args
    assert action == BroadcastAction.NEW_ITEM
    assert "embeds" in message
    assert "text" in telegram.await_args.args[1]
    assert twitter.await_args.args[1]["text"].startswith("New submission!")


@pytest.mark.asyncio
async def test_batch_announces_featured_item():
    discord = AsyncMock()
    dispatcher = BroadcastDispatcher({BroadcastChannel.DISCORD: discord})

    await dispatcher.dispatch([_item(1), _item(2), _item(3, featured=True)])

    message = discord.await_args.args[1]
    assert message["content"].startswith("3 new submissions")
    assert message["embeds"][0]["title"].startswith("Video 3")


@pytest.mark.asyncio
async def test_channel_failure_is_suppressed():
    discord = AsyncMock(side_effect=BroadcastException("discord", "HTTP 500"))
    telegram = AsyncMock()
    dispatcher = BroadcastDispatcher({
        BroadcastChannel.DISCORD: discord,
        BroadcastChannel.TELEGRAM: telegram,
    })

    outcomes = await dispatcher.dispatch([_item(1)])

    assert outcomes[0].status == DeliveryStatus.SUPPRESSED_ERROR
    assert "HTTP 500" in outcomes[0].error
    assert outcomes[1].status == DeliveryStatus.DELIVERED
    telegram.assert_awaited_once()


@pytest.mark.asyncio
async def test_no_items_no_attempts():
    discord = AsyncMock()
    dispatcher = BroadcastDispatcher({BroadcastChannel.DISCORD: discord})

    assert await dispatcher.dispatch([]) == []
    discord.assert_not_awaited()


def test_build_dispatcher_registers_only_configured_channels():
    settings = Settings(
        _env_file=None,
        BROADCAST_ENABLED=True,
        DISCORD_WEBHOOK_NEW_ITEM="",
        DISCORD_WEBHOOK_NEW_ITEMS="",
        TELEGRAM_BOT_TOKEN="",
        TELEGRAM_CHAT_ID="",
        TWITTER_ACCESS_TOKEN="TOKEN",
        TOPIC_METADATA_FILE="",
    )

    dispatcher = build_dispatcher(settings)

    assert list(dispatcher.senders) == [BroadcastChannel.TWITTER]
