"""
Difusión de items nuevos a canales externos (Discord, Telegram, Twitter).

Cada par (canal, acción) es una variante con su propio formateador,
seleccionada por enumeración explícita en BROADCAST_VARIANTS:

- (DISCORD, NEW_ITEM)   -> embed del item
- (DISCORD, NEW_ITEMS)  -> "N nuevos, incluyendo:" + embed del representante
- (TELEGRAM, NEW_ITEM)  -> mensaje HTML del item
- (TELEGRAM, NEW_ITEMS) -> mensaje HTML con total + representante
- (TWITTER, NEW_ITEM)   -> tweet del item con hashtags del tópico
- (TWITTER, NEW_ITEMS)  -> tweet con el total

El dispatcher nunca lanza: cada intento produce un BroadcastOutcome
(delivered | suppressed_error).
"""
from __future__ import annotations

import html
import json
import random
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from loguru import logger

from zotsync.application.services.item_transformer import parse_extra
from zotsync.domain.entities.sync_result import BroadcastOutcome
from zotsync.shared.constants.sync_constants import (
    BroadcastAction,
    BroadcastChannel,
    DeliveryStatus,
    PLACEHOLDER_CREATOR_NAME,
)
from zotsync.shared.utils.formatting import stringify_creators, truncate

YOUTUBE_ID_PATTERN = re.compile(r"^(?!rec)(?![\w\-]{12,})(?:.*youtu\.be/|.*v=)?([\w\-]{10,12})&?.*$")
DEFAULT_COLOR = "eeeeee"
ARCHIVE_NAME = "Earth Science Online Video Database"
TWEET_BOILERPLATE = "See what's new at www.esovdb.org! #esovdb #esovdbsubmissions #earthscience #geology"

# Hashtags por tópico, solo para tweets de un item
TOPIC_HASHTAGS: Dict[str, str] = {
    "Mantle Geodynamics, Geochemistry, Convection, Rheology, & Seismic Imaging and Modeling": "#mantle #geodynamics",
    "Igneous & Metamorphic Petrology, Volcanism, & Hydrothermal Systems": "#volcanology #petrology",
    "Alluvial, Pluvial & Terrestrial Sedimentology, Erosion & Weathering, Geomorphology, Karst, Groundwater & Provenance": "#sedimentology",
    "Early Earth, Life's Origins, Deep Biosphere, and the Formation of the Planet": "#originoflife",
    "Geological Stories, News, Tours, & Field Trips": "#geologicalstories",
    "History, Education, Careers, Field Work, Economic Geology, & Technology": "#geologists",
    "Glaciation, Atmospheric Science, Carbon Cycle, & Climate": "#climate",
    "The Anthropocene": "#anthropocene",
    "Geo-Archaeology": "#geoarchaeology",
    "Paleoclimatology, Isotope Geochemistry, Radiometric Dating, Deep Time, & Snowball Earth": "#paleoclimate",
    "Seafloor Spreading, Oceanography, Paleomagnetism, & Geodesy": "#oceanography",
    "Tectonics, Terranes, Structural Geology, & Dynamic Topography": "#tectonics #platetectonics",
    "Seismology, Mass Wasting, Tsunamis, & Natural Disasters": "#seismology #earthquake",
    "Minerals, Mining & Resources, Crystallography, & Solid-state Chemistry": "#minerals #mining",
    "Marine & Littoral Sedimentology, Sequence Stratigraphy, Carbonates, Evaporites, Coal, Petroleum, and Mud Volcanism": "#sedimentology",
    "Planetary Geology, Impact Events, Astronomy, & the Search for Extraterrestrial Life": "#meteorite #impactevent",
    "Paleobiology, Mass Extinctions, Fossils, & Evolution": "#paleontology #paleobiology",
}


@dataclass(frozen=True)
class BroadcastItem:
    """Item creado en Zotero listo para anunciar."""

    data: Dict[str, Any]
    featured: bool = False


TopicMetadata = Dict[str, Dict[str, str]]
Formatter = Callable[[BroadcastItem, int, TopicMetadata], Dict[str, Any]]
Sender = Callable[[BroadcastAction, Dict[str, Any]], Awaitable[Any]]


def load_topic_metadata(path: Optional[str]) -> TopicMetadata:
    """Carga {tópico: {color, channelId}} desde un JSON. Vacío si no hay archivo."""
    if not path:
        return {}
    file = Path(path)
    if not file.exists():
        logger.warning(f"Archivo de metadata de tópicos no encontrado: {path}")
        return {}
    with file.open(encoding="utf-8") as fh:
        return json.load(fh)


def choose_representative(items: Sequence[BroadcastItem], rng: random.Random | None = None) -> BroadcastItem:
    """Item destacado si existe; si no, uno al azar (uniforme)."""
    featured = [item for item in items if item.featured]
    if featured:
        return featured[0]
    return (rng or random).choice(list(items))


def _topic(data: Dict[str, Any]) -> Optional[str]:
    return parse_extra(data.get("extra")).get("Topic")


def _channel_mention(data: Dict[str, Any], topics: TopicMetadata) -> str:
    meta = topics.get(_topic(data) or "", {})
    return f" <#{meta['channelId']}>" if meta.get("channelId") else ""


def _discord_embed(data: Dict[str, Any], topics: TopicMetadata) -> Dict[str, Any]:
    extra = parse_extra(data.get("extra"))
    topic = extra.get("Topic")
    color = topics.get(topic or "", {}).get("color", DEFAULT_COLOR)

    embed: Dict[str, Any] = {
        "title": f"{data.get('title', '')} ({data.get('date', '')}) [{data.get('runningTime', '')}]",
        "url": data.get("url", ""),
        "color": int(color, 16),
        "author": {"name": data.get("videoRecordingFormat") or "Video"},
        "footer": {"text": f"{data.get('archiveLocation', '')} (ID: {data.get('callNumber', '')})"},
        "fields": [],
    }
    if topic:
        embed["fields"].append({"name": "Topic", "value": topic})
    if data.get("abstractNote"):
        embed["description"] = truncate(data["abstractNote"], 200)

    match = YOUTUBE_ID_PATTERN.match(data.get("url") or "")
    if match:
        embed["image"] = {"url": f"http://i3.ytimg.com/vi/{match.group(1)}/hqdefault.jpg"}

    byline = stringify_creators(data.get("creators") or [])
    if byline and byline != PLACEHOLDER_CREATOR_NAME:
        embed["fields"].append({"name": "Presenter(s)", "value": byline})
    if data.get("seriesTitle"):
        volume = f" (Vol. {data['volume']})" if data.get("volume") else ""
        embed["fields"].append({"name": "Series", "value": f"{data['seriesTitle']}{volume}"})
    if data.get("studio") and data["studio"] != "Independent":
        embed["fields"].append({"name": "Publisher", "value": data["studio"]})
    if extra.get("Tags"):
        embed["fields"].append({"name": "Tags", "value": extra["Tags"]})
    if extra.get("Learn More"):
        embed["fields"].append({"name": "Learn More", "value": extra["Learn More"]})
    return embed


def discord_new_item(item: BroadcastItem, total: int, topics: TopicMetadata) -> Dict[str, Any]:
    return {
        "content": f"New submission on the {ARCHIVE_NAME}!{_channel_mention(item.data, topics)}",
        "embeds": [_discord_embed(item.data, topics)],
    }


def discord_new_items(item: BroadcastItem, total: int, topics: TopicMetadata) -> Dict[str, Any]:
    return {
        "content": f"{total} new submissions, including:{_channel_mention(item.data, topics)}",
        "embeds": [_discord_embed(item.data, topics)],
    }


def _telegram_body(data: Dict[str, Any]) -> List[str]:
    title = html.escape(data.get("title", ""))
    url = html.escape(data.get("url", ""), quote=True)
    lines = [f'<a href="{url}"><b>{title}</b></a> ({html.escape(str(data.get("date", "")))})']
    byline = stringify_creators(data.get("creators") or [])
    if byline and byline != PLACEHOLDER_CREATOR_NAME:
        lines.append(f"<i>{html.escape(byline)}</i>")
    topic = _topic(data)
    if topic:
        lines.append(f"Topic: {html.escape(topic)}")
    if data.get("abstractNote"):
        lines.append(html.escape(truncate(data["abstractNote"], 200)))
    return lines


def telegram_new_item(item: BroadcastItem, total: int, topics: TopicMetadata) -> Dict[str, Any]:
    lines = [f"New submission on the {ARCHIVE_NAME}!", "", *_telegram_body(item.data)]
    return {"text": "\n".join(lines)}


def telegram_new_items(item: BroadcastItem, total: int, topics: TopicMetadata) -> Dict[str, Any]:
    lines = [f"{total} new submissions, including:", "", *_telegram_body(item.data)]
    return {"text": "\n".join(lines)}


def twitter_new_item(item: BroadcastItem, total: int, topics: TopicMetadata) -> Dict[str, Any]:
    data = item.data
    text = (
        f"New submission! Just added \"{data.get('title', '')}\" {data.get('url', '')} "
        f"({data.get('runningTime', '')}) to the ESOVDB. {TWEET_BOILERPLATE}"
    )
    hashtags = TOPIC_HASHTAGS.get(_topic(data) or "")
    return {"text": f"{text} {hashtags}" if hashtags else text}


def twitter_new_items(item: BroadcastItem, total: int, topics: TopicMetadata) -> Dict[str, Any]:
    return {"text": f"Just added {total} items to the ESOVDB. {TWEET_BOILERPLATE}"}


BROADCAST_VARIANTS: Dict[tuple[BroadcastChannel, BroadcastAction], Formatter] = {
    (BroadcastChannel.DISCORD, BroadcastAction.NEW_ITEM): discord_new_item,
    (BroadcastChannel.DISCORD, BroadcastAction.NEW_ITEMS): discord_new_items,
    (BroadcastChannel.TELEGRAM, BroadcastAction.NEW_ITEM): telegram_new_item,
    (BroadcastChannel.TELEGRAM, BroadcastAction.NEW_ITEMS): telegram_new_items,
    (BroadcastChannel.TWITTER, BroadcastAction.NEW_ITEM): twitter_new_item,
    (BroadcastChannel.TWITTER, BroadcastAction.NEW_ITEMS): twitter_new_items,
}


class BroadcastDispatcher:
    """
    Anuncia items recién creados en todos los canales registrados.

    Uso:
        dispatcher = BroadcastDispatcher({BroadcastChannel.DISCORD: discord_client.send})
        outcomes = await dispatcher.dispatch(items)
    """

    def __init__(
        self,
        senders: Dict[BroadcastChannel, Sender],
        *,
        topics: Optional[TopicMetadata] = None,
        rng: Optional[random.Random] = None,
    ):
        self.senders = senders
        self.topics = topics or {}
        self._rng = rng

    @staticmethod
    def select_action(count: int) -> BroadcastAction:
        return BroadcastAction.NEW_ITEM if count == 1 else BroadcastAction.NEW_ITEMS

    async def dispatch(self, items: Sequence[BroadcastItem]) -> List[BroadcastOutcome]:
        """Un intento por canal. Sin items no hay intentos."""
        if not items:
            return []

        action = self.select_action(len(items))
        representative = items[0] if len(items) == 1 else choose_representative(items, self._rng)
        outcomes: List[BroadcastOutcome] = []

        for channel, send in self.senders.items():
            formatter = BROADCAST_VARIANTS[(channel, action)]
            try:
                message = formatter(representative, len(items), self.topics)
                await send(action, message)
            except Exception as e:
                logger.warning(f"Difusión en {channel.value} ({action.value}) suprimida: {e}")
                outcomes.append(BroadcastOutcome(channel, action, DeliveryStatus.SUPPRESSED_ERROR, str(e)))
                continue
            logger.info(f"Difusión en {channel.value} ({action.value}) entregada")
            outcomes.append(BroadcastOutcome(channel, action, DeliveryStatus.DELIVERED))

        return outcomes
