"""Static rule tables for source discovery.

Data only: extend the tables here rather than adding branches to
`services.discovery`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import FrozenSet, Pattern, Tuple


@dataclass(slots=True, frozen=True)
class AggregatorRule:
    pattern: Pattern[str]
    name: str
    priority: int


# Priority for sources that only pass the keyword heuristic
DEFAULT_SOURCE_PRIORITY: int = 30

# Known event aggregators, prioritised by extraction success rate.
# Checked in order; the first match wins.
AGGREGATOR_RULES: Tuple[AggregatorRule, ...] = (
    AggregatorRule(re.compile(r"feverup\.com", re.I), "Feverup", 75),
    AggregatorRule(re.compile(r"ticketone\.it", re.I), "Ticketone", 80),
    AggregatorRule(re.compile(r"ticketsms\.it", re.I), "TicketSMS", 80),
    AggregatorRule(re.compile(r"teatro\.it", re.I), "Teatro.it", 70),
    AggregatorRule(re.compile(r"palermotoday\.it", re.I), "PalermoToday", 85),
    AggregatorRule(re.compile(r"palermoviva\.it", re.I), "Palermoviva", 60),
    AggregatorRule(re.compile(r"balarm\.it", re.I), "Balarm", 75),
    AggregatorRule(re.compile(r"terradamare\.org", re.I), "Terradamare", 40),
    AggregatorRule(re.compile(r"itinerarinellarte\.it", re.I), "Itinerarinellarte", 35),
    AggregatorRule(re.compile(r"eventbrite\.(com|it)", re.I), "Eventbrite", 70),
    AggregatorRule(re.compile(r"(?://|\.)ra\.co(?:/|$)", re.I), "Resident Advisor", 100),
    AggregatorRule(re.compile(r"dice\.fm", re.I), "Dice", 60),
    AggregatorRule(re.compile(r"xceed\.me", re.I), "Xceed", 50),
    AggregatorRule(re.compile(r"songkick\.com", re.I), "Songkick", 40),
    AggregatorRule(re.compile(r"bandsintown\.com", re.I), "Bandsintown", 40),
)

# Keywords in a URL or page title that suggest an event listing
EVENT_PAGE_PATTERNS: Tuple[Pattern[str], ...] = tuple(
    re.compile(keyword, re.I)
    for keyword in (
        r"eventi",
        r"events",
        r"concerti",
        r"concerts",
        r"nightlife",
        r"clubbing",
        r"discoteca",
        r"calendario",
        r"programma",
        r"spettacoli",
        r"teatro",
        r"mostre",
        r"appuntamenti",
        r"cosa-fare",
        r"agenda",
        r"biglietti",
        r"tickets",
    )
)

# Never tracked: login walls, marketplaces, maps/search engines, review sites.
# A hostname matches when it equals an entry or is a subdomain of one.
BLOCKED_DOMAINS: FrozenSet[str] = frozenset(
    {
        "facebook.com",
        "instagram.com",
        "twitter.com",
        "x.com",
        "reddit.com",
        "youtube.com",
        "tiktok.com",
        "linkedin.com",
        "pinterest.com",
        "tripadvisor.it",
        "tripadvisor.com",
        "yelp.com",
        "yelp.it",
        "booking.com",
        "airbnb.com",
        "expedia.com",
        "google.com",
        "maps.google.com",
        "wikipedia.org",
        "amazon.com",
        "amazon.it",
    }
)

# Static/guide content rather than event listings
BLOCKED_URL_PATTERNS: Tuple[Pattern[str], ...] = tuple(
    re.compile(pattern, re.I)
    for pattern in (
        r"/magazine/",
        r"/blog/",
        r"/article/",
        r"/news/",
        r"/guide/",
        r"/guida/",
        r"/comments/",
        r"/search\?",
        r"/find_desc=",
        r"/Attractions-",
        r"prontopro\.it",
        r"area-stampa",
        r"/groups/",
        r"nightlife-pubs-and-fun",
        r"palermos-nightlife/?$",
        r"nightlife-in-palermo-events/?$",
        r"palermo-welcome-nightlife",
        r"palermo-welcome-news",
    )
)

# Search battery; `{metro}` is substituted with the target metro area
SEARCH_QUERY_TEMPLATES: Tuple[str, ...] = (
    # general
    "{metro} eventi questa settimana",
    "{metro} eventi oggi",
    "{metro} cosa fare stasera",
    # music & nightlife
    "{metro} concerti",
    "{metro} discoteche club",
    "{metro} nightlife events",
    "{metro} serate dj",
    # culture & arts
    "{metro} eventi culturali",
    "{metro} mostre musei",
    "{metro} teatro spettacoli",
    # known aggregators
    "site:feverup.com {metro}",
    "site:eventbrite.it {metro}",
    # venue programming
    "{metro} locali eventi programmazione",
    "{metro} venue eventi calendario",
)

__all__ = [
    "AggregatorRule",
    "DEFAULT_SOURCE_PRIORITY",
    "AGGREGATOR_RULES",
    "EVENT_PAGE_PATTERNS",
    "BLOCKED_DOMAINS",
    "BLOCKED_URL_PATTERNS",
    "SEARCH_QUERY_TEMPLATES",
]
