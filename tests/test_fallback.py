import random
from datetime import datetime, timezone

import pytest
import requests

from conftest import FakeResponse
from workshop_monitor import fallback
from workshop_monitor.models import Channel
from workshop_monitor.utils import random_identity

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _utc(*args) -> int:
    return int(datetime(*args, tzinfo=timezone.utc).timestamp())


# ---------------------------------------------------------------------------
# Date parsing
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "text, expected",
    [
        # March from the 8th is daylight (-07:00)
        ("15 Mar @ 2:30pm", _utc(2024, 3, 15, 21, 30)),
        # November after the first week is standard (-08:00)
        ("15 Nov @ 2:30pm", _utc(2024, 11, 15, 22, 30)),
        ("3 Mar, 2023 @ 12:05am", _utc(2023, 3, 3, 8, 5)),
        ("8 Mar, 2023 @ 12:05am", _utc(2023, 3, 8, 7, 5)),
        ("1 Nov @ 9:00am", _utc(2024, 11, 1, 16, 0)),
        ("31 Oct, 2019 @ 11:59pm", _utc(2019, 11, 1, 6, 59)),
        ("7 Jul, 2021 @ 12:00pm", _utc(2021, 7, 7, 19, 0)),
        ("2 Jan, 2020 @ 1:15AM", _utc(2020, 1, 2, 9, 15)),
        ("14 September, 2022 @ 6:00 pm", _utc(2022, 9, 15, 1, 0)),
    ],
)
def test_parse_steam_date(text, expected):
    assert fallback.parse_steam_date(text, now=NOW) == expected


def test_parse_steam_date_defaults_to_current_year():
    got = fallback.parse_steam_date("1 Feb @ 10:00am")
    this_year = datetime.now(timezone.utc).year
    assert got == _utc(this_year, 2, 1, 18, 0)


@pytest.mark.parametrize(
    "text",
    ["", "yesterday", "15 Foo @ 2:30pm", "31 Feb, 2023 @ 1:00pm", "15 Mar @ 13:30pm", "15 Mar @ 2:75pm", "15 Mar 2:30pm"],
)
def test_parse_steam_date_unparseable(text):
    assert fallback.parse_steam_date(text, now=NOW) is None


# ---------------------------------------------------------------------------
# Document classification
# ---------------------------------------------------------------------------

def _item_page(title_div=True, heading="Steam Workshop::Cool Map", stats=None, extra=""):
    stats = stats if stats is not None else ["12.345 MB", "1 Jan, 2022 @ 10:00am", "15 Mar, 2023 @ 2:30pm"]
    stat_html = "".join(f'<div class="detailsStatRight">{s}</div>' for s in stats)
    title_html = '<div class="workshopItemTitle">Cool Map</div>' if title_div else ""
    return (
        f"<html><head><title>{heading}</title>"
        '<link rel="image_src" href="https://images.steamusercontent.com/ugc/abc/">'
        f"</head><body>{title_html}"
        f'<div class="detailsStatsContainerRight">{stat_html}</div>{extra}</body></html>'
    )


ERROR_PAGE = (
    "<html><head><title>Steam Community :: Error</title></head><body>"
    '<div class="error_ctn"><h2>Error</h2><h3>There was a problem accessing the item.  Please try again.</h3></div>'
    "</body></html>"
)


def test_parse_document_item_page():
    rec = fallback.parse_document("123", _item_page(), result=9, now=NOW)

    assert rec.channel is Channel.FALLBACK
    assert rec.title == "Cool Map"
    assert rec.preview_url == "https://images.steamusercontent.com/ugc/abc/"
    # Updated (last date) wins over Posted
    assert rec.time_updated == _utc(2023, 3, 15, 21, 30)
    assert rec.result == 9


def test_parse_document_prefers_numeric_timestamp_attribute():
    html = _item_page(extra='<span data-timestamp="1690000000"></span>')
    assert fallback.parse_document("1", html, now=NOW).time_updated == 1690000000


def test_parse_document_page_heading_fallback():
    rec = fallback.parse_document("1", _item_page(title_div=False, heading="Steam Workshop::Other Title"), now=NOW)
    assert rec.channel is Channel.FALLBACK
    assert rec.title == "Other Title"


def test_parse_document_unparseable_date_keeps_item():
    rec = fallback.parse_document("1", _item_page(stats=["1 MB", "sometime"]), now=NOW)
    assert rec.channel is Channel.FALLBACK
    assert rec.time_updated is None


def test_parse_document_error_page():
    rec = fallback.parse_document("1", ERROR_PAGE, now=NOW)
    assert rec.channel is Channel.UNAVAILABLE
    assert rec.title == fallback.ERROR_PAGE_TITLE
    assert rec.time_updated is None


def test_parse_document_large_page_without_title_is_restricted():
    html = _item_page(title_div=False, heading="Steam Community", extra="<div>" + "x" * 6000 + "</div>")
    rec = fallback.parse_document("1", html, now=NOW)
    assert rec.channel is Channel.FALLBACK
    assert rec.title == fallback.RESTRICTED_TITLE
    assert rec.preview_url is not None


def test_parse_document_tiny_page_without_title_is_unavailable():
    rec = fallback.parse_document("1", "<html><body>nothing</body></html>", now=NOW)
    assert rec.channel is Channel.UNAVAILABLE
    assert rec.title == fallback.ERROR_PAGE_TITLE


@pytest.mark.parametrize(
    "filler, channel",
    [
        ("é" * 2500, Channel.FALLBACK),  # under 5000 chars, over 5000 bytes
        ("x" * 4900, Channel.UNAVAILABLE),
    ],
)
def test_restricted_threshold_counts_bytes(filler, channel):
    html = f"<html><body><div>{filler}</div></body></html>"
    rec = fallback.parse_document("1", html, now=NOW)
    assert rec.channel is channel


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------

def _resolve(handler, fake_session_factory, **kwargs):
    sleeps = []
    factory = fake_session_factory(handler)
    rec = fallback.resolve_item(
        "555",
        result=9,
        community_base="https://community.test",
        session_factory=factory,
        delay=1.0,
        sleep=sleeps.append,
        now=NOW,
        **kwargs,
    )
    return rec, factory.created, sleeps


def test_resolve_item_warms_up_then_fetches_page(fake_session_factory):
    def handle(method, url, kwargs):
        if url == "https://community.test/":
            return FakeResponse(text="<html>home</html>")
        return FakeResponse(text=_item_page())

    rec, sessions, sleeps = _resolve(handle, fake_session_factory)

    assert rec.channel is Channel.FALLBACK
    assert rec.title == "Cool Map"
    assert len(sessions) == 1 and sessions[0].closed
    calls = sessions[0].calls
    assert [c[1] for c in calls] == ["https://community.test/", "https://community.test/sharedfiles/filedetails/"]
    assert calls[1][2]["params"] == {"id": "555"}
    assert len(sleeps) == 1 and 1.0 <= sleeps[0] <= 1.5


@pytest.mark.parametrize(
    "fail_on, response",
    [
        ("warm", requests.ConnectionError("dns")),
        ("page", requests.Timeout("slow")),
        ("page", FakeResponse(status_code=503)),
    ],
)
def test_resolve_item_transport_failure_is_unavailable(fake_session_factory, fail_on, response):
    def handle(method, url, kwargs):
        is_warm = url == "https://community.test/"
        if (fail_on == "warm") == is_warm:
            return response
        return FakeResponse(text=_item_page())

    rec, sessions, _ = _resolve(handle, fake_session_factory)

    assert rec.channel is Channel.UNAVAILABLE
    assert rec.title == fallback.UNAVAILABLE_TITLE
    assert rec.time_updated is None
    assert rec.result == 9
    assert sessions[0].closed


def test_random_identity_varies_fingerprint():
    a = random_identity("https://community.test", rng=random.Random(1))
    seen = {tuple(sorted(random_identity("https://community.test", rng=random.Random(s)).items())) for s in range(10)}

    assert a["Referer"] == "https://community.test/"
    assert {"User-Agent", "Accept-Language", "sec-ch-ua"} <= set(a)
    assert len(seen) > 1
