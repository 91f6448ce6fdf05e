from datetime import datetime, timedelta, timezone

import pytest

from tramites.errors import NotFound, ValidationError
from tramites.models import PricingNotification, SystemNotification
from tramites.notifications import NotificationAggregator

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _pricing(name, *, created_at=NOW):
    return PricingNotification(
        kind="missingPrice",
        procedure_name=name,
        authority="ANMAT",
        message=f"{name} sin precio",
        created_at=created_at,
    )


def _system(title, *, created_at=NOW):
    return SystemNotification(kind="info", title=title, message=title, created_at=created_at)


def test_feed_is_newest_first_with_stable_ties():
    older = _pricing("RNE", created_at=NOW - timedelta(hours=1))
    first = _system("primero")
    second = _pricing("CLV")
    feed = NotificationAggregator([older, first, second])

    assert [item.id for item in feed.feed()] == [second.id, first.id, older.id]


def test_feed_filters():
    pricing_item = _pricing("RNE")
    system_item = _system("Proceso")
    feed = NotificationAggregator([pricing_item, system_item])
    feed.mark_read(system_item.id)

    assert feed.feed(source="pricing") == [pricing_item]
    assert feed.feed(unread_only=True) == [pricing_item]
    assert feed.pricing() == [pricing_item]
    assert feed.system() == [system_item]


def test_read_state():
    feed = NotificationAggregator([_pricing("RNE"), _pricing("CLV"), _system("x")])
    target = feed.feed()[0]

    assert feed.unread_count() == 3
    assert feed.mark_read(target.id).read is True
    assert feed.unread_count() == 2
    assert feed.mark_all_read() == 2
    assert feed.mark_all_read() == 0
    assert feed.unread_count() == 0


def test_unknown_and_duplicate_ids():
    item = _system("x")
    feed = NotificationAggregator([item])

    with pytest.raises(ValidationError):
        feed.add(item)
    with pytest.raises(NotFound):
        feed.mark_read("missing")

    feed.remove(item.id)
    assert len(feed) == 0


def test_serialised_feed_keeps_notification_types():
    feed = NotificationAggregator([_pricing("RNE"), _system("x")])

    restored = NotificationAggregator.from_dict(feed.to_dict())

    assert [type(item) for item in restored.feed()] == [SystemNotification, PricingNotification]
