from vnotes.storage.change_feed import ChangeFeed


def test_subscribers_hear_other_origins_only():
    feed = ChangeFeed()
    heard_a, heard_b = [], []
    feed.subscribe("vnotes-data", "a", heard_a.append)
    feed.subscribe("vnotes-data", "b", heard_b.append)

    event = feed.publish("vnotes-data", "a")

    assert heard_a == []
    assert heard_b == [event]
    assert event.key == "vnotes-data"
    assert event.ts.endswith("Z")


def test_events_are_keyed():
    feed = ChangeFeed()
    heard = []
    feed.subscribe("theme", "a", heard.append)
    assert feed.publish("vnotes-data", "b") is None
    assert heard == []


def test_cancelled_subscription_is_removed():
    feed = ChangeFeed()
    heard = []
    sub = feed.subscribe("vnotes-data", "a", heard.append)
    sub.cancel()
    sub.cancel()

    feed.publish("vnotes-data", "b")
    assert heard == []
    assert feed.subscriber_count("vnotes-data") == 0


def test_failing_listener_does_not_break_publisher():
    feed = ChangeFeed()
    heard = []

    def boom(event):
        raise RuntimeError("listener failed")

    feed.subscribe("vnotes-data", "a", boom)
    feed.subscribe("vnotes-data", "b", heard.append)
    feed.publish("vnotes-data", "c")
    assert len(heard) == 1
