import threading

import pytest

from compctl.runtime.notifier import ShutdownNotifier
from compctl.runtime.watch_contracts import SubscriptionState


@pytest.mark.parametrize("count", [0, 1, 5, 50])
def test_fire_notifies_every_pending_subscriber_once(notifier, count):
    subscriptions = [notifier.subscribe() for _ in range(count)]
    deliveries = []
    for subscription in subscriptions:
        subscription.add_done_callback(deliveries.append)

    notified = notifier.fire()

    assert notified == count
    assert len(notifier) == 0
    assert deliveries == subscriptions
    assert all(sub.state == SubscriptionState.NOTIFIED for sub in subscriptions)
    assert all(sub.wait(timeout=0) for sub in subscriptions)


def test_second_fire_delivers_nothing(notifier):
    subscription = notifier.subscribe()
    deliveries = []
    subscription.add_done_callback(deliveries.append)

    assert notifier.fire() == 1
    assert notifier.fire() == 0

    assert deliveries == [subscription]
    assert notifier.fired is True


def test_cancel_before_shutdown_removes_entry_and_skips_notification(notifier):
    baseline = len(notifier)
    subscription = notifier.subscribe()
    assert len(notifier) == baseline + 1

    assert notifier.cancel(subscription) is True

    assert len(notifier) == baseline
    assert subscription.state == SubscriptionState.CANCELLED
    assert notifier.fire() == 0
    assert subscription.wait(timeout=0) is False


def test_cancel_after_notification_is_a_noop(notifier):
    subscription = notifier.subscribe()
    notifier.fire()

    assert notifier.cancel(subscription) is False
    assert subscription.state == SubscriptionState.NOTIFIED


def test_cancel_twice_is_a_noop(notifier):
    subscription = notifier.subscribe()

    assert notifier.cancel(subscription) is True
    assert notifier.cancel(subscription) is False


def test_late_subscriber_is_born_notified(notifier):
    notifier.fire()

    subscription = notifier.subscribe()

    assert subscription.state == SubscriptionState.NOTIFIED
    assert subscription.done()
    assert len(notifier) == 0


def test_done_callback_on_terminal_subscription_runs_immediately(notifier):
    subscription = notifier.subscribe()
    notifier.fire()
    seen = []

    subscription.add_done_callback(seen.append)

    assert seen == [subscription]


def test_failing_callback_does_not_block_other_callbacks(notifier):
    subscription = notifier.subscribe()
    seen = []

    def explode(_):
        raise RuntimeError("boom")

    subscription.add_done_callback(explode)
    subscription.add_done_callback(seen.append)

    notifier.fire()

    assert seen == [subscription]


def test_wait_blocks_until_fire_from_another_thread(notifier):
    subscription = notifier.subscribe()
    results = []
    waiter = threading.Thread(target=lambda: results.append(subscription.wait(timeout=2)))
    waiter.start()

    notifier.fire()
    waiter.join(timeout=2)

    assert results == [True]


def test_registration_racing_with_fire_always_settles():
    notifier = ShutdownNotifier()
    start = threading.Barrier(9)
    subscriptions = []
    lock = threading.Lock()

    def register():
        start.wait()
        for _ in range(200):
            subscription = notifier.subscribe()
            with lock:
                subscriptions.append(subscription)

    def trigger():
        start.wait()
        notifier.fire()

    threads = [threading.Thread(target=register) for _ in range(8)]
    threads.append(threading.Thread(target=trigger))
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert len(subscriptions) == 1600
    assert len(notifier) == 0
    assert all(sub.state == SubscriptionState.NOTIFIED for sub in subscriptions)
    assert all(sub.done() for sub in subscriptions)
