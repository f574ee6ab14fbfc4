"""
Unit tests for the subscription registry.
Tests id allocation, duplicate handling and consistency on transport failures.
"""
import threading
import unittest
from unittest.mock import Mock

from stomp_console.errors import AlreadySubscribed, InvalidDestination, NotSubscribed, TransportError
from stomp_console.protocol import BrokerClient
from stomp_console.subscription import SubscriptionRegistry


class TestSubscriptionRegistry(unittest.TestCase):
    """Test cases for SubscriptionRegistry"""

    def setUp(self):
        self.client = Mock(spec=BrokerClient)
        self.registry = SubscriptionRegistry(self.client)

    def test_first_subscription_gets_id_zero(self):
        self.assertEqual(self.registry.subscribe('topic', 'foo'), 0)
        self.assertEqual(self.registry.list(), ['/topic/foo'])

    def test_ids_grow_across_destinations(self):
        ids = [
            self.registry.subscribe('topic', 'foo'),
            self.registry.subscribe('queue', 'bar'),
            self.registry.subscribe('exchange', 'baz'),
        ]
        self.assertEqual(ids, [0, 1, 2])
        self.assertEqual(self.registry.list(), ['/topic/foo', '/queue/bar', '/exchange/baz'])

    def test_subscribe_sends_id_with_headers(self):
        self.registry.subscribe('queue', 'orders', {'selector': "type='a'"})
        self.client.subscribe.assert_called_once_with('/queue/orders', {'selector': "type='a'", 'id': 0})

    def test_allocated_id_wins_over_caller_id(self):
        self.registry.subscribe('topic', 'foo', {'id': 'custom'})
        self.client.subscribe.assert_called_once_with('/topic/foo', {'id': 0})

    def test_duplicate_subscription_rejected(self):
        self.registry.subscribe('topic', 'foo')

        with self.assertRaises(AlreadySubscribed):
            self.registry.subscribe('topic', 'foo')

        self.assertEqual(self.registry.list(), ['/topic/foo'])
        self.assertEqual(self.client.subscribe.call_count, 1)
        # The failed attempt does not consume an id
        self.assertEqual(self.registry.subscribe('topic', 'bar'), 1)

    def test_same_name_different_type_is_distinct(self):
        self.assertEqual(self.registry.subscribe('topic', 'foo'), 0)
        self.assertEqual(self.registry.subscribe('queue', 'foo'), 1)

    def test_unsubscribe_unknown_destination(self):
        self.registry.subscribe('topic', 'foo')

        with self.assertRaises(NotSubscribed):
            self.registry.unsubscribe('topic', 'bar')

        self.client.unsubscribe.assert_not_called()
        self.assertEqual(self.registry.list(), ['/topic/foo'])

    def test_unsubscribe_uses_stored_id(self):
        self.registry.subscribe('topic', 'foo')
        self.registry.subscribe('topic', 'bar')

        self.registry.unsubscribe('topic', 'bar', {'receipt': 'r-1'})

        self.client.unsubscribe.assert_called_once_with('/topic/bar', {'receipt': 'r-1', 'id': 1})
        self.assertEqual(self.registry.list(), ['/topic/foo'])

    def test_resubscribe_allocates_fresh_id(self):
        first = self.registry.subscribe('topic', 'foo')
        self.registry.subscribe('queue', 'other')
        self.registry.unsubscribe('topic', 'foo')

        self.assertNotIn('/topic/foo', self.registry.list())

        again = self.registry.subscribe('topic', 'foo')
        self.assertGreater(again, first)
        self.assertEqual(again, 2)

    def test_subscribe_transport_failure_leaves_registry_unchanged(self):
        self.client.subscribe.side_effect = TransportError("not connected")

        with self.assertRaises(TransportError):
            self.registry.subscribe('topic', 'foo')

        self.assertEqual(self.registry.list(), [])
        self.client.subscribe.side_effect = None
        self.assertEqual(self.registry.subscribe('topic', 'foo'), 0)

    def test_unsubscribe_transport_failure_keeps_entry(self):
        self.registry.subscribe('topic', 'foo')
        self.client.unsubscribe.side_effect = TransportError("broken pipe")

        with self.assertRaises(TransportError):
            self.registry.unsubscribe('topic', 'foo')

        self.assertIn('/topic/foo', self.registry)
        self.assertEqual(self.registry.get('/topic/foo').subscription_id, 0)

    def test_invalid_destination_type(self):
        with self.assertRaises(InvalidDestination):
            self.registry.subscribe('mailbox', 'foo')
        self.client.subscribe.assert_not_called()

    def test_list_is_a_snapshot(self):
        self.registry.subscribe('topic', 'foo')
        snapshot = self.registry.list()
        self.registry.subscribe('topic', 'bar')
        self.assertEqual(snapshot, ['/topic/foo'])

    def test_readers_not_blocked_during_broker_call(self):
        """list() answers while a subscribe is waiting on the broker"""
        entered = threading.Event()
        release = threading.Event()

        def slow_subscribe(destination, headers):
            entered.set()
            release.wait(5)

        self.client.subscribe.side_effect = slow_subscribe
        worker = threading.Thread(target=self.registry.subscribe, args=('topic', 'slow'))
        worker.start()
        try:
            self.assertTrue(entered.wait(5))
            self.assertEqual(self.registry.list(), [])
        finally:
            release.set()
            worker.join(5)

        self.assertEqual(self.registry.list(), ['/topic/slow'])

    def test_concurrent_duplicate_subscribe_reaches_broker_once(self):
        """A second subscribe waits for the first broker round trip, then is rejected"""
        entered = threading.Event()
        release = threading.Event()

        def slow_subscribe(destination, headers):
            entered.set()
            release.wait(5)

        self.client.subscribe.side_effect = slow_subscribe
        errors = []

        def second():
            try:
                self.registry.subscribe('topic', 'dup')
            except AlreadySubscribed as e:
                errors.append(e)

        first = threading.Thread(target=self.registry.subscribe, args=('topic', 'dup'))
        first.start()
        self.assertTrue(entered.wait(5))
        other = threading.Thread(target=second)
        other.start()
        try:
            self.assertEqual(self.client.subscribe.call_count, 1)
        finally:
            release.set()
            first.join(5)
            other.join(5)

        self.assertEqual(self.client.subscribe.call_count, 1)
        self.assertEqual(len(errors), 1)
        self.assertEqual(self.registry.list(), ['/topic/dup'])


if __name__ == '__main__':
    unittest.main()
