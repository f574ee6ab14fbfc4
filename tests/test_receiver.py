"""
Unit tests for the receive loop.
Tests rendering, callback dispatch and the handling of transient and terminal errors.
"""
import threading
import unittest
from unittest.mock import Mock

from stomp_console.errors import ConnectionClosed, ReceiveError
from stomp_console.message import Message
from stomp_console.options import SessionOptions
from stomp_console.protocol import BrokerClient
from stomp_console.receiver import LoopState, ReceiveLoop


def scripted_client(*outcomes):
    """Client whose receive() returns or raises the given outcomes, then closes"""
    client = Mock(spec=BrokerClient)
    client.receive.side_effect = list(outcomes) + [ConnectionClosed("closed by shutdown")]
    return client


class TestReceiveLoop(unittest.TestCase):
    """Test cases for ReceiveLoop"""

    def setUp(self):
        self.lines = []
        self.options = SessionOptions(long_format="<<%{time}:%{source}>> %{body}",
                                      short_format="%{source}: %{body}")

    def make_loop(self, client, **kwargs):
        return ReceiveLoop(client, self.options, endpoint='localhost:61613',
                           output=self.lines.append, **kwargs)

    def test_messages_rendered_and_dispatched(self):
        received = []
        self.options.set_callback(received.append)
        client = scripted_client(Message('/topic/a', 'one\n'), Message('/queue/b', 'two'))
        loop = self.make_loop(client)

        loop.run()

        self.assertEqual(self.lines, ['/topic/a: one', '/queue/b: two'])
        self.assertEqual([m.body for m in received], ['one\n', 'two'])
        self.assertTrue(all(m.received_at is not None for m in received))
        self.assertEqual(loop.received_count, 2)

    def test_verbose_uses_long_format(self):
        self.options.set_verbose(True)
        client = scripted_client(Message('/topic/a', 'hi'))

        self.make_loop(client).run()

        self.assertRegex(self.lines[0], r'^<<\d\d:\d\d:\d\d:/topic/a>> hi$')

    def test_receive_error_is_logged_and_loop_continues(self):
        client = scripted_client(ReceiveError("Broker error: bad frame"), Message('/topic/a', 'after'))
        loop = self.make_loop(client)

        with self.assertLogs('stomp_console.receiver', level='ERROR') as log:
            loop.run()

        self.assertEqual(client.receive.call_count, 3)
        self.assertEqual(self.lines, ['/topic/a: after'])
        self.assertEqual(loop.error_count, 1)
        self.assertTrue(any('localhost:61613' in line and 'bad frame' in line for line in log.output))

    def test_stop_signal_terminates(self):
        client = scripted_client()
        stopped_with = []
        loop = self.make_loop(client, on_stop=stopped_with.append)

        self.assertEqual(loop.state, LoopState.RUNNING)
        loop.run()

        self.assertEqual(loop.state, LoopState.STOPPED)
        self.assertTrue(loop.stopped)
        self.assertIsInstance(loop.stop_reason, ConnectionClosed)
        self.assertEqual(stopped_with, [loop.stop_reason])
        self.assertEqual(client.receive.call_count, 1)

    def test_callback_error_does_not_stop_loop(self):
        def broken(message):
            raise RuntimeError("boom")

        self.options.set_callback(broken)
        client = scripted_client(Message('/topic/a', 'one'), Message('/topic/a', 'two'))
        loop = self.make_loop(client)

        with self.assertLogs('stomp_console.receiver', level='ERROR'):
            loop.run()

        self.assertEqual(self.lines, ['/topic/a: one', '/topic/a: two'])

    def test_callback_swap_takes_effect(self):
        first, second = [], []
        self.options.set_callback(first.append)

        client = Mock(spec=BrokerClient)
        client.receive.side_effect = [
            Message('/topic/a', 'one'),
            ConnectionClosed("done"),
        ]
        loop = self.make_loop(client)
        loop.step()
        self.options.set_callback(second.append)
        client.receive.side_effect = [Message('/topic/a', 'two'), ConnectionClosed("done")]
        loop.run()

        self.assertEqual([m.body for m in first], ['one'])
        self.assertEqual([m.body for m in second], ['two'])

    def test_background_thread_stops_on_close(self):
        release = threading.Event()

        def blocking_receive():
            release.wait(5)
            raise ConnectionClosed("closed by shutdown")

        client = Mock(spec=BrokerClient)
        client.receive.side_effect = blocking_receive
        loop = self.make_loop(client)

        loop.start()
        self.assertTrue(loop.started)
        self.assertFalse(loop.join(0.05))

        release.set()
        self.assertTrue(loop.join(5))
        self.assertEqual(loop.state, LoopState.STOPPED)


if __name__ == '__main__':
    unittest.main()
