"""
Unit tests for session options.
Tests template selection, setters and concurrent access.
"""
import threading
import unittest

from stomp_console.config import DEFAULT_LONG_FORMAT, DEFAULT_SHORT_FORMAT, Config
from stomp_console.options import SessionOptions, default_callback


class TestSessionOptions(unittest.TestCase):
    """Test cases for SessionOptions"""

    def setUp(self):
        self.options = SessionOptions()

    def test_defaults(self):
        snapshot = self.options.snapshot()
        self.assertFalse(snapshot.verbose)
        self.assertEqual(snapshot.long_format, DEFAULT_LONG_FORMAT)
        self.assertEqual(snapshot.short_format, DEFAULT_SHORT_FORMAT)
        self.assertIs(snapshot.callback, default_callback)
        self.assertEqual(self.options.current_template(), DEFAULT_SHORT_FORMAT)

    def test_toggle_keeps_custom_templates(self):
        self.options.set_long_format("L %{body}")
        self.options.set_short_format("S %{body}")

        self.assertEqual(self.options.current_template(), "S %{body}")
        self.assertTrue(self.options.toggle_verbose())
        self.assertEqual(self.options.current_template(), "L %{body}")
        self.assertFalse(self.options.toggle_verbose())
        self.assertEqual(self.options.current_template(), "S %{body}")

    def test_set_verbose(self):
        self.options.set_verbose(True)
        self.assertTrue(self.options.verbose)
        self.assertEqual(self.options.current_template(), DEFAULT_LONG_FORMAT)
        self.options.set_verbose(False)
        self.assertEqual(self.options.current_template(), DEFAULT_SHORT_FORMAT)

    def test_snapshot_template_follows_verbose(self):
        self.options.set_verbose(True)
        self.assertEqual(self.options.snapshot().template, DEFAULT_LONG_FORMAT)

    def test_set_callback(self):
        received = []
        self.options.set_callback(received.append)
        self.options.snapshot().callback('message')
        self.assertEqual(received, ['message'])

        self.options.reset_callback()
        self.assertIs(self.options.snapshot().callback, default_callback)

    def test_set_callback_rejects_non_callable(self):
        with self.assertRaises(TypeError):
            self.options.set_callback("not callable")
        self.assertIs(self.options.snapshot().callback, default_callback)

    def test_set_format_rejects_non_string(self):
        with self.assertRaises(TypeError):
            self.options.set_long_format(None)

    def test_from_config(self):
        config = Config()
        config.set('display.verbose', True)
        config.set('display.long_format', "%{source} %{body}")
        options = SessionOptions.from_config(config)
        self.assertEqual(options.current_template(), "%{source} %{body}")

    def test_concurrent_toggling_never_tears(self):
        """Readers only ever see whole templates that some writer configured"""
        long_templates = ["L" * 512 + " %{body}", "l" * 1024 + " %{source}"]
        short_templates = ["S" * 512 + " %{body}", "s" * 1024 + " %{time}"]
        allowed_long = set(long_templates) | {DEFAULT_LONG_FORMAT}
        allowed_short = set(short_templates) | {DEFAULT_SHORT_FORMAT}
        stop = threading.Event()
        failures = []

        def writer():
            i = 0
            while not stop.is_set():
                self.options.set_long_format(long_templates[i % 2])
                self.options.set_short_format(short_templates[i % 2])
                self.options.toggle_verbose()
                i += 1

        def reader():
            for _ in range(20000):
                snapshot = self.options.snapshot()
                if snapshot.long_format not in allowed_long or snapshot.short_format not in allowed_short:
                    failures.append(snapshot)
                template = snapshot.template
                expected = allowed_long if snapshot.verbose else allowed_short
                if template not in expected:
                    failures.append(snapshot)
                if self.options.current_template() not in allowed_long | allowed_short:
                    failures.append(template)

        writers = [threading.Thread(target=writer) for _ in range(2)]
        readers = [threading.Thread(target=reader) for _ in range(2)]
        for thread in writers + readers:
            thread.start()
        for thread in readers:
            thread.join()
        stop.set()
        for thread in writers:
            thread.join()

        self.assertEqual(failures, [])


if __name__ == '__main__':
    unittest.main()
