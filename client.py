"""
Interactive console for a STOMP message broker.
Subscribe to topics, queues and exchanges, publish messages and watch
everything that arrives while you type.
"""
import argparse
import cmd
import logging
import shlex
import sys
from typing import Dict, List, Optional

from stomp_console.commands import CommandDispatcher, CommandResult
from stomp_console.config import Config, initialize_config
from stomp_console.errors import ConnectError
from stomp_console.options import SessionOptions
from stomp_console.protocol import StompConnection
from stomp_console.session import open_session


logger = logging.getLogger(__name__)


def parse_headers(tokens: List[str]) -> Dict[str, str]:
    """Turn key=value tokens into a header dict"""
    headers = {}
    for token in tokens:
        key, sep, value = token.partition('=')
        if not sep or not key:
            raise ValueError(f"Header '{token}' must look like key=value")
        headers[key] = value
    return headers


class BrokerConsole(cmd.Cmd):
    """Line-oriented front end for a command dispatcher"""

    intro = "Connected. Type 'help' for commands, 'quit' to leave."
    prompt = 'stomp> '

    def __init__(self, dispatcher: CommandDispatcher, stdin=None, stdout=None):
        super().__init__(stdin=stdin, stdout=stdout)
        self.dispatcher = dispatcher

    # Subscriptions

    def do_subscribe(self, arg):
        """subscribe <topic|queue|exchange> <name> [key=value ...]"""
        self._destination_command('subscribe', arg)

    def do_unsubscribe(self, arg):
        """unsubscribe <topic|queue|exchange> <name> [key=value ...]"""
        self._destination_command('unsubscribe', arg)

    def do_subscriptions(self, arg):
        """subscriptions: list active subscriptions"""
        self._report(self.dispatcher.invoke('subscriptions'))

    # Publishing

    def do_topic(self, arg):
        """topic <name> <body> [key=value ...]"""
        self._publish_command('topic', arg)

    def do_queue(self, arg):
        """queue <name> <body> [key=value ...]"""
        self._publish_command('queue', arg)

    def do_exchange(self, arg):
        """exchange <name> <body> [key=value ...]"""
        self._publish_command('exchange', arg)

    # Display options

    def do_verbose(self, arg):
        """verbose [on|off]: set or toggle the long display format"""
        word = arg.strip()
        if not word:
            return self._report(self.dispatcher.invoke('verbose'))
        result = self.dispatcher.invoke('verbose', word)
        if result.ok:
            self._report(result)
        else:
            self._usage('verbose')

    def do_long_format(self, arg):
        """long_format <template>: placeholders %{time} %{source} %{body}"""
        self._template_command('long_format', arg)

    def do_short_format(self, arg):
        """short_format <template>: placeholders %{time} %{source} %{body}"""
        self._template_command('short_format', arg)

    def do_callback(self, arg):
        """callback <module:function>: call a function with every received message"""
        reference = arg.strip()
        if not reference:
            return self._usage('callback')
        self._report(self.dispatcher.invoke('callback', reference))

    def do_reset_callback(self, arg):
        """reset_callback: stop handing messages to a callback"""
        self._report(self.dispatcher.invoke('reset_callback'))

    def do_options(self, arg):
        """options: show the display options"""
        self._report(self.dispatcher.invoke('options'))

    # Leaving

    def do_quit(self, arg):
        """quit: disconnect and leave"""
        return True

    do_exit = do_quit

    def do_EOF(self, arg):
        self.stdout.write('\n')
        return True

    def emptyline(self):
        pass

    def default(self, line):
        self.stdout.write(f"Unknown command: {line.split()[0]}\n")

    def postcmd(self, stop, line):
        session = self.dispatcher.session
        if session.stopped:
            self.stdout.write(f"Connection closed: {session.stop_reason}\n")
            return True
        return stop

    def _destination_command(self, name: str, arg: str) -> None:
        tokens = self._split(name, arg)
        if tokens is None or len(tokens) < 2:
            return self._usage(name)
        kind, destination, *rest = tokens
        headers = self._headers(rest)
        if headers is not None:
            self._report(self.dispatcher.invoke(name, kind, destination, headers))

    def _publish_command(self, name: str, arg: str) -> None:
        tokens = self._split(name, arg)
        if tokens is None or len(tokens) < 2:
            return self._usage(name)
        destination, body, *rest = tokens
        headers = self._headers(rest)
        if headers is not None:
            self._report(self.dispatcher.invoke(name, destination, body, headers))

    def _template_command(self, name: str, arg: str) -> None:
        if not arg:
            return self._usage(name)
        self._report(self.dispatcher.invoke(name, arg))

    def _split(self, name: str, arg: str) -> Optional[List[str]]:
        try:
            return shlex.split(arg)
        except ValueError as e:
            self.stdout.write(f"{name}: {e}\n")
            return None

    def _headers(self, tokens: List[str]) -> Optional[Dict[str, str]]:
        try:
            return parse_headers(tokens)
        except ValueError as e:
            self.stdout.write(f"{e}\n")
            return None

    def _usage(self, name: str) -> None:
        self.stdout.write(f"Usage: {self.dispatcher.usage(name)}\n")

    def _report(self, result: CommandResult) -> None:
        prefix = '' if result.ok else 'Error: '
        self.stdout.write(f"{prefix}{result.message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Interactive STOMP broker console')
    parser.add_argument('--config', help='JSON configuration file (default: $STOMP_CONFIG_FILE)')
    parser.add_argument('--host', help='Broker host (default: $STOMP_HOST or localhost)')
    parser.add_argument('--port', type=int, help='Broker port (default: $STOMP_PORT or 61613)')
    parser.add_argument('--user', help='Login (default: $STOMP_USER or guest)')
    parser.add_argument('--password', help='Passcode (default: $STOMP_PASSWORD or guest)')
    parser.add_argument('--ssl', action='store_true', default=None, help='Connect over TLS')
    parser.add_argument('--heartbeat', help="Heart-beat '<ms>,<ms>' (default: $STOMP_HEARTBEAT or 0,0)")
    parser.add_argument('--vhost', help='Virtual host (default: $STOMP_VHOST or the host)')
    parser.add_argument('--verbose', action='store_true', default=None, help='Start with the long display format')
    parser.add_argument('--log-level', help='Logging level (default: $STOMP_LOG_LEVEL or WARNING)')
    return parser


def apply_arguments(config: Config, args: argparse.Namespace) -> Config:
    """Let command line flags override file and environment settings"""
    overrides = {
        'connection.host': args.host,
        'connection.port': args.port,
        'connection.login': args.user,
        'connection.passcode': args.password,
        'connection.ssl': args.ssl,
        'connection.heartbeat': args.heartbeat,
        'connection.vhost': args.vhost,
        'display.verbose': args.verbose,
        'logging.level': args.log_level,
    }
    for key, value in overrides.items():
        if value is not None:
            config.set(key, value)
    return config


def setup_logging(config: Config) -> None:
    level = getattr(logging, str(config.get('logging.level', 'WARNING')).upper(), logging.WARNING)
    handlers = [logging.StreamHandler()]
    log_file = config.get('logging.file')
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(level=level, format=config.get('logging.format'), handlers=handlers)


def main(argv: Optional[List[str]] = None) -> int:
    """Console entry point"""
    args = build_parser().parse_args(argv)

    config = apply_arguments(initialize_config(args.config), args)
    setup_logging(config)

    try:
        connection = config.connection_config()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    client = StompConnection()
    try:
        session = open_session(client, connection, options=SessionOptions.from_config(config))
    except ConnectError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    def show_subscriptions(destinations: List[str]) -> None:
        print(f"Subscriptions: {', '.join(destinations) if destinations else 'none'}")

    with session:
        console = BrokerConsole(CommandDispatcher(session, on_subscriptions_changed=show_subscriptions))
        try:
            console.cmdloop()
        except KeyboardInterrupt:
            print()
            logger.info("Interrupted, disconnecting")

    return 0


if __name__ == '__main__':
    sys.exit(main())
