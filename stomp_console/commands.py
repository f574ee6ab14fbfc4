"""
Named console operations bound to a session.

Every command is registered in an explicit table checked when the dispatcher
is built. Commands never raise session errors at the caller; they come back
as failed results carrying the message to show the user.
"""
import re
import importlib
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .errors import CallbackError, SessionError
from .session import Session


logger = logging.getLogger(__name__)


COMMAND_NAME = re.compile(r'^[a-z][a-z_]*$')

REQUIRED_COMMANDS = frozenset({
    'subscribe', 'unsubscribe',
    'topic', 'queue', 'exchange',
    'verbose', 'long_format', 'short_format', 'callback',
    'subscriptions',
})

TRUE_WORDS = ('on', 'true', 'yes', '1')
FALSE_WORDS = ('off', 'false', 'no', '0')


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one command"""
    ok: bool
    message: str = ''
    value: Any = None


@dataclass(frozen=True)
class CommandSpec:
    name: str
    handler: Callable[..., CommandResult]
    usage: str
    summary: str


def resolve_callback(reference: str) -> Callable:
    """Resolve 'package.module:function' (or 'package.module.function') to a callable"""
    if ':' in reference:
        module_name, _, attribute = reference.partition(':')
    else:
        module_name, _, attribute = reference.rpartition('.')

    if not module_name or not attribute:
        raise CallbackError(f"Callback reference '{reference}' must look like 'module:function'")

    try:
        module = importlib.import_module(module_name)
    except Exception as e:
        raise CallbackError(f"Cannot import {module_name}: {e}") from e

    target = module
    for part in attribute.split('.'):
        try:
            target = getattr(target, part)
        except AttributeError:
            raise CallbackError(f"{module_name} has no attribute {attribute}")

    if not callable(target):
        raise CallbackError(f"{reference} is not callable")
    return target


def parse_switch(value) -> Optional[bool]:
    """Read a bool or an on/off word; None when it is neither"""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in TRUE_WORDS:
            return True
        if word in FALSE_WORDS:
            return False
    return None


class CommandDispatcher:
    """Maps command names to operations on one session"""

    def __init__(self,
                 session: Session,
                 on_subscriptions_changed: Optional[Callable[[List[str]], None]] = None,
                 resolver: Callable[[str], Callable] = resolve_callback):
        self.session = session
        self.on_subscriptions_changed = on_subscriptions_changed
        self._resolver = resolver
        self.commands: Dict[str, CommandSpec] = self._build_table()
        self._validate()

    def _build_table(self) -> Dict[str, CommandSpec]:
        specs = [
            CommandSpec('subscribe', self.subscribe,
                        'subscribe <topic|queue|exchange> <name> [key=value ...]',
                        'Subscribe to a destination'),
            CommandSpec('unsubscribe', self.unsubscribe,
                        'unsubscribe <topic|queue|exchange> <name> [key=value ...]',
                        'Cancel a subscription'),
            CommandSpec('topic', self.topic,
                        'topic <name> <body> [key=value ...]',
                        'Publish to /topic/<name>'),
            CommandSpec('queue', self.queue,
                        'queue <name> <body> [key=value ...]',
                        'Publish to /queue/<name>'),
            CommandSpec('exchange', self.exchange,
                        'exchange <name> <body> [key=value ...]',
                        'Publish to /exchange/<name>'),
            CommandSpec('verbose', self.verbose,
                        'verbose [on|off]',
                        'Switch between the long and short display format'),
            CommandSpec('long_format', self.long_format,
                        'long_format <template>',
                        'Set the verbose display template'),
            CommandSpec('short_format', self.short_format,
                        'short_format <template>',
                        'Set the terse display template'),
            CommandSpec('callback', self.callback,
                        'callback <module:function>',
                        'Hand every received message to a function'),
            CommandSpec('reset_callback', self.reset_callback,
                        'reset_callback',
                        'Go back to the default no-op callback'),
            CommandSpec('subscriptions', self.subscriptions,
                        'subscriptions',
                        'List active subscriptions'),
            CommandSpec('options', self.options,
                        'options',
                        'Show the display options'),
        ]
        return {spec.name: spec for spec in specs}

    def _validate(self) -> None:
        for name, spec in self.commands.items():
            if name != spec.name or not COMMAND_NAME.match(name):
                raise ValueError(f"Invalid command name '{name}'")
            if not callable(spec.handler):
                raise TypeError(f"Handler for '{name}' is not callable")

        missing = REQUIRED_COMMANDS - set(self.commands)
        if missing:
            raise ValueError(f"Missing commands: {', '.join(sorted(missing))}")

    def invoke(self, name: str, *args, **kwargs) -> CommandResult:
        """Run a command by name"""
        spec = self.commands.get(name)
        if spec is None:
            return CommandResult(False, f"Unknown command '{name}'")

        try:
            return spec.handler(*args, **kwargs)
        except SessionError as e:
            logger.debug(f"Command {name} failed: {e}")
            return CommandResult(False, str(e))

    def usage(self, name: str) -> str:
        spec = self.commands.get(name)
        return spec.usage if spec else ''

    # Subscriptions

    def subscribe(self, kind: str, name: str, headers: Optional[Dict] = None) -> CommandResult:
        subscription_id = self.session.subscribe(kind, name, headers)
        self._subscriptions_changed()
        return CommandResult(True, f"Subscribed to /{kind}/{name} (id {subscription_id})", subscription_id)

    def unsubscribe(self, kind: str, name: str, headers: Optional[Dict] = None) -> CommandResult:
        self.session.unsubscribe(kind, name, headers)
        self._subscriptions_changed()
        return CommandResult(True, f"Unsubscribed from /{kind}/{name}")

    def subscriptions(self) -> CommandResult:
        subscriptions = self.session.subscriptions()
        if not subscriptions:
            return CommandResult(True, "No active subscriptions", [])
        lines = [f"{s.destination} (id {s.subscription_id})" for s in subscriptions]
        return CommandResult(True, '\n'.join(lines), [s.destination for s in subscriptions])

    def _subscriptions_changed(self) -> None:
        if self.on_subscriptions_changed is not None:
            self.on_subscriptions_changed(self.session.list_subscriptions())

    # Publishing

    def topic(self, name: str, body: str, headers: Optional[Dict] = None) -> CommandResult:
        return self._published(self.session.topic(name, body, headers))

    def queue(self, name: str, body: str, headers: Optional[Dict] = None) -> CommandResult:
        return self._published(self.session.queue(name, body, headers))

    def exchange(self, name: str, body: str, headers: Optional[Dict] = None) -> CommandResult:
        return self._published(self.session.exchange(name, body, headers))

    def _published(self, publication) -> CommandResult:
        message = f"Sent to {publication.destination}: {publication.body!r}"
        if publication.headers:
            message += f" headers {publication.headers}"
        return CommandResult(True, message, publication)

    # Display options

    def verbose(self, enabled=None) -> CommandResult:
        """Toggle with no argument; otherwise accept a bool or an on/off word"""
        if enabled is None:
            enabled = self.session.toggle_verbose()
        else:
            switch = parse_switch(enabled)
            if switch is None:
                return CommandResult(False, f"Invalid verbose value {enabled!r}, expected on or off")
            enabled = switch
            self.session.set_verbose(enabled)
        return CommandResult(True, f"Verbose output {'on' if enabled else 'off'}", enabled)

    def long_format(self, template: str) -> CommandResult:
        self.session.set_long_format(template)
        return CommandResult(True, f"Long format set to {template!r}", template)

    def short_format(self, template: str) -> CommandResult:
        self.session.set_short_format(template)
        return CommandResult(True, f"Short format set to {template!r}", template)

    def callback(self, target) -> CommandResult:
        handler = target if callable(target) else self._resolver(str(target))
        self.session.set_callback(handler)
        name = getattr(handler, '__qualname__', repr(handler))
        return CommandResult(True, f"Callback set to {name}", handler)

    def reset_callback(self) -> CommandResult:
        self.session.reset_callback()
        return CommandResult(True, "Callback reset")

    def options(self) -> CommandResult:
        snapshot = self.session.current_options()
        callback = getattr(snapshot.callback, '__qualname__', repr(snapshot.callback))
        lines = [
            f"verbose: {'on' if snapshot.verbose else 'off'}",
            f"long_format: {snapshot.long_format!r}",
            f"short_format: {snapshot.short_format!r}",
            f"callback: {callback}",
        ]
        return CommandResult(True, '\n'.join(lines), snapshot)
