"""
Renders received messages through display templates.

Recognized placeholders:
    %{time}    arrival time as HH:MM:SS (24-hour)
    %{source}  message destination
    %{body}    message body without its trailing newline

Substitution is a single pass over the template, so placeholder text that
appears inside a substituted value is never expanded again. Anything else,
including unknown %{...} placeholders, is left as is.
"""
import re

from .message import Message


TIME_FORMAT = '%H:%M:%S'

_PLACEHOLDER = re.compile(r'%\{(time|source|body)\}')


def format_time(message: Message) -> str:
    if message.received_at is None:
        return ''
    return message.received_at.strftime(TIME_FORMAT)


def strip_newline(body: str) -> str:
    """Drop a single trailing newline"""
    return body[:-1] if body.endswith('\n') else body


def render(template: str, message: Message) -> str:
    """Render a message through a display template"""
    values = {
        'time': format_time(message),
        'source': message.destination,
        'body': strip_newline(message.body),
    }
    return _PLACEHOLDER.sub(lambda match: values[match.group(1)], template)
