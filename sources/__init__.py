"""Source channels feeding the update pipeline."""

from .base_channel import ChannelType, SourceChannel, coerce_reference
from .periodic_source import PeriodicSource, add_cache_buster
from .push_source import PushChannel, PushServer, parse_push_payload

__all__ = [
    'ChannelType', 'SourceChannel', 'coerce_reference',
    'PeriodicSource', 'add_cache_buster',
    'PushChannel', 'PushServer', 'parse_push_payload',
]
