from .common.errors import LogStreamError, MalformedRecordError, ReshapeError
from .common.events import StreamEvent
from .config.stream_config import ExchangeDescriptor, StreamConfig
from .domain.buffered_publisher import BufferedPublisher
from .logic.message_transformer import DROP, MessageTransformer, OutboundMessage
from .presentation.amqp_stream import AmqpStream, create_stream
from .presentation.log_handler import AmqpLogHandler

__all__ = [
    "AmqpLogHandler",
    "AmqpStream",
    "BufferedPublisher",
    "DROP",
    "ExchangeDescriptor",
    "LogStreamError",
    "MalformedRecordError",
    "MessageTransformer",
    "OutboundMessage",
    "ReshapeError",
    "StreamConfig",
    "StreamEvent",
    "create_stream",
]
