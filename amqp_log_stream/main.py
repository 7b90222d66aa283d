import logging
import signal
import sys
import threading
import time

from amqp_log_stream.common.events import StreamEvent
from amqp_log_stream.common.logger import config_logger
from amqp_log_stream.config.config_init import initialize_config
from amqp_log_stream.presentation.amqp_stream import AmqpStream

DRAIN_TIMEOUT = 5.0

logger = logging.getLogger("amqp_log_stream.main")


def pipe_lines(stream, lines, stop_event):
    """Write every non-blank line to the stream until input ends or we are stopped."""
    count = 0
    for line in lines:
        if stop_event.is_set():
            break
        line = line.strip()
        if not line:
            continue
        stream.write(line)
        count += 1
    return count


def wait_for_drain(stream, timeout=DRAIN_TIMEOUT):
    deadline = time.monotonic() + timeout
    while stream.publisher.pending and time.monotonic() < deadline:
        time.sleep(0.1)
    return stream.publisher.pending == 0


def main():
    stream = None
    stop_event = threading.Event()

    def _handle_shutdown(signum, frame):
        logger.info(f"Received signal {signum}. Shutting down gracefully...")
        stop_event.set()
        # Unblocks the read on stdin
        raise KeyboardInterrupt

    signal.signal(signal.SIGTERM, _handle_shutdown)
    signal.signal(signal.SIGINT, _handle_shutdown)

    try:
        config = initialize_config()
        config_logger(config.logging_level)

        stream = AmqpStream(config)
        stream.subscribe(StreamEvent.CONNECT, lambda: logger.info("Log stream connected"))
        stream.subscribe(StreamEvent.CLOSE, lambda: logger.info("Log stream disconnected"))
        stream.start()

        count = pipe_lines(stream, sys.stdin, stop_event)
        logger.info(f"Input finished after {count} record(s)")

        if not stop_event.is_set() and not wait_for_drain(stream):
            logger.warning("Timed out waiting for buffered messages to drain")
    except KeyboardInterrupt:
        logger.info("Log stream stopped by user")
    except Exception as e:
        logger.error(f"Log stream error: {e}", exc_info=True)
        return 1
    finally:
        if stream:
            stream.stop()
        logger.info("Log stream shutdown complete.")
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)-8s %(message)s')
    logger.info("Starting log stream")
    sys.exit(main())
