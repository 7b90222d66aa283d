import logging

LOG_FORMAT = '%(asctime)s %(levelname)-8s %(name)s %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def config_logger(logging_level):
    """Configure the process's own diagnostic logging.

    Replaces any handlers installed before the config was read. Keeps pika
    quiet: its connection chatter would otherwise flood the output every time
    the broker goes away.
    """
    logging.basicConfig(
        format=LOG_FORMAT,
        level=logging_level,
        datefmt=DATE_FORMAT,
        force=True,
    )
    logging.getLogger("pika").setLevel(logging.WARNING)
