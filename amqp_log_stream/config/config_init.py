from configparser import ConfigParser
import os
import logging

from .stream_config import ExchangeDescriptor, StreamConfig

CONFIG_FILE = os.path.join(os.path.dirname(os.path.dirname(__file__)), "config.ini")

logger = logging.getLogger(__name__)


def _parse_bool(value):
    text = str(value).strip().lower()
    if text in ("true", "1", "yes", "on"):
        return True
    if text in ("false", "0", "no", "off", ""):
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def _parse_tags(value):
    return [tag.strip() for tag in value.split(",") if tag.strip()]


def initialize_config(config_file=CONFIG_FILE):
    """ Parse env variables or config file to find program config params

    Environment variables take precedence over the config file. If a required
    parameter is found in neither, a KeyError is raised; if a parameter could
    not be parsed, a ValueError is raised. On success a StreamConfig is
    returned.
    """
    config = ConfigParser(interpolation=None)
    # If the file does not exist the parser simply stays empty
    config.read(config_file)

    config_params = {}

    try:
        config_params["logging_level"] = os.getenv('LOGGING_LEVEL', config["DEFAULT"]["LOGGING_LEVEL"])

        config_params["host"] = os.getenv('RABBIT_HOST', config["RABBITMQ"]["RABBIT_HOST"])
        config_params["port"] = int(os.getenv('RABBIT_PORT', config["RABBITMQ"]["RABBIT_PORT"]))
        config_params["vhost"] = os.getenv('RABBIT_VHOST', config["RABBITMQ"]["RABBIT_VHOST"])
        config_params["login"] = os.getenv('RABBIT_LOGIN', config["RABBITMQ"]["RABBIT_LOGIN"])
        config_params["password"] = os.getenv('RABBIT_PASSWORD', config["RABBITMQ"]["RABBIT_PASSWORD"])
        config_params["reconnect_delay"] = float(os.getenv('RECONNECT_DELAY', config["RABBITMQ"]["RECONNECT_DELAY"]))

        exchange_name = os.getenv('EXCHANGE_NAME', config["RABBITMQ"]["EXCHANGE_NAME"])
        exchange_type = os.getenv('EXCHANGE_TYPE', config["RABBITMQ"]["EXCHANGE_TYPE"])
        exchange_durable = _parse_bool(os.getenv('EXCHANGE_DURABLE', config["RABBITMQ"]["EXCHANGE_DURABLE"]))
        routing_key = os.getenv('ROUTING_KEY', config["RABBITMQ"].get("ROUTING_KEY", ""))
        config_params["exchange"] = ExchangeDescriptor(
            name=exchange_name,
            routing_key=routing_key or None,
            properties={"type": exchange_type, "durable": exchange_durable},
        )

        config_params["level"] = os.getenv('LOG_LEVEL', config["STREAM"]["LOG_LEVEL"])
        config_params["tags"] = _parse_tags(os.getenv('TAGS', config["STREAM"]["TAGS"]))
        config_params["buffer_size"] = int(os.getenv('BUFFER_SIZE', config["STREAM"]["BUFFER_SIZE"]))
        message_type = os.getenv('MESSAGE_TYPE', config["STREAM"].get("MESSAGE_TYPE", ""))
        config_params["type"] = message_type or None

        # Identity defaults (hostname, program name, pid) apply when left blank
        server = os.getenv('SERVER_NAME', config["STREAM"].get("SERVER_NAME", ""))
        if server:
            config_params["server"] = server
        application = os.getenv('APPLICATION', config["STREAM"].get("APPLICATION", ""))
        if application:
            config_params["application"] = application

        config_params["ssl_enable"] = _parse_bool(os.getenv('SSL_ENABLE', config["TLS"]["SSL_ENABLE"]))
        config_params["ssl_key"] = os.getenv('SSL_KEY', config["TLS"].get("SSL_KEY", ""))
        config_params["ssl_cert"] = os.getenv('SSL_CERT', config["TLS"].get("SSL_CERT", ""))
        config_params["ssl_ca"] = os.getenv('SSL_CA', config["TLS"].get("SSL_CA", ""))
        config_params["ssl_reject_unauthorized"] = _parse_bool(
            os.getenv('SSL_REJECT_UNAUTHORIZED', config["TLS"].get("SSL_REJECT_UNAUTHORIZED", "true"))
        )

    except KeyError as e:
        raise KeyError(f"Key was not found. Error: {e}. Aborting log stream")
    except ValueError as e:
        raise ValueError(f"Key could not be parsed. Error: {e}. Aborting log stream")

    logger.info(
        f"Log stream config initialized. Broker: {config_params['host']}:{config_params['port']}, "
        f"exchange: '{config_params['exchange'].name}'"
    )
    return StreamConfig(**config_params)
