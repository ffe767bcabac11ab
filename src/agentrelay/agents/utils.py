import logging
from typing import Any, Dict, Optional, TextIO, Tuple, Union

import jsonschema
from pythonjsonlogger import jsonlogger

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s] [%(agent_name)s] %(message)s"
JSON_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(agent_name)s %(run_id)s %(message)s"

SYSTEM_AGENT_NAME = "System"


# --- Logging Filter ---
class AgentLogFilter(logging.Filter):
    """
    Fills in ``agent_name`` and ``run_id`` on records that were logged
    without them, so both formats can always reference the fields.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        agent_name = getattr(record, "agent_name", None)
        record.agent_name = SYSTEM_AGENT_NAME if agent_name is None else str(agent_name)
        if getattr(record, "run_id", None) is None:
            record.run_id = None
        return True


# --- Logging Setup ---
def init_agent_logging(
    level: Union[int, str] = logging.INFO,
    clear_existing_handlers: bool = True,
    json_format: bool = False,
    stream: Optional[TextIO] = None,
) -> logging.Handler:
    """
    Configure console logging for agent runs on the root logger.

    Args:
        level: Root logger level, as a number or a name such as ``"DEBUG"``
        clear_existing_handlers: Remove handlers already on the root logger,
            so repeated setup (notebooks, tests) does not duplicate output
        json_format: Emit one JSON object per record via python-json-logger
        stream: Target stream (defaults to stderr)

    Returns:
        The installed handler
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level}")

    root_logger = logging.getLogger()
    if clear_existing_handlers:
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()

    handler = logging.StreamHandler(stream)
    if json_format:
        formatter: logging.Formatter = jsonlogger.JsonFormatter(JSON_LOG_FORMAT)
    else:
        formatter = logging.Formatter(LOG_FORMAT)
    handler.setFormatter(formatter)
    handler.addFilter(AgentLogFilter())

    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    logger.debug(f"Agent logging configured at {logging.getLevelName(level)}")
    return handler


# --- Schema Helpers ---

JSON_TYPES = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    dict: "object",
    type(None): "null",
}


def compile_schema(schema: Any) -> Optional[Dict[str, Any]]:
    """
    Expand a shorthand schema into JSON schema.

    ``["a", "b"]`` requires string keys ``a`` and ``b``; ``{"a": int}``
    requires ``a`` with the mapped JSON type. Any other dict is taken as a
    JSON schema already. Anything else yields None.
    """
    if schema is None:
        return None

    if isinstance(schema, list):
        if not all(isinstance(key, str) for key in schema):
            logger.warning("Schema key lists must contain only strings; ignoring schema")
            return None
        return {
            "type": "object",
            "properties": {key: {"type": "string"} for key in schema},
            "required": list(schema),
        }

    if not isinstance(schema, dict):
        logger.warning(f"Unsupported schema of type {type(schema).__name__}; ignoring schema")
        return None

    if schema and all(isinstance(v, type) for v in schema.values()):
        properties = {}
        for key, value_type in schema.items():
            if value_type not in JSON_TYPES:
                logger.warning(f"No JSON type for {value_type.__name__} (key '{key}'); using 'object'")
            properties[key] = {"type": JSON_TYPES.get(value_type, "object")}
        return {"type": "object", "properties": properties, "required": list(schema)}

    return schema


def validate_data(
    data: Any, compiled_schema: Optional[Dict[str, Any]]
) -> Tuple[bool, Optional[str], Optional[str]]:
    """
    Check ``data`` against a compiled schema.

    Returns:
        ``(ok, message, path)``; the path joins the failing location with " -> "
    """
    if compiled_schema is None:
        return True, None, None
    try:
        jsonschema.validate(instance=data, schema=compiled_schema)
    except jsonschema.exceptions.ValidationError as e:
        path = " -> ".join(str(part) for part in e.path) or None
        message = f"Schema violation at '{path}': {e.message}" if path else f"Schema violation: {e.message}"
        logger.debug(message)
        return False, message, path
    return True, None, None
