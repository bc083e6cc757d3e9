from functools import lru_cache
from typing import Any, Dict

from jsonschema import validate, ValidationError, SchemaError

from tasknest.logs import get_logger
from tasknest.models import StorageFile
from tasknest.recovery import CorruptStorageError, FatalError

log = get_logger("data.validate")

@lru_cache(maxsize=None)
def storage_schema() -> Dict[str, Any]:
    """JSON schema of the storage document, generated from the pydantic models."""
    schema = StorageFile.model_json_schema(by_alias=True)
    schema["$schema"] = "https://json-schema.org/draft/2020-12/schema"
    return schema

def validate_document(data: Dict[str, Any], source: str = "document") -> bool:
    """
    Check the shape of a raw storage document before building models from it.

    Args:
        data: The parsed JSON document
        source: Where the document came from, for error messages

    Raises:
        CorruptStorageError: the document doesn't have the expected shape
    """
    try:
        validate(instance=data, schema=storage_schema())
    except ValidationError as e:
        location = "/".join(str(part) for part in e.absolute_path) or "<root>"
        log.error(f"{source} FAILED validation at '{location}': {e.message}")
        raise CorruptStorageError(f"Invalid task storage {source} at '{location}': {e.message}") from e
    except SchemaError as e:
        log.critical(f"Storage schema itself is invalid: {e.message}")
        raise FatalError(f"Storage schema is invalid: {e.message}") from e

    log.debug(f"{source} is VALID")
    return True
