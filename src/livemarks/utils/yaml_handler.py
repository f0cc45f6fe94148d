"""YAML serialization for bookmark records, sessions and the signal slot."""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar
from uuid import uuid4

import yaml
from pydantic import BaseModel

from ..models.bookmark import Bookmark

ModelT = TypeVar("ModelT", bound=BaseModel)


class YAMLError(Exception):
    """YAML processing error."""

    pass


def serialize_model(model: BaseModel) -> str:
    """Serialize a pydantic model to a YAML string.

    Raises:
        YAMLError: If serialization fails
    """
    try:
        return yaml.safe_dump(
            model.model_dump(mode='json'),
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
    except Exception as e:
        raise YAMLError(f"Failed to serialize {type(model).__name__}: {e}") from e


def deserialize_model(yaml_str: str, model_type: Type[ModelT]) -> ModelT:
    """Deserialize a YAML string into a pydantic model.

    Raises:
        YAMLError: If the YAML is malformed, empty or fails validation
    """
    try:
        data = yaml.safe_load(yaml_str)

        if data is None:
            raise YAMLError("YAML content is empty")

        return model_type(**data)

    except YAMLError:
        raise
    except yaml.YAMLError as e:
        raise YAMLError(f"Invalid YAML format: {e}") from e
    except Exception as e:
        raise YAMLError(f"Failed to deserialize {model_type.__name__}: {e}") from e


def load_model_from_file(file_path: Path, model_type: Type[ModelT]) -> ModelT:
    """Load a pydantic model from a YAML file.

    Raises:
        YAMLError: If file reading or parsing fails
    """
    try:
        if not file_path.exists():
            raise YAMLError(f"File not found: {file_path}")

        return deserialize_model(file_path.read_text(encoding='utf-8'), model_type)

    except YAMLError:
        raise
    except Exception as e:
        raise YAMLError(f"Failed to load {file_path}: {e}") from e


def save_model_to_file(model: BaseModel, file_path: Path) -> None:
    """Save a pydantic model to a YAML file.

    The file is written to a temporary sibling and moved into place so that
    concurrent readers never observe a partially written record.

    Raises:
        YAMLError: If file writing fails
    """
    write_yaml_atomic(serialize_model(model), file_path)


def load_bookmark_from_file(file_path: Path) -> Bookmark:
    """Load a Bookmark from a YAML file."""
    return load_model_from_file(file_path, Bookmark)


def save_bookmark_to_file(bookmark: Bookmark, file_path: Path) -> None:
    """Save a Bookmark to a YAML file."""
    save_model_to_file(bookmark, file_path)


def write_yaml_atomic(content: str, file_path: Path) -> None:
    """Atomically replace file_path with content.

    Raises:
        YAMLError: If file writing fails
    """
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = file_path.with_name(f".{file_path.name}.{uuid4().hex}.tmp")
        tmp_path.write_text(content, encoding='utf-8')
        os.replace(tmp_path, file_path)
    except Exception as e:
        raise YAMLError(f"Failed to write {file_path}: {e}") from e


def load_mapping(file_path: Path) -> Optional[Dict[str, Any]]:
    """Load a YAML mapping, returning None if the file is missing or empty.

    Raises:
        YAMLError: If the file is not a valid YAML mapping
    """
    try:
        text = file_path.read_text(encoding='utf-8')
    except FileNotFoundError:
        return None
    except Exception as e:
        raise YAMLError(f"Failed to read {file_path}: {e}") from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise YAMLError(f"Invalid YAML format in {file_path}: {e}") from e

    if data is None:
        return None
    if not isinstance(data, dict):
        raise YAMLError(f"Expected a mapping in {file_path}")

    return data


def dump_mapping(data: Dict[str, Any]) -> str:
    """Serialize a plain mapping to YAML."""
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
