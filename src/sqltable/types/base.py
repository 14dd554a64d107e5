"""Base model class for all sqltable models with serialization support."""

from typing import Any, Dict
from pydantic import BaseModel, ConfigDict


class SQLTableBaseModel(BaseModel):
    """Base model for all sqltable models with built-in serialization.

    Provides common functionality for all sqltable models including:
    - Serialization to dictionary via to_dict()
    - Consistent configuration
    - Proper handling of nested models
    """
    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        use_enum_values=True,
        validate_assignment=True
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary for serialization.

        Recursively converts nested SQLTableBaseModel instances to dictionaries
        and classes to their qualified names.

        Returns:
            Dictionary representation suitable for JSON serialization
        """
        data = self.model_dump(by_alias=False, exclude_none=True)

        def convert_nested(obj):
            if isinstance(obj, SQLTableBaseModel):
                return obj.to_dict()
            elif isinstance(obj, dict):
                return {k: convert_nested(v) for k, v in obj.items()}
            elif isinstance(obj, (list, tuple)):
                return [convert_nested(item) for item in obj]
            elif isinstance(obj, type):
                return obj.__qualname__
            elif hasattr(obj, 'value'):  # Handle enums
                return obj.value
            return obj

        return convert_nested(data)
