"""
Row validation for list reads.

A row that does not fit its model is an InvalidRowError (a StoreError) when
read on its own. Multi-row reads skip it with a warning so one bad row
cannot empty a whole queue.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..exceptions import InvalidRowError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)
T = TypeVar("T")


def parse_row(model: Type[M], row: Dict[str, Any], list_name: str) -> M:
    """
    Validate one list row into a model.

    Raises:
        InvalidRowError: If the row fails validation
    """
    try:
        return model.model_validate(row)
    except ValidationError as e:
        detail = "; ".join(f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}" for err in e.errors())
        raise InvalidRowError(list_name, row.get("Id"), detail) from e


def parse_rows(parse: Callable[[Dict[str, Any]], T], rows: Iterable[Dict[str, Any]]) -> List[T]:
    """Apply ``parse`` to each row, dropping rows that raise InvalidRowError."""
    parsed = []
    for row in rows:
        try:
            parsed.append(parse(row))
        except InvalidRowError as e:
            logger.warning(f"Skipping row: {e}")
    return parsed
