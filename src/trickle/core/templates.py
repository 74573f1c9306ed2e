"""
Query template lookup.

Each entity has exactly one query template at `<sql_dir>/<entity>.sql`.
Templates are plain SQL; the only thing trickle interprets in them is the
pair of named bind parameters `:startDate` and `:tillDate`.
"""
from pathlib import Path
from typing import Iterable, List, Union

from trickle.utility.exceptions import TemplateError

TEMPLATE_SUFFIX = ".sql"


class TemplateLoader:
    """Reads query templates from a directory by entity-name convention."""

    def __init__(self, sql_dir: Union[str, Path]):
        self.sql_dir = Path(sql_dir)

    def path_for(self, entity_name: str) -> Path:
        return self.sql_dir / f"{entity_name}{TEMPLATE_SUFFIX}"

    def exists(self, entity_name: str) -> bool:
        return self.path_for(entity_name).is_file()

    def missing(self, entity_names: Iterable[str]) -> List[str]:
        """Names from `entity_names` that have no template file."""
        return [name for name in entity_names if not self.exists(name)]

    def load(self, entity_name: str) -> str:
        """
        Read the template for an entity.

        Raises:
            TemplateError: If the file is missing, unreadable or empty
        """
        path = self.path_for(entity_name)
        try:
            query = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise TemplateError(
                f"No query template for '{entity_name}' at {path}",
                operation="load template",
            ) from e
        except (OSError, UnicodeDecodeError) as e:
            raise TemplateError(
                f"Cannot read query template {path}: {e}",
                operation="load template",
            ) from e

        if not query.strip():
            raise TemplateError(
                f"Query template {path} is empty", operation="load template"
            )
        return query
