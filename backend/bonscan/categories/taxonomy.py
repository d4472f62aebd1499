"""
Category taxonomy and keyword rule tables.

Stable slug ids (`basic_foods`, ..., `other`) are the only id scheme inside the core.
Legacy numeric ids and Bulgarian display names are translated here, at the boundary,
by `Taxonomy.resolve()`.
"""
import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ValidationError

from bonscan.categories.exceptions import UnknownCategoryError
from bonscan.categories.schemas import Category, KeywordRulesData, TaxonomyData
from bonscan.common.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent / "data"
DEFAULT_TAXONOMY_PATH = DATA_DIR / "taxonomy.json"
DEFAULT_RULES_PATH = DATA_DIR / "keyword_rules.json"


def _load(model: type[BaseModel], path: Path):
    try:
        return model.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as e:
        raise ConfigurationError(f"Cannot load {model.__name__} from {path}: {e}") from e


class Taxonomy:
    """In-memory view of the category list with id/alias resolution."""

    def __init__(self, data: TaxonomyData):
        self._categories: Dict[str, Category] = {category.id: category for category in data.categories}
        self._fallback_id = data.fallback_id
        self._aliases: Dict[str, str] = {}
        for category in data.categories:
            for key in [category.id, category.name, *category.aliases]:
                self._aliases.setdefault(key.strip().casefold(), category.id)

    @classmethod
    def from_file(cls, path: Optional[Union[str, Path]] = None) -> "Taxonomy":
        return cls(_load(TaxonomyData, Path(path) if path else DEFAULT_TAXONOMY_PATH))

    @property
    def categories(self) -> List[Category]:
        return list(self._categories.values())

    @property
    def fallback(self) -> Category:
        return self._categories[self._fallback_id]

    def get(self, category_id: str) -> Optional[Category]:
        return self._categories.get(category_id)

    def resolve(self, identifier: Union[str, int]) -> Category:
        """
        Maps a slug, legacy numeric id or display name to a Category.

        Raises:
            UnknownCategoryError: identifier is not known in any scheme
        """
        category_id = self._aliases.get(str(identifier).strip().casefold())
        if category_id is None:
            raise UnknownCategoryError(str(identifier))
        return self._categories[category_id]

    def __contains__(self, category_id: str) -> bool:
        return category_id in self._categories


def load_keyword_rules(path: Optional[Union[str, Path]] = None, taxonomy: Optional[Taxonomy] = None) -> KeywordRulesData:
    """
    Loads the category -> keyword table.

    Rules pointing at categories missing from the taxonomy are dropped with a
    warning, so renaming/removing a category never needs a code change.
    """
    rules: KeywordRulesData = _load(KeywordRulesData, Path(path) if path else DEFAULT_RULES_PATH)
    if taxonomy is None:
        return rules

    unknown = sorted({category_id for category_id in [*rules.rules, *rules.stems] if category_id not in taxonomy})
    for category_id in unknown:
        logger.warning(f"Keyword rules reference unknown category '{category_id}', skipping")
    return rules.model_copy(update={
        "rules": {k: v for k, v in rules.rules.items() if k in taxonomy},
        "stems": {k: v for k, v in rules.stems.items() if k in taxonomy},
    })


@lru_cache(maxsize=1)
def default_taxonomy() -> Taxonomy:
    return Taxonomy.from_file()
