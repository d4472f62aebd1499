import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from bonscan.common.exceptions import ConfigurationError
from bonscan.normalization.schemas import NormalizerDictionary

logger = logging.getLogger(__name__)

DEFAULT_DICTIONARY_PATH = Path(__file__).parent / "data" / "dictionaries.json"


def load_dictionary(path: Optional[Union[str, Path]] = None) -> NormalizerDictionary:
    """
    Loads brand/product/unit/attribute tables from a JSON file.

    Args:
        path: JSON file; defaults to the bundled Bulgarian dictionary

    Raises:
        ConfigurationError: file missing or not matching NormalizerDictionary
    """
    source = Path(path) if path else DEFAULT_DICTIONARY_PATH
    try:
        dictionary = NormalizerDictionary.model_validate_json(source.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as e:
        raise ConfigurationError(f"Cannot load normalizer dictionary from {source}: {e}") from e

    logger.debug(
        f"Loaded normalizer dictionary from {source}",
        extra={"brand_groups": len(dictionary.brands), "product_groups": len(dictionary.products)},
    )
    return dictionary


@lru_cache(maxsize=1)
def default_dictionary() -> NormalizerDictionary:
    return load_dictionary()
