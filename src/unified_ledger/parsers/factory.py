import importlib
from typing import Any, Dict, Optional, Type

from unified_ledger.config.settings import ConfigLoader
from unified_ledger.domain.enums import TransactionSource
from unified_ledger.parsers.base import TransactionParser


class ParserFactory:
    """
    Factory for creating provider payload parsers.

    Uses a registry pattern to map transaction sources to parser classes.
    """

    _locked = False
    _registry: Dict[str, Type[TransactionParser]] = {}

    @classmethod
    def register(cls, source: str, parser_class: Type[TransactionParser]) -> None:
        """
        Register a parser for a source.

        Args:
            source: Source identifier (e.g. 'trading212', 'credit-card')
            parser_class: The parser class

        Raises:
            ValueError: If a parser is already registered or the source is unknown
            TypeError: If parser_class doesn't inherit from TransactionParser
            RuntimeError: If the parser registry is locked

        Example:
            ParserFactory.register('trading212', Trading212CsvParser)
        """
        if cls._locked:
            raise RuntimeError("Registry is locked, cannot add more parsers")

        TransactionSource(source)

        if source in cls._registry:
            raise ValueError(f"Parser for '{source}' is already registered")

        if not isinstance(parser_class, type) or not issubclass(parser_class, TransactionParser):
            raise TypeError(f"{parser_class} must inherit from TransactionParser")

        cls._registry[source] = parser_class

    @classmethod
    def lock_registry(cls):
        """Prevent further registration (call after app initialization)"""
        cls._locked = True

    @classmethod
    def is_loaded(cls) -> bool:
        return cls._locked

    @classmethod
    def create_parser(cls, source: TransactionSource | str) -> TransactionParser:
        """
        Create a parser instance for the given source.

        Raises:
            ValueError: If no parser is registered for this source
        """
        key = source.value if isinstance(source, TransactionSource) else source
        if key not in cls._registry:
            available = ', '.join(cls._registry.keys())
            raise ValueError(
                f"No parser registered for '{key}'. "
                f"Available parsers: {available}"
            )

        return cls._registry[key]()

    @classmethod
    def get_available_sources(cls) -> list[str]:
        return list(cls._registry.keys())

    @classmethod
    def load_parsers_from_config(
        cls,
        config: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Load and register parsers from configuration.

        Args:
            config: Optional config dict. If None, loads from ConfigLoader.

            Example (production):
                ParserFactory.load_parsers_from_config()

            Example (testing):
                test_config = {"parsers": [...]}
                ParserFactory.load_parsers_from_config(config=test_config)
        """
        if config is None:
            config = ConfigLoader.load_parsers_config()

        for parser_config in config['parsers']:
            module_path, class_name = str(parser_config['class']).rsplit('.', 1)
            module = importlib.import_module(module_path)
            parser_class = getattr(module, class_name)

            cls.register(parser_config['source'], parser_class)

        cls.lock_registry()

    @classmethod
    def ensure_loaded(cls) -> None:
        """Load the configured parsers once per process."""
        if not cls._locked:
            cls.load_parsers_from_config()
