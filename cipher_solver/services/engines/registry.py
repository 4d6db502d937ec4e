from typing import Type

from cipher_solver.models.schemas import CipherType
from cipher_solver.services.engines.base import CipherEngine
from cipher_solver.services.optimization.scoring import QuadgramModel


class EngineRegistry:
    """
    Registry for cipher engines.

    Engine classes register themselves at import time; each registry
    instance builds its own engines so that concurrent analyses never share
    solver state.
    """

    _engines: dict[CipherType, Type[CipherEngine]] = {}

    def __init__(self, model: QuadgramModel | None = None):
        self.model = model
        self._instances: dict[CipherType, CipherEngine] = {}

    @classmethod
    def register(cls, engine_class: Type[CipherEngine]) -> Type[CipherEngine]:
        """
        Register a cipher engine class.

        Can be used as a decorator:
            @EngineRegistry.register
            class CaesarEngine(CipherEngine):
                ...
        """
        cls._engines[engine_class.cipher_type] = engine_class
        return engine_class

    def get_engine(self, cipher_type: CipherType) -> CipherEngine | None:
        """Get an engine instance for the specified cipher type."""
        if cipher_type not in self._engines:
            return None

        # Lazy instantiation with caching
        if cipher_type not in self._instances:
            self._instances[cipher_type] = self._engines[cipher_type](model=self.model)

        return self._instances[cipher_type]

    def get_all_engines(self) -> list[CipherEngine]:
        """Get all registered engines, ordered as the CipherType enum."""
        return [
            self.get_engine(cipher_type)
            for cipher_type in CipherType
            if cipher_type in self._engines
        ]

    @classmethod
    def list_registered(cls) -> list[CipherType]:
        """List all registered cipher types."""
        return list(cls._engines.keys())

    @classmethod
    def is_registered(cls, cipher_type: CipherType) -> bool:
        """Check if a cipher type is registered."""
        return cipher_type in cls._engines


# Import engines to trigger registration
def _load_engines() -> None:
    """Load all engine modules to trigger registration."""
    from cipher_solver.services.engines.monoalphabetic import caesar  # noqa: F401
    from cipher_solver.services.engines.polyalphabetic import vigenere  # noqa: F401
    from cipher_solver.services.engines.monoalphabetic import simple_substitution  # noqa: F401


# Load engines when module is imported
_load_engines()
