from abc import ABC, abstractmethod
from typing import Sequence


class SheetFetchError(RuntimeError):
    """Raised when any tab of the price sheet cannot be fetched."""


class PriceSheetProvider(ABC):
    provider_name: str

    @abstractmethod
    def fetch_tabs(self, tab_names: Sequence[str]) -> dict[str, str]:
        """Returns {tab_name: raw CSV text}. Raises SheetFetchError if any tab fails."""
        raise NotImplementedError
