from __future__ import annotations

from abc import ABC, abstractmethod

from data_accounting.schemas.payload_contracts import VerificationPayload


class PageStore(ABC):
    """The revision store the engine is attached to.

    Implementations report lifecycle changes back to the VerificationLedger;
    ``move_page`` in particular must end in ``VerificationLedger.on_page_renamed``.
    """

    @abstractmethod
    def page_exists(self, title: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def move_page(self, old_title: str, new_title: str, reason: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def import_revision(self, title: str, verification: VerificationPayload) -> str | None:
        """Create the content revision that ``verification`` belongs to.

        Returns the local title the revision was stored under, or ``None`` if
        no new local revision was created (e.g. it already existed).
        """
        raise NotImplementedError
