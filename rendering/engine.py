from abc import ABC, abstractmethod
from typing import List

from rendering.models import NavigationOutcome


class RenderError(Exception):
    """Base rendering exception."""
    pass


class NavigationError(RenderError):
    """Raised when navigation times out or the host refuses/resets the connection."""
    pass


class ExtractionError(RenderError):
    """Raised when DOM/link extraction fails after a successful navigation."""
    pass


class ScreenshotError(RenderError):
    """Raised when a full-page capture fails."""
    pass


class RendererFatalError(RenderError):
    """Raised when the browser engine itself is unusable (crashed, disconnected, closed)."""
    pass


class PageRenderer(ABC):
    """
    One isolated rendering session (own cookies/cache) on a shared engine.
    Contractual Requirements for Implementers:
    - navigate MUST honour its timeout and raise NavigationError on failure.
    - extract_links MUST return absolute hrefs of every <a href> in the rendered DOM.
    - screenshot MUST return the encoded bytes of a full-page capture.
    - close MUST be safe to call more than once.
    - Any method MUST raise RendererFatalError once the engine is gone.
    """

    @abstractmethod
    def navigate(self, url: str, timeout: float) -> NavigationOutcome:
        pass

    @abstractmethod
    def extract_links(self) -> List[str]:
        pass

    @abstractmethod
    def screenshot(self) -> bytes:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class RenderingEngine(ABC):
    """
    The shared browser-engine connection. Created once, handed to every
    worker by reference, closed exactly once at shutdown.
    """

    @abstractmethod
    def new_session(self) -> PageRenderer:
        """Open an isolated session. Raises RendererFatalError if the engine is down."""
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        pass

    def start(self) -> "RenderingEngine":
        return self

    @abstractmethod
    def close(self) -> None:
        pass

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
