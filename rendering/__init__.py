from rendering.models import NavigationOutcome
from rendering.engine import (
    RenderingEngine,
    PageRenderer,
    RenderError,
    NavigationError,
    ExtractionError,
    ScreenshotError,
    RendererFatalError,
)
