"""Error taxonomy for the conversion pipeline."""


class ConversionError(Exception):
    """Base class for every error raised by the conversion pipeline."""

    stage = "conversion"

    def __init__(self, message: str, item: str | None = None, path: str | None = None):
        self.message = message
        self.item = item
        self.path = path
        super().__init__(self._format())

    def _format(self) -> str:
        context = []
        if self.item:
            context.append(f"item={self.item}")
        if self.path:
            context.append(f"path={self.path}")
        suffix = f" ({', '.join(context)})" if context else ""
        return f"[{self.stage}] {self.message}{suffix}"


class ContainerError(ConversionError):
    """Archive unreadable, package document missing/unparseable, or spine/manifest absent."""

    stage = "container"


class NavigationError(ConversionError):
    """Navigation document missing or unusable. Triggers the spine fallback."""

    stage = "navigation"


class TransformError(ConversionError):
    """A content document could not be turned into Markdown."""

    stage = "transform"


class PathPlanError(ConversionError):
    """Two planned output paths collide."""

    stage = "paths"


class AssemblyError(ConversionError):
    """Writing the output tree failed."""

    stage = "assembly"
