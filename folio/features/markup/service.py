"""MarkupTransformer: runs the stage pipeline and never raises."""

import logging
from typing import Iterable, Optional

from folio.features.markup.stages import PIPELINE, MarkupStage

logger = logging.getLogger(__name__)


class MarkupTransformer:
    """
    Convert the supported markup subset to semantic HTML.

    `transform` is total: non-string input yields "", and a stage that fails
    is skipped (its input passes through) so an export is never blocked by
    author text.
    """

    def __init__(self, stages: Optional[Iterable[MarkupStage]] = None):
        self.stages = tuple(stages) if stages is not None else PIPELINE

    def transform(self, markup: Optional[str]) -> str:
        if not isinstance(markup, str) or not markup:
            return ""

        text = markup.replace("\r\n", "\n").replace("\r", "\n")
        for stage in self.stages:
            try:
                text = stage.apply(text)
            except Exception as e:
                logger.warning(f"[markup] stage={stage.name} skipped: {type(e).__name__}: {e}")
        return text


_default = MarkupTransformer()


def transform(markup: Optional[str]) -> str:
    return _default.transform(markup)
