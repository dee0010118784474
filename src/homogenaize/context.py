from __future__ import annotations

import logging
from dataclasses import dataclass, field

from . import logger as logger_mod
from ._json import ValidatorCache


@dataclass
class CallContext:
    """Collaborators threaded through one call instead of module globals.

    Clients own one context each, so two clients configured with different
    loggers never share validator state unless a context is passed to both.
    """

    logger: logging.Logger = field(default_factory=logger_mod.get_logger)
    validators: ValidatorCache = field(default_factory=ValidatorCache)
