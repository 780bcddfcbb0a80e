"""Public test-support utilities for chronoplay.

Re-exports test helpers so that consumer test suites can import
everything from a single ``chronoplay.testing`` namespace instead of
reaching into private modules.

Provided symbols:

- :class:`ReplayHarness` — installed controller plus virtualizer.
- :func:`make_settings` — factory for ``Settings`` without ``.env`` files.
- :data:`DEFAULT_BASE_TIME` — instant used by the ``virtual_clock`` fixture.
"""

from chronoplay.testing._harness import ReplayHarness
from chronoplay.testing._plugin import DEFAULT_BASE_TIME
from chronoplay.testing._settings import make_settings

__all__ = [
    "DEFAULT_BASE_TIME",
    "ReplayHarness",
    "make_settings",
]
